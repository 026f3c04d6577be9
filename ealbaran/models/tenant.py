"""Tenant model - represents each transport company using the platform."""
from sqlalchemy import Column, String, Boolean, DateTime, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK


class Tenant(Base):
    """Tenant model - each transport company."""

    __tablename__ = 'tenant'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    name = Column(String(200), nullable=False)  # Company display name
    tax_id = Column(String(50), nullable=True)  # CIF/NIF
    contact_email = Column(String(255), nullable=True)
    wait_time_threshold = Column(Integer, nullable=False, default=20)  # minutes before wait time is billable
    active = Column(Boolean, nullable=False, default=True)
    is_suspended = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    user_tenants = relationship('UserTenant', back_populates='tenant')

    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'slug': self.slug,
            'name': self.name,
            'taxId': self.tax_id,
            'contactEmail': self.contact_email,
            'waitTimeThreshold': self.wait_time_threshold,
        }
