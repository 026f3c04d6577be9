"""Worker model - drivers assigned to quotes and delivery notes."""
from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK
from ealbaran.utils.formatters import iso


class Worker(Base):
    """
    Worker (Trabajador).

    A worker may be linked to an AppUser with role WORKER so that they can
    log in and sign delivery notes from their own dashboard.
    """

    __tablename__ = 'worker'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant')
    user = relationship('AppUser')

    def __repr__(self):
        return f"<Worker(id={self.id}, name='{self.name}', active={self.active})>"

    def to_dict(self):
        return {
            'id': self.id,
            'tenantId': self.tenant_id,
            'userId': self.user_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'isActive': self.active,
            'createdAt': iso(self.created_at),
        }
