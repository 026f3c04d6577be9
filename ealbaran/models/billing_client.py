"""BillingClient model - customers that receive invoices."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK


class BillingClient(Base):
    """Billing client (Cliente de facturación)."""

    __tablename__ = 'billing_client'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    tax_id = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<BillingClient(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'taxId': self.tax_id,
            'address': self.address,
            'email': self.email,
            'phone': self.phone,
        }
