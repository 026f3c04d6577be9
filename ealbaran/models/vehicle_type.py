"""VehicleType model - vans/trucks offered by the tenant with a price multiplier."""
from sqlalchemy import Column, BigInteger, String, Boolean, Numeric, Text, ForeignKey
from ealbaran.database import Base, BigIntPK


class VehicleType(Base):
    """Vehicle type (Tipo de vehículo)."""

    __tablename__ = 'vehicle_type'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    capacity = Column(String(120), nullable=True)
    price_multiplier = Column(Numeric(6, 2), nullable=False, default=1)
    active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<VehicleType(id={self.id}, name='{self.name}', multiplier={self.price_multiplier})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'capacity': self.capacity,
            'priceMultiplier': float(self.price_multiplier or 1),
            'isActive': self.active,
        }
