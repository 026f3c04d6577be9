"""PricingRule model - distance bands used to price quotes."""
from sqlalchemy import Column, BigInteger, String, Integer, Boolean, Numeric, ForeignKey
from ealbaran.database import Base, BigIntPK


class PricingRule(Base):
    """
    Pricing rule (Tarifa por zona).

    A rule applies when the route distance falls in [min_km, max_km].
    Price = max(base_price + distance * price_per_km + toll_surcharge, min_price).
    """

    __tablename__ = 'pricing_rule'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    zone = Column(Integer, nullable=False)
    name = Column(String(120), nullable=False)
    country = Column(String(80), nullable=False, default='España')
    min_km = Column(Integer, nullable=False)
    max_km = Column(Integer, nullable=False)
    base_price = Column(Numeric(12, 2), nullable=False)
    price_per_km = Column(Numeric(10, 3), nullable=False)
    toll_surcharge = Column(Numeric(12, 2), nullable=False, default=0)
    min_price = Column(Numeric(12, 2), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<PricingRule(id={self.id}, zone={self.zone}, range={self.min_km}-{self.max_km}km)>"

    def covers(self, distance_km):
        return self.min_km <= distance_km <= self.max_km

    def to_dict(self):
        return {
            'id': self.id,
            'zone': self.zone,
            'name': self.name,
            'country': self.country,
            'minKm': self.min_km,
            'maxKm': self.max_km,
            'basePrice': float(self.base_price),
            'pricePerKm': float(self.price_per_km),
            'tollSurcharge': float(self.toll_surcharge or 0),
            'minPrice': float(self.min_price),
            'isActive': self.active,
        }
