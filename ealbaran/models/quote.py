"""Quote model for transport presupuestos."""
import enum
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK
from ealbaran.utils.formatters import iso


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


class Quote(Base):
    """
    Quote (Presupuesto).

    Created by a company admin from a route, confirmed, and then assigned to a
    worker who produces the delivery note.
    """

    __tablename__ = 'quote'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    worker_id = Column(BigInteger, ForeignKey('worker.id'), nullable=True)
    vehicle_type_id = Column(BigInteger, ForeignKey('vehicle_type.id'), nullable=True)
    pricing_rule_id = Column(BigInteger, ForeignKey('pricing_rule.id'), nullable=True)
    client_name = Column(String(255), nullable=True)
    origin = Column(Text, nullable=False)
    destination = Column(Text, nullable=False)
    distance_km = Column(Numeric(10, 2), nullable=False)
    duration_minutes = Column(BigInteger, nullable=True)
    vehicle_type_name = Column(String(120), nullable=True)
    zone_name = Column(String(120), nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False)
    distance_cost = Column(Numeric(12, 2), nullable=False)
    toll_cost = Column(Numeric(12, 2), nullable=False, default=0)
    vehicle_multiplier = Column(Numeric(6, 2), nullable=False, default=1)
    extras = Column(JSON, nullable=True)
    extras_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=QuoteStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    tenant = relationship('Tenant')
    worker = relationship('Worker')

    def __repr__(self):
        return f"<Quote(id={self.id}, status='{self.status}', total={self.total_price})>"

    @property
    def is_assignable(self):
        """A quote can be handed to a worker unless it was cancelled."""
        return self.status != QuoteStatus.CANCELLED.value

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'workerId': self.worker_id,
            'clientName': self.client_name,
            'origin': self.origin,
            'destination': self.destination,
            'distance': float(self.distance_km),
            'duration': self.duration_minutes,
            'vehicleTypeId': self.vehicle_type_id,
            'vehicleTypeName': self.vehicle_type_name,
            'pricingRuleId': self.pricing_rule_id,
            'zoneName': self.zone_name,
            'basePrice': float(self.base_price),
            'distanceCost': float(self.distance_cost),
            'tollCost': float(self.toll_cost or 0),
            'vehicleMultiplier': float(self.vehicle_multiplier or 1),
            'extras': self.extras or {},
            'extrasCost': float(self.extras_cost or 0),
            'totalPrice': float(self.total_price),
            'status': self.status,
            'createdAt': iso(self.created_at),
        }
