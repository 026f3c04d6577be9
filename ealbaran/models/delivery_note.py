"""DeliveryNote model - albaranes with dual signature capture."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Integer, Boolean, DateTime, Text, ForeignKey, JSON,
    UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK
from ealbaran.utils.formatters import iso


class NoteLifecycle(enum.Enum):
    """
    Lifecycle of a delivery note row.

    PURGED has no stored representation: a purged note is a deleted row.
    """
    ACTIVE = "ACTIVE"
    TRASHED = "TRASHED"
    PURGED = "PURGED"


class CreatorType(enum.Enum):
    """Who created the note."""
    ADMIN = "admin"
    WORKER = "worker"


class DeliveryNote(Base):
    """
    Delivery note (Albarán).

    note_number is sequential per tenant and immutable. The origin and
    destination signature sub-records are filled in two separate saves; their
    *_signed_at timestamps are written once and never overwritten.
    """

    __tablename__ = 'delivery_note'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'note_number', name='uq_delivery_note_tenant_number'),
        Index('ix_delivery_note_tenant_lifecycle', 'tenant_id', 'lifecycle'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False)
    note_number = Column(Integer, nullable=False)
    quote_id = Column(BigInteger, ForeignKey('quote.id'), nullable=True)
    worker_id = Column(BigInteger, ForeignKey('worker.id'), nullable=True, index=True)
    creator_type = Column(String(10), nullable=False, default=CreatorType.ADMIN.value)

    # Descriptive
    client_name = Column(String(255), nullable=True)
    pickup_origins = Column(JSON, nullable=False, default=list)
    destination = Column(Text, nullable=True)
    vehicle_type = Column(String(120), nullable=True)
    date = Column(String(10), nullable=True)  # YYYY-MM-DD as entered
    time = Column(String(5), nullable=True)  # HH:MM as entered
    observations = Column(Text, nullable=True)
    carload_details = Column(Text, nullable=True)
    wait_time = Column(Integer, nullable=True)  # minutes

    # Photo (data URL)
    photo = Column(Text, nullable=True)

    # Origin signature sub-record
    origin_signature = Column(Text, nullable=True)
    origin_signature_document = Column(String(32), nullable=True)
    origin_signed_at = Column(DateTime(timezone=True), nullable=True)

    # Destination signature sub-record
    destination_signature = Column(Text, nullable=True)
    destination_signature_document = Column(String(32), nullable=True)
    destination_signed_at = Column(DateTime(timezone=True), nullable=True)

    # Legacy single signature
    signature = Column(Text, nullable=True)
    signed_at = Column(DateTime(timezone=True), nullable=True)

    # Lifecycle
    status = Column(String(20), nullable=False, default='pending')
    is_invoiced = Column(Boolean, nullable=False, default=False)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    departed_at = Column(DateTime(timezone=True), nullable=True)
    lifecycle = Column(String(10), nullable=False, default=NoteLifecycle.ACTIVE.value)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant')
    worker = relationship('Worker')
    quote = relationship('Quote')

    def __repr__(self):
        return f"<DeliveryNote(id={self.id}, number={self.note_number}, status='{self.status}', lifecycle='{self.lifecycle}')>"

    @property
    def is_trashed(self):
        return self.lifecycle == NoteLifecycle.TRASHED.value

    @property
    def wait_duration_minutes(self):
        """Minutes between arrival and departure, when both are recorded."""
        if self.arrived_at and self.departed_at:
            return int((self.departed_at - self.arrived_at).total_seconds() // 60)
        return None

    def to_dict(self, include_images=True):
        from ealbaran.utils.completion import is_fully_signed, signing_stage, get_missing_signature_info

        data = {
            'id': self.id,
            'tenantId': self.tenant_id,
            'noteNumber': self.note_number,
            'quoteId': self.quote_id,
            'workerId': self.worker_id,
            'workerName': self.worker.name if self.worker else None,
            'creatorType': self.creator_type,
            'clientName': self.client_name,
            'pickupOrigins': list(self.pickup_origins or []),
            'destination': self.destination,
            'vehicleType': self.vehicle_type,
            'date': self.date,
            'time': self.time,
            'observations': self.observations,
            'carloadDetails': self.carload_details,
            'waitTime': self.wait_time,
            'originSignatureDocument': self.origin_signature_document,
            'originSignedAt': iso(self.origin_signed_at),
            'destinationSignatureDocument': self.destination_signature_document,
            'destinationSignedAt': iso(self.destination_signed_at),
            'signedAt': iso(self.signed_at),
            'status': self.status,
            'isInvoiced': bool(self.is_invoiced),
            'invoicedAt': iso(self.invoiced_at),
            'arrivedAt': iso(self.arrived_at),
            'departedAt': iso(self.departed_at),
            'deletedAt': iso(self.deleted_at),
            'deletedBy': self.deleted_by,
            'lifecycle': self.lifecycle,
            'version': self.version,
            'createdAt': iso(self.created_at),
            'updatedAt': iso(self.updated_at),
            'isFullySigned': is_fully_signed(self),
            'signingStage': signing_stage(self).value,
            'missingSignatures': get_missing_signature_info(self),
        }
        if include_images:
            data.update({
                'photo': self.photo,
                'originSignature': self.origin_signature,
                'destinationSignature': self.destination_signature,
                'signature': self.signature,
            })
        else:
            data.update({
                'hasPhoto': bool(self.photo),
                'hasOriginSignature': bool(self.origin_signature),
                'hasDestinationSignature': bool(self.destination_signature),
                'hasSignature': bool(self.signature),
            })
        return data
