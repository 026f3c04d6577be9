"""
Audit Log model for tracking critical actions in the system.
"""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Session
    USER_LOGIN = "USER_LOGIN"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"
    USER_LOGOUT = "USER_LOGOUT"
    USER_REGISTERED = "USER_REGISTERED"

    # Delivery notes
    DELIVERY_NOTE_CREATED = "DELIVERY_NOTE_CREATED"
    DELIVERY_NOTE_UPDATED = "DELIVERY_NOTE_UPDATED"
    DELIVERY_NOTE_SIGNED = "DELIVERY_NOTE_SIGNED"
    DELIVERY_NOTE_TRASHED = "DELIVERY_NOTE_TRASHED"
    DELIVERY_NOTE_RESTORED = "DELIVERY_NOTE_RESTORED"
    DELIVERY_NOTE_PURGED = "DELIVERY_NOTE_PURGED"
    DELIVERY_NOTE_INVOICE_TOGGLED = "DELIVERY_NOTE_INVOICE_TOGGLED"

    # Invoices
    INVOICE_CREATED = "INVOICE_CREATED"
    INVOICE_STATUS_CHANGED = "INVOICE_STATUS_CHANGED"
    INVOICE_DELETED = "INVOICE_DELETED"

    # Workers and quotes
    WORKER_CREATED = "WORKER_CREATED"
    WORKER_UPDATED = "WORKER_UPDATED"
    QUOTE_CREATED = "QUOTE_CREATED"
    QUOTE_STATUS_CHANGED = "QUOTE_STATUS_CHANGED"
    QUOTE_WORKER_ASSIGNED = "QUOTE_WORKER_ASSIGNED"

    # Settings
    SETTINGS_CHANGED = "SETTINGS_CHANGED"


from ealbaran.database import Base, BigIntPK

class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id.
    """
    __tablename__ = 'audit_log'

    id = Column(BigIntPK, primary_key=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=True, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'delivery_note', 'invoice', 'worker'
    resource_id = Column(BigInteger)  # ID of the affected resource
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    tenant = relationship('Tenant', backref='audit_logs')
    user = relationship('AppUser', backref='audit_logs')

    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"
