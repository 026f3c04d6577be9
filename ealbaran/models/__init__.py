"""Models package - exports all SQLAlchemy models."""
# SaaS Core Models
from ealbaran.models.app_user import AppUser
from ealbaran.models.tenant import Tenant
from ealbaran.models.user_tenant import UserTenant, UserRole

# Transport Models
from ealbaran.models.worker import Worker
from ealbaran.models.vehicle_type import VehicleType
from ealbaran.models.pricing_rule import PricingRule
from ealbaran.models.quote import Quote, QuoteStatus
from ealbaran.models.delivery_note import DeliveryNote, NoteLifecycle, CreatorType

# Billing Models
from ealbaran.models.billing_client import BillingClient
from ealbaran.models.invoice_template import InvoiceTemplate
from ealbaran.models.invoice import Invoice, InvoiceLineItem, InvoiceStatus

# Operations
from ealbaran.models.audit_log import AuditLog, AuditAction
from ealbaran.models.backup_log import BackupLog

__all__ = [
    # SaaS Core
    'Tenant', 'AppUser', 'UserTenant', 'UserRole',
    # Transport
    'Worker', 'VehicleType', 'PricingRule', 'Quote', 'QuoteStatus',
    'DeliveryNote', 'NoteLifecycle', 'CreatorType',
    # Billing
    'BillingClient', 'InvoiceTemplate', 'Invoice', 'InvoiceLineItem', 'InvoiceStatus',
    # Operations
    'AuditLog', 'AuditAction', 'BackupLog',
]
