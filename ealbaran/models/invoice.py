"""Invoice model - facturas built from signed delivery notes."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Integer, Numeric, DateTime, Date, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ealbaran.database import Base, BigIntPK
from ealbaran.utils.formatters import iso


class InvoiceStatus(enum.Enum):
    """Invoice status enum."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Invoice(Base):
    """
    Invoice (Factura).

    Customer data is stored as a snapshot so that later edits of the billing
    client do not alter issued invoices.
    """

    __tablename__ = 'invoice'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoice_tenant_number'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(BigInteger, ForeignKey('tenant.id'), nullable=False, index=True)
    invoice_number = Column(Integer, nullable=False)
    invoice_prefix = Column(String(20), nullable=True)
    billing_client_id = Column(BigInteger, ForeignKey('billing_client.id'), nullable=True)
    customer_name = Column(String(255), nullable=False)
    customer_tax_id = Column(String(50), nullable=True)
    customer_address = Column(Text, nullable=True)
    customer_email = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=21)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default=InvoiceStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    tenant = relationship('Tenant')
    billing_client = relationship('BillingClient')
    line_items = relationship(
        'InvoiceLineItem', back_populates='invoice',
        cascade='all, delete-orphan', order_by='InvoiceLineItem.position'
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number={self.invoice_number}, total={self.total}, status='{self.status}')>"

    @property
    def display_number(self):
        return f"{self.invoice_prefix or ''}{self.invoice_number}"

    @property
    def delivery_note_ids(self):
        return [line.delivery_note_id for line in self.line_items if line.delivery_note_id]

    def to_dict(self, include_lines=True):
        data = {
            'id': self.id,
            'invoiceNumber': self.invoice_number,
            'invoicePrefix': self.invoice_prefix,
            'displayNumber': self.display_number,
            'billingClientId': self.billing_client_id,
            'customerName': self.customer_name,
            'customerTaxId': self.customer_tax_id,
            'customerAddress': self.customer_address,
            'customerEmail': self.customer_email,
            'issueDate': iso(self.issue_date),
            'dueDate': iso(self.due_date),
            'subtotal': float(self.subtotal),
            'taxRate': float(self.tax_rate),
            'taxAmount': float(self.tax_amount),
            'total': float(self.total),
            'status': self.status,
            'notes': self.notes,
            'createdAt': iso(self.created_at),
        }
        if include_lines:
            data['lineItems'] = [line.to_dict() for line in self.line_items]
        return data


class InvoiceLineItem(Base):
    """Invoice line, optionally referencing the delivery note it bills."""

    __tablename__ = 'invoice_line_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    invoice_id = Column(BigInteger, ForeignKey('invoice.id'), nullable=False, index=True)
    delivery_note_id = Column(BigInteger, ForeignKey('delivery_note.id', ondelete='SET NULL'), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False, default=1)
    unit_price = Column(Numeric(14, 2), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    invoice = relationship('Invoice', back_populates='line_items')

    def __repr__(self):
        return f"<InvoiceLineItem(id={self.id}, invoice_id={self.invoice_id}, note={self.delivery_note_id}, amount={self.amount})>"

    def to_dict(self):
        return {
            'id': self.id,
            'deliveryNoteId': self.delivery_note_id,
            'description': self.description,
            'quantity': float(self.quantity),
            'unitPrice': float(self.unit_price),
            'amount': float(self.amount),
        }
