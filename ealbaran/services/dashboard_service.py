"""
Dashboard service for multi-tenant SaaS.
Provides aggregated counters for the company dashboard.
"""
import logging
from decimal import Decimal

from sqlalchemy import func, case

from ealbaran.models import Invoice, InvoiceStatus, Quote, QuoteStatus, Worker
from ealbaran.services.delivery_note_service import get_delivery_note_stats

logger = logging.getLogger(__name__)


def get_dashboard_data(session, tenant_id: int) -> dict:
    """
    Get all dashboard counters for a tenant.

    Returns:
        dict with keys:
            - notes: total/signed/pending/invoiced/invoiceable/trashed
            - invoices: count, pending_amount, paid_amount
            - workers_active: int
            - quotes_pending: int
    """
    # 1. Delivery notes (shared completion predicate)
    notes = get_delivery_note_stats(session, tenant_id)

    # 2. Invoice totals by status
    totals = session.query(
        func.count(Invoice.id).label('count'),
        func.coalesce(
            func.sum(case((Invoice.status == InvoiceStatus.PENDING.value, Invoice.total), else_=0)), 0
        ).label('pending_amount'),
        func.coalesce(
            func.sum(case((Invoice.status == InvoiceStatus.PAID.value, Invoice.total), else_=0)), 0
        ).label('paid_amount'),
    ).filter(Invoice.tenant_id == tenant_id).first()

    # 3. Workers and quotes
    workers_active = session.query(func.count(Worker.id)).filter(
        Worker.tenant_id == tenant_id,
        Worker.active.is_(True)
    ).scalar() or 0

    quotes_pending = session.query(func.count(Quote.id)).filter(
        Quote.tenant_id == tenant_id,
        Quote.status == QuoteStatus.PENDING.value
    ).scalar() or 0

    return {
        'notes': notes,
        'invoices': {
            'count': totals.count if totals else 0,
            'pending_amount': Decimal(str(totals.pending_amount)) if totals else Decimal('0'),
            'paid_amount': Decimal(str(totals.paid_amount)) if totals else Decimal('0'),
        },
        'workers_active': workers_active,
        'quotes_pending': quotes_pending,
    }


def get_dashboard_data_cached(session, tenant_id: int, ttl: int = None) -> dict:
    """Dashboard counters through the tenant cache (module 'notes')."""
    loader = lambda: get_dashboard_data(session, tenant_id)
    try:
        from ealbaran.services.cache_service import get_cache
        cache = get_cache()
    except RuntimeError:
        return loader()
    return cache.memoize(tenant_id, 'notes', 'dashboard_stats', loader, ttl)
