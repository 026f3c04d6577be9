"""
Per-tenant JSON backups.

Each backup is a single file in BACKUP_DIR named
automated_backup_{tenant_id}_{timestamp}.json and is recorded in backup_log.
"""
import json
import logging
import os
import time
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from ealbaran.models import (
    AppUser, BackupLog, DeliveryNote, Invoice, InvoiceTemplate, NoteLifecycle,
    Quote, Tenant, UserTenant, VehicleType, Worker
)
from ealbaran.exceptions import NotFoundError

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = '1.1'


def _json_default(obj):
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if hasattr(obj, 'isoformat'):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def build_tenant_snapshot(session, tenant_id: int, backup_type: str = 'automated') -> dict:
    """
    Collect the tenant's data as a JSON-ready dict.

    Trashed notes are not included. User password hashes are redacted.
    """
    tenant = session.query(Tenant).filter(Tenant.id == tenant_id).first()
    if not tenant:
        raise NotFoundError(f'Tenant {tenant_id} not found')

    notes = session.query(DeliveryNote).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value
    ).order_by(DeliveryNote.note_number.asc()).all()
    invoices = session.query(Invoice).filter(Invoice.tenant_id == tenant_id).order_by(Invoice.invoice_number.asc()).all()
    templates = session.query(InvoiceTemplate).filter(InvoiceTemplate.tenant_id == tenant_id).all()
    quotes = session.query(Quote).filter(Quote.tenant_id == tenant_id).all()
    workers = session.query(Worker).filter(Worker.tenant_id == tenant_id).all()
    vehicle_types = session.query(VehicleType).filter(VehicleType.tenant_id == tenant_id).all()
    memberships = session.query(UserTenant, AppUser).join(
        AppUser, AppUser.id == UserTenant.user_id
    ).filter(UserTenant.tenant_id == tenant_id).all()

    line_items = [line.to_dict() | {'invoiceId': invoice.id} for invoice in invoices for line in invoice.line_items]
    users = [
        user.to_dict() | {'role': membership.role, 'password': '[REDACTED]'}
        for membership, user in memberships
    ]

    return {
        'version': BACKUP_FORMAT_VERSION,
        'type': backup_type,
        'exportedAt': datetime.utcnow().isoformat() + 'Z',
        'tenantId': tenant.id,
        'companyName': tenant.name or 'Unknown',
        'data': {
            'tenant': tenant.to_dict(),
            'deliveryNotes': [note.to_dict() for note in notes],
            'invoices': [invoice.to_dict(include_lines=False) for invoice in invoices],
            'invoiceLineItems': line_items,
            'invoiceTemplates': [template.to_dict() for template in templates],
            'quotes': [quote.to_dict() for quote in quotes],
            'workers': [worker.to_dict() for worker in workers],
            'vehicleTypes': [vehicle.to_dict() for vehicle in vehicle_types],
            'users': users,
        },
        'counts': {
            'deliveryNotes': len(notes),
            'invoices': len(invoices),
            'quotes': len(quotes),
            'workers': len(workers),
            'vehicleTypes': len(vehicle_types),
            'users': len(users),
        },
    }


def backup_tenant(session, tenant_id: int, target_dir: str, backup_type: str = 'automated') -> BackupLog:
    """
    Write one tenant backup and record the attempt in backup_log.

    Failures are recorded with status 'failed' and do not raise.
    """
    os.makedirs(target_dir, exist_ok=True)
    log = BackupLog(tenant_id=tenant_id, type=backup_type)

    try:
        snapshot = build_tenant_snapshot(session, tenant_id, backup_type)
        payload = json.dumps(snapshot, indent=2, ensure_ascii=False, default=_json_default)

        timestamp = datetime.utcnow().strftime('%Y-%m-%dT%H-%M-%S-%fZ')
        file_name = f"{backup_type}_backup_{tenant_id}_{timestamp}.json"
        with open(os.path.join(target_dir, file_name), 'w', encoding='utf-8') as fh:
            fh.write(payload)

        log.status = 'completed'
        log.file_name = file_name
        log.file_size = len(payload.encode('utf-8'))
        log.record_counts = snapshot['counts']
        logger.info(f"[BACKUP] ✓ Backup completed for tenant {tenant_id}: {file_name}")

    except Exception as e:
        session.rollback()
        log.status = 'failed'
        log.error_message = str(e)
        logger.error(f"[BACKUP] ✗ Backup failed for tenant {tenant_id}: {e}")

    if session.query(Tenant.id).filter(Tenant.id == tenant_id).first():
        session.add(log)
        session.commit()
    return log


def cleanup_old_backups(target_dir: str, max_age_days: int = 365, now: Optional[float] = None) -> List[str]:
    """Delete backup files older than max_age_days (by mtime). Returns deleted names."""
    if not os.path.isdir(target_dir):
        return []

    now = now if now is not None else time.time()
    max_age_seconds = max_age_days * 24 * 60 * 60
    deleted = []
    for name in sorted(os.listdir(target_dir)):
        path = os.path.join(target_dir, name)
        if not os.path.isfile(path) or not name.endswith('.json'):
            continue
        if now - os.path.getmtime(path) > max_age_seconds:
            os.remove(path)
            deleted.append(name)
            logger.info(f"[BACKUP] Deleted old backup: {name}")
    return deleted


def backup_all_tenants(session, target_dir: str, max_age_days: int = 365) -> Dict[int, str]:
    """
    Back up every tenant sequentially, then prune old files.

    Returns:
        {tenant_id: 'completed' | 'failed'}
    """
    tenant_ids = [row.id for row in session.query(Tenant.id).order_by(Tenant.id.asc()).all()]
    logger.info(f"[BACKUP] Starting backup of {len(tenant_ids)} tenants")

    results = {}
    for tenant_id in tenant_ids:
        results[tenant_id] = backup_tenant(session, tenant_id, target_dir).status

    cleanup_old_backups(target_dir, max_age_days)
    logger.info(f"[BACKUP] Backup cycle completed: {sum(1 for s in results.values() if s == 'completed')}/{len(results)} ok")
    return results
