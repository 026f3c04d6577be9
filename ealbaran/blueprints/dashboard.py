"""
Dashboard blueprint for multi-tenant SaaS.
Counters for the company dashboard and the audit trail.
"""
import logging

from flask import Blueprint, current_app, g, jsonify, request, Response

from ealbaran.database import get_session
from ealbaran.middleware import require_login, require_role, require_tenant
from ealbaran.models import AuditAction, UserRole
from ealbaran.services.audit_service import get_audit_logs
from ealbaran.services.dashboard_service import get_dashboard_data_cached

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/api')


@dashboard_bp.route('/dashboard/stats', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def stats() -> Response:
    """
    Dashboard counters for the current tenant.

    Shows:
    - Albaranes: total, firmados, pendientes, facturados, facturables, papelera
    - Facturas: número, importe pendiente, importe cobrado
    - Trabajadores activos y presupuestos pendientes
    """
    db_session = get_session()
    data = get_dashboard_data_cached(db_session, g.tenant_id, current_app.config.get('CACHE_STATS_TTL'))

    invoices = data['invoices']
    return jsonify({
        'deliveryNotes': data['notes'],
        'invoices': {
            'count': invoices['count'],
            'pendingAmount': float(invoices['pending_amount']),
            'paidAmount': float(invoices['paid_amount']),
        },
        'workersActive': data['workers_active'],
        'quotesPending': data['quotes_pending'],
    })


@dashboard_bp.route('/audit-logs', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def audit_logs() -> Response:
    db_session = get_session()

    action = request.args.get('action')
    action_filter = None
    if action:
        try:
            action_filter = AuditAction(action)
        except ValueError:
            return jsonify([])

    logs = get_audit_logs(
        db_session, g.tenant_id,
        limit=min(request.args.get('limit', 100, type=int), 500),
        offset=request.args.get('offset', 0, type=int),
        action_filter=action_filter,
        resource_type_filter=request.args.get('resourceType') or None,
        resource_id_filter=request.args.get('resourceId', type=int),
    )
    return jsonify([{
        'id': log.id,
        'action': log.action.value,
        'resourceType': log.resource_type,
        'resourceId': log.resource_id,
        'userId': log.user_id,
        'details': log.details,
        'createdAt': log.created_at.isoformat() if log.created_at else None,
    } for log in logs])
