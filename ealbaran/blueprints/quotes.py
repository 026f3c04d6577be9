"""
Quotes blueprint - vehicle types, pricing rules, route quotes and workers.

Workers only see the orders (assigned quotes) of their own worker record.
"""
import logging

from flask import Blueprint, g, jsonify, request, Response

from ealbaran.database import get_session
from ealbaran.exceptions import ValidationError
from ealbaran.middleware import ensure_worker_scope, has_role, require_login, require_role, require_tenant
from ealbaran.models import AuditAction, UserRole
from ealbaran.services import quote_service, worker_service
from ealbaran.services.audit_service import record_action

logger = logging.getLogger(__name__)

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api')


def _body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la petición debe ser un objeto JSON')
    return data


# ============================================================================
# Vehicle types and pricing rules
# ============================================================================

@quotes_bp.route('/vehicle-types', methods=['GET'])
@require_login
@require_tenant
def list_vehicle_types() -> Response:
    only_active = request.args.get('all') not in ('1', 'true')
    vehicles = quote_service.list_vehicle_types(get_session(), g.tenant_id, only_active=only_active)
    return jsonify([vehicle.to_dict() for vehicle in vehicles])


@quotes_bp.route('/vehicle-types', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def create_vehicle_type() -> Response:
    vehicle = quote_service.create_vehicle_type(get_session(), g.tenant_id, _body())
    return jsonify(vehicle.to_dict()), 201


@quotes_bp.route('/pricing-rules', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_pricing_rules() -> Response:
    rules = quote_service.list_pricing_rules(get_session(), g.tenant_id)
    return jsonify([rule.to_dict() for rule in rules])


@quotes_bp.route('/pricing-rules', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def create_pricing_rule() -> Response:
    rule = quote_service.create_pricing_rule(get_session(), g.tenant_id, _body())
    return jsonify(rule.to_dict()), 201


# ============================================================================
# Quotes
# ============================================================================

@quotes_bp.route('/calculate-quote', methods=['POST'])
@require_login
@require_tenant
def calculate_quote() -> Response:
    """Price a route (distanceKm supplied by the client) and store it as pending."""
    db_session = get_session()
    quote = quote_service.calculate_quote(db_session, g.tenant_id, _body(), user_id=g.user.id)
    record_action(db_session, AuditAction.QUOTE_CREATED, 'quote', quote.id,
                  {'total_price': str(quote.total_price)})
    return jsonify(quote.to_dict()), 201


@quotes_bp.route('/quotes', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_quotes() -> Response:
    quotes = quote_service.list_quotes(
        get_session(), g.tenant_id,
        status=request.args.get('status') or None,
        worker_id=request.args.get('workerId', type=int),
    )
    return jsonify([quote.to_dict() for quote in quotes])


@quotes_bp.route('/quotes/<int:quote_id>', methods=['GET'])
@require_login
@require_tenant
def get_quote(quote_id: int) -> Response:
    quote = quote_service.get_quote(get_session(), g.tenant_id, quote_id)
    if not has_role(UserRole.ADMIN.value):
        ensure_worker_scope(quote.worker_id)
    return jsonify(quote.to_dict())


@quotes_bp.route('/quotes/<int:quote_id>/status', methods=['PATCH'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def update_quote_status(quote_id: int) -> Response:
    db_session = get_session()
    status = _body().get('status')
    quote = quote_service.update_quote_status(db_session, g.tenant_id, quote_id, status)
    record_action(db_session, AuditAction.QUOTE_STATUS_CHANGED, 'quote', quote.id, {'status': status})
    return jsonify(quote.to_dict())


@quotes_bp.route('/quotes/<int:quote_id>/confirm', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def confirm_quote(quote_id: int) -> Response:
    db_session = get_session()
    quote = quote_service.confirm_quote(db_session, g.tenant_id, quote_id)
    record_action(db_session, AuditAction.QUOTE_STATUS_CHANGED, 'quote', quote.id, {'status': quote.status})
    return jsonify(quote.to_dict())


@quotes_bp.route('/quotes/<int:quote_id>/assign-worker', methods=['PATCH'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def assign_worker(quote_id: int) -> Response:
    db_session = get_session()
    worker_id = _body().get('workerId')
    if not worker_id:
        raise ValidationError('workerId es requerido', field='workerId')
    quote = quote_service.assign_worker(db_session, g.tenant_id, quote_id, int(worker_id))
    record_action(db_session, AuditAction.QUOTE_WORKER_ASSIGNED, 'quote', quote.id, {'worker_id': quote.worker_id})
    return jsonify(quote.to_dict())


# ============================================================================
# Workers
# ============================================================================

@quotes_bp.route('/workers', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_workers() -> Response:
    only_active = request.args.get('active') in ('1', 'true')
    workers = worker_service.list_workers(get_session(), g.tenant_id, only_active=only_active)
    return jsonify([worker.to_dict() for worker in workers])


@quotes_bp.route('/workers', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def create_worker() -> Response:
    db_session = get_session()
    worker = worker_service.create_worker(db_session, g.tenant_id, _body())
    record_action(db_session, AuditAction.WORKER_CREATED, 'worker', worker.id, {'name': worker.name})
    return jsonify(worker.to_dict()), 201


@quotes_bp.route('/workers/<int:worker_id>', methods=['PATCH'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def update_worker(worker_id: int) -> Response:
    db_session = get_session()
    data = _body()
    worker = worker_service.update_worker(db_session, g.tenant_id, worker_id, data)
    record_action(db_session, AuditAction.WORKER_UPDATED, 'worker', worker.id, {'fields': sorted(data)})
    return jsonify(worker.to_dict())


@quotes_bp.route('/workers/<int:worker_id>/orders', methods=['GET'])
@require_login
@require_tenant
def worker_orders(worker_id: int) -> Response:
    """Quotes assigned to a worker."""
    db_session = get_session()
    ensure_worker_scope(worker_id)
    worker_service.get_worker(db_session, g.tenant_id, worker_id)
    quotes = quote_service.list_quotes(db_session, g.tenant_id, worker_id=worker_id)
    return jsonify([quote.to_dict() for quote in quotes])
