"""
Authentication blueprint for multi-tenant SaaS.
Handles company registration, login, logout and the current session.
"""
import logging
from typing import Optional

from flask import Blueprint, request, session, g, jsonify, Response
from flask_wtf.csrf import generate_csrf

from ealbaran.database import get_session
from ealbaran.exceptions import AuthenticationError, ValidationError
from ealbaran.middleware import require_login
from ealbaran.models import AuditAction, Tenant
from ealbaran.services import auth_service
from ealbaran.services.audit_service import record_action
from ealbaran.services.worker_service import get_worker_for_user

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api')


def _start_session(user_id: int, tenant_id: Optional[int]) -> None:
    session.clear()
    session['user_id'] = user_id
    if tenant_id:
        session['tenant_id'] = tenant_id
    session.permanent = True


def _session_payload(db_session, user, tenant_id: Optional[int], role: Optional[str]) -> dict:
    tenant = db_session.query(Tenant).filter_by(id=tenant_id).first() if tenant_id else None
    worker = get_worker_for_user(db_session, tenant_id, user.id) if tenant_id else None
    return {
        'user': user.to_dict(),
        'tenant': tenant.to_dict() if tenant else None,
        'role': role,
        'workerId': worker.id if worker else None,
    }


@auth_bp.route('/csrf-token', methods=['GET'])
def csrf_token() -> Response:
    """Token for the X-CSRFToken header of mutating requests."""
    return jsonify({'csrfToken': generate_csrf()})


@auth_bp.route('/register', methods=['POST'])
def register() -> Response:
    """Register a company with its OWNER user and open a session."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    user, tenant = auth_service.register_company(
        db_session,
        email=data.get('email'),
        password=data.get('password'),
        company_name=data.get('companyName') or data.get('company_name'),
        full_name=(data.get('fullName') or data.get('full_name') or '').strip() or None,
    )
    _start_session(user.id, tenant.id)
    record_action(db_session, AuditAction.USER_REGISTERED, 'tenant', tenant.id,
                  tenant_id=tenant.id, user_id=user.id)

    payload = _session_payload(db_session, user, tenant.id, 'OWNER')
    return jsonify(payload), 201


@auth_bp.route('/login', methods=['POST'])
def login() -> Response:
    """
    Email/password login.

    When the user belongs to several companies, `tenantId` in the body picks
    one; otherwise the first active membership is used.
    """
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    if not data.get('email') or not data.get('password'):
        raise ValidationError('Email y contraseña son requeridos')

    try:
        user = auth_service.authenticate(db_session, data.get('email'), data.get('password'))
    except AuthenticationError:
        record_action(db_session, AuditAction.USER_LOGIN_FAILED, 'user', None,
                      {'email': (data.get('email') or '').strip().lower()})
        raise

    memberships = auth_service.get_user_tenants(db_session, user.id)
    if not memberships:
        raise AuthenticationError('Tu usuario no está vinculado a ninguna empresa')

    membership = memberships[0]
    requested = data.get('tenantId')
    if requested is not None:
        membership = next((m for m in memberships if m.tenant_id == int(requested)), None)
        if membership is None:
            raise AuthenticationError('No tienes acceso a esa empresa')

    _start_session(user.id, membership.tenant_id)
    record_action(db_session, AuditAction.USER_LOGIN, 'user', user.id,
                  tenant_id=membership.tenant_id, user_id=user.id)
    logger.info(f"[AUTH] User {user.email} logged in (tenant {membership.tenant_id})")

    return jsonify(_session_payload(db_session, user, membership.tenant_id, membership.role))


@auth_bp.route('/logout', methods=['POST'])
def logout() -> Response:
    user = g.get('user')
    if user is not None:
        record_action(get_session(), AuditAction.USER_LOGOUT, 'user', user.id)
    session.clear()
    return jsonify({'success': True})


@auth_bp.route('/user', methods=['GET'])
@require_login
def current_user() -> Response:
    return jsonify(_session_payload(get_session(), g.user, g.get('tenant_id'), g.get('user_role')))
