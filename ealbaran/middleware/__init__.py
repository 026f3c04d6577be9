"""Middleware for authentication and tenant context."""
from functools import wraps

from flask import session, g, current_app

from ealbaran.database import get_session
from ealbaran.exceptions import AuthenticationError, UnauthorizedError
from ealbaran.models import AppUser, Tenant, UserTenant, UserRole, Worker

ROLE_HIERARCHY = {
    UserRole.OWNER.value: 3,
    UserRole.ADMIN.value: 2,
    UserRole.WORKER.value: 1,
}


def load_user_and_tenant():
    """
    Load current user and tenant into g (Flask's per-request global).

    Called before each request to establish user and tenant context.
    Sets g.user, g.tenant_id, g.user_role and, for users linked to a worker
    record, g.worker_id.
    """
    g.user = None
    g.tenant_id = None
    g.user_role = None
    g.worker_id = None

    user_id = session.get('user_id')
    if not user_id:
        return

    try:
        db_session = get_session()
        user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
        if not user:
            return

        g.user = user
        tenant_id = session.get('tenant_id')
        if not tenant_id:
            return

        # Verify user has access to this tenant
        user_tenant = db_session.query(UserTenant).filter_by(
            user_id=user.id,
            tenant_id=tenant_id,
            active=True
        ).first()
        if not user_tenant:
            session.pop('tenant_id', None)
            return

        tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
        if not tenant or tenant.is_suspended or not tenant.active:
            # Suspended company: force re-login
            session.clear()
            g.user = None
            return

        g.tenant_id = tenant_id
        g.user_role = user_tenant.role

        worker = db_session.query(Worker).filter_by(tenant_id=tenant_id, user_id=user.id).first()
        if worker:
            g.worker_id = worker.id

    except Exception as e:
        # Avoid crashing the whole app if context loading fails
        current_app.logger.error(f"Error in load_user_and_tenant: {e}")


def require_login(f):
    """Decorator: Require user to be logged in (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError('Debes iniciar sesión')
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require a company context.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise UnauthorizedError('No tienes acceso a ninguna empresa')
        return f(*args, **kwargs)
    return decorated_function


def has_role(min_role: str) -> bool:
    """True if the current user's role is at least min_role."""
    level = ROLE_HIERARCHY.get(g.get('user_role'), 0)
    return level >= ROLE_HIERARCHY.get(min_role, ROLE_HIERARCHY[UserRole.WORKER.value])


def require_role(min_role=UserRole.WORKER.value):
    """
    Decorator: Require minimum role for tenant.

    Roles hierarchy: OWNER > ADMIN > WORKER

    Must be used AFTER require_login and require_tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.get('user') is None:
                raise AuthenticationError('Debes iniciar sesión')
            if g.get('tenant_id') is None:
                raise UnauthorizedError('No tienes acceso a ninguna empresa')
            if not has_role(min_role):
                raise UnauthorizedError(f'Necesitas rol de {min_role} o superior')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def ensure_worker_scope(worker_id) -> None:
    """
    Workers may only touch their own records; admins are unrestricted.

    Raises:
        UnauthorizedError: a WORKER accessing another worker's data
    """
    if has_role(UserRole.ADMIN.value):
        return
    if g.get('worker_id') is None or worker_id != g.worker_id:
        raise UnauthorizedError('No tienes acceso a este recurso')
