"""Worker service - drivers of a tenant and their optional login."""
import logging
from typing import List, Optional

from ealbaran.exceptions import NotFoundError, ValidationError
from ealbaran.models import Worker, UserRole
from ealbaran.services.auth_service import create_tenant_user, is_valid_email

logger = logging.getLogger(__name__)


def list_workers(session, tenant_id: int, only_active: bool = False) -> List[Worker]:
    query = session.query(Worker).filter(Worker.tenant_id == tenant_id)
    if only_active:
        query = query.filter(Worker.active.is_(True))
    return query.order_by(Worker.name.asc()).all()


def get_worker(session, tenant_id: int, worker_id: int) -> Worker:
    worker = session.query(Worker).filter(
        Worker.id == worker_id,
        Worker.tenant_id == tenant_id
    ).first()
    if not worker:
        raise NotFoundError(f'Trabajador {worker_id} no encontrado.')
    return worker


def get_worker_for_user(session, tenant_id: int, user_id: int) -> Optional[Worker]:
    """Worker record linked to a logged-in user, if any."""
    return session.query(Worker).filter(
        Worker.tenant_id == tenant_id,
        Worker.user_id == user_id
    ).first()


def create_worker(session, tenant_id: int, data: dict) -> Worker:
    """
    Create a worker. When a password is given a WORKER login is created with
    the same email and linked to the worker.

    Raises:
        ValidationError: name or email missing/invalid
        BusinessLogicError: login email already registered
    """
    try:
        name = (data.get('name') or '').strip()
        email = (data.get('email') or '').strip().lower()
        if not name or not email:
            raise ValidationError('Nombre y email son requeridos')
        if not is_valid_email(email):
            raise ValidationError('Email inválido', field='email')

        user_id = None
        if data.get('password'):
            user = create_tenant_user(
                session, tenant_id, email, data['password'],
                full_name=name, role=UserRole.WORKER.value
            )
            user_id = user.id

        worker = Worker(
            tenant_id=tenant_id,
            user_id=user_id,
            name=name,
            email=email,
            phone=(data.get('phone') or '').strip() or None,
            active=bool(data.get('isActive', True)),
        )
        session.add(worker)
        session.commit()

        logger.info(f"Worker '{name}' created for tenant {tenant_id} (login={'yes' if user_id else 'no'})")
        return worker

    except Exception:
        session.rollback()
        raise


def update_worker(session, tenant_id: int, worker_id: int, data: dict) -> Worker:
    worker = get_worker(session, tenant_id, worker_id)

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            session.rollback()
            raise ValidationError('El nombre es requerido', field='name')
        worker.name = name
    if 'email' in data:
        email = (data.get('email') or '').strip().lower()
        if not is_valid_email(email):
            session.rollback()
            raise ValidationError('Email inválido', field='email')
        worker.email = email
    if 'phone' in data:
        worker.phone = (data.get('phone') or '').strip() or None
    if 'isActive' in data:
        worker.active = bool(data['isActive'])

    session.commit()
    return worker
