"""
Authentication service for user management.

Handles company registration, password login and tenant membership lookups.
"""
import logging
import re
import unicodedata

from sqlalchemy.exc import IntegrityError

from ealbaran.exceptions import AuthenticationError, BusinessLogicError, ValidationError
from ealbaran.models import AppUser, Tenant, UserTenant, UserRole

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 8


def is_valid_email(email: str) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from company name."""
    slug = unicodedata.normalize('NFKD', name or '')
    slug = slug.encode('ascii', 'ignore').decode('ascii')
    slug = slug.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')
    return slug[:80] or 'empresa'


def generate_unique_tenant_slug(session, company_name: str) -> str:
    """Generate a unique slug for a new tenant."""
    slug = generate_slug(company_name)
    base_slug = slug
    counter = 1
    while session.query(Tenant).filter_by(slug=slug).first():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _validate_credentials(email: str, password: str) -> None:
    if not is_valid_email(email):
        raise ValidationError('Email inválido', field='email')
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f'La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres', field='password'
        )


def register_company(session, email: str, password: str, company_name: str,
                     full_name: str = None, role: str = UserRole.OWNER.value):
    """
    Create a user, its company (tenant) and the membership linking both.

    Returns:
        tuple (AppUser, Tenant)

    Raises:
        ValidationError: invalid email, password or company name
        BusinessLogicError: email already registered
    """
    email = (email or '').strip().lower()
    company_name = (company_name or '').strip()
    _validate_credentials(email, password)
    if not company_name:
        raise ValidationError('El nombre de la empresa es requerido', field='companyName')

    if session.query(AppUser).filter_by(email=email).first():
        raise BusinessLogicError('Este email ya está registrado. Intenta iniciar sesión.')

    try:
        user = AppUser(email=email, full_name=full_name or None, active=True)
        user.set_password(password)
        session.add(user)

        tenant = Tenant(
            slug=generate_unique_tenant_slug(session, company_name),
            name=company_name,
            contact_email=email,
            active=True,
        )
        session.add(tenant)
        session.flush()

        session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, active=True))
        session.commit()

        logger.info(f"Registered company '{tenant.slug}' with owner {email}")
        return user, tenant

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Error registering company (IntegrityError): {str(e)}")
        raise BusinessLogicError('Este email ya está registrado. Intenta iniciar sesión.')


def create_tenant_user(session, tenant_id: int, email: str, password: str,
                       full_name: str = None, role: str = UserRole.WORKER.value) -> AppUser:
    """Create a login for an existing tenant (admins or workers)."""
    email = (email or '').strip().lower()
    _validate_credentials(email, password)
    if role not in {r.value for r in UserRole}:
        raise ValidationError(f'Rol inválido: {role}', field='role')

    if session.query(AppUser).filter_by(email=email).first():
        raise BusinessLogicError('Este email ya está registrado.')

    user = AppUser(email=email, full_name=full_name or None, active=True)
    user.set_password(password)
    session.add(user)
    session.flush()
    session.add(UserTenant(user_id=user.id, tenant_id=tenant_id, role=role, active=True))
    session.flush()
    return user


def authenticate(session, email: str, password: str) -> AppUser:
    """
    Check email/password.

    Raises:
        AuthenticationError: unknown user, inactive user or wrong password
    """
    email = (email or '').strip().lower()
    user = session.query(AppUser).filter_by(email=email).first()
    if not user or not user.active or not user.check_password(password or ''):
        logger.warning(f"Failed login attempt for {email}")
        raise AuthenticationError('Email o contraseña incorrectos')
    return user


def get_user_tenants(session, user_id):
    """
    Get active tenants for a user.

    Returns:
        list[UserTenant]: List of active user-tenant relationships
    """
    return session.query(UserTenant).filter_by(
        user_id=user_id,
        active=True
    ).all()
