import pytest
import uuid

from ealbaran import create_app
from ealbaran.database import create_all, drop_all, get_session
from ealbaran.models import Tenant, AppUser, UserTenant, Worker
from ealbaran.services.delivery_note_service import create_delivery_note

# Data URL payloads long enough to pass the presence thresholds
SIGNATURE = 'data:image/png;base64,' + 'iVBORw0KGgo' * 20
PHOTO = 'data:image/jpeg;base64,' + '/9j/4AAQSkZJRgABAQ' * 20


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(autouse=True)
def database(app):
    """Fresh schema for every test (in-memory SQLite)."""
    create_all()
    yield
    get_session().remove()
    drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


def _detached(session, obj):
    """
    Refresh and expunge so the instance keeps its loaded attributes after
    the request teardown removes the scoped session.
    """
    session.refresh(obj)
    session.expunge(obj)
    return obj


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(slug=f'{label}-{suffix}', name=f'Transportes {label} {suffix}', active=True)
    session.add(tenant)
    session.commit()
    return _detached(session, tenant)


def _make_user(session, tenant_id, role, label):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(email=f'{label}-{suffix}@test.com', full_name=f'User {label}', active=True)
    user.set_password('password123')
    session.add(user)
    session.flush()
    session.add(UserTenant(user_id=user.id, tenant_id=tenant_id, role=role, active=True))
    session.commit()
    return _detached(session, user)


def _login(client, user_id, tenant_id):
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
        sess['tenant_id'] = tenant_id
    return client


@pytest.fixture(scope='function')
def tenant1(session):
    return _make_tenant(session, 'tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    return _make_tenant(session, 'tenant-2')


@pytest.fixture(scope='function')
def owner1(session, tenant1):
    return _make_user(session, tenant1.id, 'OWNER', 'owner1')


@pytest.fixture(scope='function')
def owner2(session, tenant2):
    return _make_user(session, tenant2.id, 'OWNER', 'owner2')


@pytest.fixture(scope='function')
def worker_user1(session, tenant1):
    return _make_user(session, tenant1.id, 'WORKER', 'driver1')


@pytest.fixture(scope='function')
def worker1(session, tenant1, worker_user1):
    """Worker of tenant1 with a WORKER login."""
    worker = Worker(
        tenant_id=tenant1.id,
        user_id=worker_user1.id,
        name='Juan Conductor',
        email=worker_user1.email,
        active=True,
    )
    session.add(worker)
    session.commit()
    return _detached(session, worker)


@pytest.fixture(scope='function')
def worker2(session, tenant1):
    """Second worker of tenant1, without login."""
    worker = Worker(tenant_id=tenant1.id, name='Ana Conductora', email='ana@test.com', active=True)
    session.add(worker)
    session.commit()
    return _detached(session, worker)


@pytest.fixture(scope='function')
def admin_client(client, owner1, tenant1):
    """Test client logged in as the OWNER of tenant1."""
    return _login(client, owner1.id, tenant1.id)


@pytest.fixture(scope='function')
def admin_client2(app, owner2, tenant2):
    """Test client logged in as the OWNER of tenant2."""
    return _login(app.test_client(), owner2.id, tenant2.id)


@pytest.fixture(scope='function')
def worker_client(app, worker_user1, worker1, tenant1):
    """Test client logged in as worker1."""
    return _login(app.test_client(), worker_user1.id, tenant1.id)


@pytest.fixture(scope='function')
def make_note(session, tenant1):
    """Factory creating active notes in tenant1 through the service."""
    def _make(**fields):
        payload = {
            'tenant_id': fields.pop('tenant_id', tenant1.id),
            'clientName': 'Construcciones García',
            'pickupOrigins': [{'name': 'Almacén Norte', 'address': 'Calle Mayor 1, Madrid'}],
            'destination': 'Obra Sur, Getafe',
            'vehicleType': 'Furgoneta',
            'date': '2024-03-15',
            'time': '09:30',
        }
        payload.update(fields)
        return create_delivery_note(payload, session)
    return _make


@pytest.fixture(scope='function')
def signed_note(make_note):
    """Fully signed note (dual scheme)."""
    return make_note(
        originSignature=SIGNATURE,
        originSignatureDocument='12345678A',
        destinationSignature=SIGNATURE,
        destinationSignatureDocument='87654321B',
        photo=PHOTO,
    )
