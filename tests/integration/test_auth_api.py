"""
Integration tests for registration, login, logout and the session user.
"""

from ealbaran.models import AuditAction, AuditLog


class TestRegisterAndLogin:

    def test_register_opens_session(self, client):
        response = client.post('/api/register', json={
            'email': 'jefa@transportes.es',
            'password': 'secreto123',
            'companyName': 'Transportes Núñez',
            'fullName': 'Marta Núñez',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['role'] == 'OWNER'
        assert data['tenant']['slug'] == 'transportes-nunez'

        current = client.get('/api/user').get_json()
        assert current['user']['email'] == 'jefa@transportes.es'
        assert current['role'] == 'OWNER'

    def test_register_duplicate_email(self, client, owner1):
        response = client.post('/api/register', json={
            'email': owner1.email, 'password': 'secreto123', 'companyName': 'Otra',
        })
        assert response.status_code == 400

    def test_login(self, client, owner1, tenant1):
        response = client.post('/api/login', json={'email': owner1.email, 'password': 'password123'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['tenant']['id'] == tenant1.id
        assert data['role'] == 'OWNER'
        assert data['workerId'] is None
        assert client.get('/api/delivery-notes').status_code == 200

    def test_worker_login_reports_worker(self, client, worker_user1, worker1):
        response = client.post('/api/login', json={'email': worker_user1.email, 'password': 'password123'})

        data = response.get_json()
        assert data['role'] == 'WORKER'
        assert data['workerId'] == worker1.id

    def test_wrong_password(self, client, owner1, session):
        response = client.post('/api/login', json={'email': owner1.email, 'password': 'nope-nope'})

        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'
        assert session.query(AuditLog).filter_by(action=AuditAction.USER_LOGIN_FAILED).count() == 1

    def test_login_to_foreign_tenant_rejected(self, client, owner1, tenant2):
        response = client.post('/api/login', json={
            'email': owner1.email, 'password': 'password123', 'tenantId': tenant2.id,
        })
        assert response.status_code == 401

    def test_missing_credentials(self, client):
        assert client.post('/api/login', json={'email': 'x@test.com'}).status_code == 400


class TestSession:

    def test_logout(self, admin_client):
        assert admin_client.post('/api/logout').get_json() == {'success': True}
        assert admin_client.get('/api/user').status_code == 401

    def test_anonymous_requests_rejected(self, client):
        for url in ('/api/delivery-notes', '/api/invoices', '/api/dashboard/stats', '/api/user'):
            response = client.get(url)
            assert response.status_code == 401
            assert response.get_json()['error'] == 'Debes iniciar sesión'

    def test_csrf_token(self, client):
        assert 'csrfToken' in client.get('/api/csrf-token').get_json()

    def test_unknown_route_is_json_404(self, admin_client):
        response = admin_client.get('/api/does-not-exist')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_metrics_endpoint(self, client):
        response = client.get('/metrics')
        assert response.status_code == 200
        assert b'ealbaran_delivery_notes_signed_total' in response.data
