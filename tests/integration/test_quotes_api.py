"""
Integration tests for pricing, quotes, worker assignment and the CLI.
"""

import os


def _setup_pricing(client):
    response = client.post('/api/pricing-rules', json={
        'zone': 1, 'name': 'Local', 'minKm': 0, 'maxKm': 100, 'basePrice': '30', 'pricePerKm': '1.20',
    })
    assert response.status_code == 201
    vehicle = client.post('/api/vehicle-types', json={'name': 'Camión', 'priceMultiplier': '1.5'})
    assert vehicle.status_code == 201
    return vehicle.get_json()


class TestQuoteFlow:

    def test_quote_to_assigned_order(self, admin_client, worker_client, worker1):
        worker_id = worker1.id
        vehicle = _setup_pricing(admin_client)

        response = admin_client.post('/api/calculate-quote', json={
            'origin': 'Madrid', 'destination': 'Alcalá de Henares',
            'distanceKm': 35, 'vehicleTypeId': vehicle['id'], 'isUrgent': True,
        })
        assert response.status_code == 201
        quote = response.get_json()
        assert quote['totalPrice'] == 135.0
        assert quote['status'] == 'pending'

        assert admin_client.post(f"/api/quotes/{quote['id']}/confirm").get_json()['status'] == 'confirmed'

        response = admin_client.patch(f"/api/quotes/{quote['id']}/assign-worker", json={'workerId': worker_id})
        assert response.status_code == 200
        assert response.get_json()['workerId'] == worker_id

        orders = worker_client.get(f'/api/workers/{worker_id}/orders').get_json()
        assert [q['id'] for q in orders] == [quote['id']]
        assert worker_client.get(f"/api/quotes/{quote['id']}").status_code == 200

    def test_assign_requires_worker_id(self, admin_client):
        _setup_pricing(admin_client)
        quote = admin_client.post('/api/calculate-quote', json={
            'origin': 'Madrid', 'destination': 'Getafe', 'distanceKm': 15,
        }).get_json()

        assert admin_client.patch(f"/api/quotes/{quote['id']}/assign-worker", json={}).status_code == 400

    def test_worker_cannot_manage_pricing(self, worker_client):
        response = worker_client.post('/api/pricing-rules', json={
            'zone': 1, 'minKm': 0, 'maxKm': 10, 'basePrice': '1', 'pricePerKm': '1',
        })
        assert response.status_code == 403
        assert worker_client.get('/api/quotes').status_code == 403

    def test_worker_cannot_see_other_orders(self, worker_client, worker2):
        assert worker_client.get(f'/api/workers/{worker2.id}/orders').status_code == 403


class TestWorkersApi:

    def test_create_worker_with_login(self, admin_client, app):
        response = admin_client.post('/api/workers', json={
            'name': 'Pedro Ruta', 'email': 'pedro@ruta.es', 'password': 'conductor1',
        })
        assert response.status_code == 201
        worker = response.get_json()
        assert worker['userId'] is not None

        driver = app.test_client()
        login = driver.post('/api/login', json={'email': 'pedro@ruta.es', 'password': 'conductor1'}).get_json()
        assert login['role'] == 'WORKER'
        assert login['workerId'] == worker['id']

    def test_deactivate_worker(self, admin_client, worker2):
        response = admin_client.patch(f'/api/workers/{worker2.id}', json={'isActive': False})
        assert response.get_json()['isActive'] is False
        assert admin_client.get('/api/workers?active=1').get_json() == []


class TestCli:

    def test_create_owner_and_backup(self, app, tmp_path):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'create-owner', '--email', 'cli@test.com', '--password', 'secreto123', '--company', 'Transportes CLI',
        ])
        assert result.exit_code == 0
        assert 'Empresa creada' in result.output

        result = runner.invoke(args=['backup-tenants', '--target-dir', str(tmp_path)])
        assert result.exit_code == 0
        assert '1/1 backups' in result.output
        assert len(os.listdir(tmp_path)) == 1
