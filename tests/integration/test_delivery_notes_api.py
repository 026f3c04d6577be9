"""
Integration tests for the delivery notes API: signing flow, trash and invoicing.
"""

from conftest import PHOTO, SIGNATURE
from ealbaran.models import AuditAction, AuditLog, DeliveryNote


NOTE_PAYLOAD = {
    'clientName': 'Construcciones García',
    'pickupOrigins': [{'name': 'Almacén Norte', 'address': 'Calle Mayor 1, Madrid'}],
    'destination': 'Obra Sur, Getafe',
    'vehicleType': 'Furgoneta',
    'date': '2024-03-15',
    'time': '09:30',
}


def _create(client, **extra):
    response = client.post('/api/delivery-notes', json=dict(NOTE_PAYLOAD, **extra))
    assert response.status_code == 201
    return response.get_json()


class TestSigningFlow:

    def test_dual_signature_via_patch(self, admin_client):
        note = _create(admin_client)
        assert note['noteNumber'] == 1
        assert note['status'] == 'pending'

        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={
            'originSignature': SIGNATURE,
            'originSignatureDocument': '12345678a',
        })
        data = response.get_json()
        assert response.status_code == 200
        assert data['isFullySigned'] is False
        assert data['signingStage'] == 'origin_saved'
        assert data['originSignatureDocument'] == '12345678A'

        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={
            'destinationSignature': SIGNATURE,
            'destinationSignatureDocument': '87654321B',
            'photo': PHOTO,
        })
        data = response.get_json()
        assert data['isFullySigned'] is True
        assert data['status'] == 'signed'
        assert data['signedAt'] is not None

    def test_sign_endpoints(self, admin_client):
        note = _create(admin_client)

        state = admin_client.get(f"/api/delivery-notes/{note['id']}/signing").get_json()
        assert state['stage'] == 'no_origin'
        assert state['initialTab'] == 'origin'

        response = admin_client.post(f"/api/delivery-notes/{note['id']}/sign/origin", json={
            'document': '12345678A', 'signature': SIGNATURE,
        })
        assert response.status_code == 200

        state = admin_client.get(f"/api/delivery-notes/{note['id']}/signing").get_json()
        assert state['initialTab'] == 'destination'
        assert 'photo' in state['missing']

        response = admin_client.post(f"/api/delivery-notes/{note['id']}/sign/destination", json={
            'document': '87654321B', 'signature': SIGNATURE, 'photo': PHOTO,
        })
        assert response.status_code == 200
        assert response.get_json()['isFullySigned'] is True

    def test_short_document_returns_400(self, admin_client):
        note = _create(admin_client)
        response = admin_client.post(f"/api/delivery-notes/{note['id']}/sign/origin", json={
            'document': '1234567', 'signature': SIGNATURE,
        })

        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

    def test_overlong_values_return_400(self, admin_client):
        note = _create(admin_client)

        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={
            'originSignature': SIGNATURE, 'originSignatureDocument': 'X' * 40,
        })
        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'

        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={'status': 's' * 30})
        assert response.status_code == 400

        assert admin_client.get(f"/api/delivery-notes/{note['id']}").get_json()['version'] == 1

    def test_stale_version_returns_409(self, admin_client):
        note = _create(admin_client)
        admin_client.patch(f"/api/delivery-notes/{note['id']}", json={'observations': 'a'})

        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={
            'observations': 'b', 'expectedVersion': 1,
        })
        assert response.status_code == 409
        assert response.get_json()['currentVersion'] == 2

    def test_pdf_download(self, admin_client):
        note = _create(admin_client)
        response = admin_client.get(f"/api/delivery-notes/{note['id']}/pdf")

        assert response.status_code == 200
        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_creation_is_audited(self, admin_client, session, tenant1):
        note = _create(admin_client)
        entry = session.query(AuditLog).filter_by(
            tenant_id=tenant1.id, action=AuditAction.DELIVERY_NOTE_CREATED
        ).one()
        assert entry.resource_id == note['id']


class TestTrash:

    def test_trash_and_restore(self, admin_client):
        note = _create(admin_client)

        response = admin_client.delete(f"/api/delivery-notes/{note['id']}")
        assert response.status_code == 200
        assert admin_client.get('/api/delivery-notes').get_json() == []
        assert admin_client.get(f"/api/delivery-notes/{note['id']}").status_code == 404

        deleted = admin_client.get('/api/delivery-notes/deleted').get_json()
        assert [n['id'] for n in deleted] == [note['id']]
        assert deleted[0]['lifecycle'] == 'TRASHED'

        response = admin_client.post(f"/api/delivery-notes/{note['id']}/restore")
        assert response.status_code == 200
        assert [n['id'] for n in admin_client.get('/api/delivery-notes').get_json()] == [note['id']]

    def test_permanent_delete(self, admin_client, session):
        note = _create(admin_client)
        admin_client.delete(f"/api/delivery-notes/{note['id']}")

        response = admin_client.delete(f"/api/delivery-notes/{note['id']}/permanent")
        assert response.status_code == 200
        assert session.query(DeliveryNote).filter_by(id=note['id']).first() is None
        assert admin_client.post(f"/api/delivery-notes/{note['id']}/restore").status_code == 404

    def test_trash_shows_in_audit_trail(self, admin_client):
        note = _create(admin_client)
        admin_client.delete(f"/api/delivery-notes/{note['id']}")

        logs = admin_client.get('/api/audit-logs?action=DELIVERY_NOTE_TRASHED').get_json()
        assert [log['resourceId'] for log in logs] == [note['id']]

    def test_permanent_delete_of_active_note_rejected(self, admin_client):
        note = _create(admin_client)
        assert admin_client.delete(f"/api/delivery-notes/{note['id']}/permanent").status_code == 400


class TestInvoicingApi:

    def _signed(self, client):
        return _create(
            client,
            originSignature=SIGNATURE, originSignatureDocument='12345678A',
            destinationSignature=SIGNATURE, destinationSignatureDocument='87654321B',
            photo=PHOTO,
        )

    def test_invoice_signed_notes(self, admin_client):
        note = self._signed(admin_client)
        pending = _create(admin_client)

        invoiceable = admin_client.get('/api/invoices/invoiceable-notes').get_json()
        assert [n['id'] for n in invoiceable] == [note['id']]

        response = admin_client.post('/api/invoices', json={
            'customerName': 'Construcciones García',
            'deliveryNoteIds': [note['id']],
            'defaultUnitPrice': '100',
        })
        assert response.status_code == 201
        invoice = response.get_json()
        assert invoice['total'] == 121.0
        assert invoice['lineItems'][0]['deliveryNoteId'] == note['id']

        assert admin_client.get('/api/invoices/invoiceable-notes').get_json() == []
        assert admin_client.get(f"/api/delivery-notes/{note['id']}").get_json()['isInvoiced'] is True

        response = admin_client.post('/api/invoices', json={
            'customerName': 'Construcciones García',
            'deliveryNoteIds': [pending['id']],
            'defaultUnitPrice': '100',
        })
        assert response.status_code == 400

    def test_malformed_invoice_body_returns_400(self, admin_client):
        note = self._signed(admin_client)

        for body in (
            {'customerName': 'X', 'lines': ['oops']},
            {'customerName': 'X', 'deliveryNoteIds': 'abc'},
            {'customerName': 'X', 'lines': [{'deliveryNoteId': note['id'], 'quantity': 'NaN'}],
             'defaultUnitPrice': '100'},
            {'customerName': 'X', 'deliveryNoteIds': [note['id']], 'defaultUnitPrice': '100',
             'due_days': 'abc'},
        ):
            response = admin_client.post('/api/invoices', json=body)
            assert response.status_code == 400
            assert response.get_json()['status'] == 'error'

        assert [n['id'] for n in admin_client.get('/api/invoices/invoiceable-notes').get_json()] == [note['id']]

    def test_delete_invoice_releases_note(self, admin_client):
        note = self._signed(admin_client)
        invoice = admin_client.post('/api/invoices', json={
            'customerName': 'Construcciones García',
            'deliveryNoteIds': [note['id']],
            'defaultUnitPrice': '100',
        }).get_json()

        response = admin_client.delete(f"/api/invoices/{invoice['id']}")
        assert response.status_code == 200
        assert [n['id'] for n in admin_client.get('/api/invoices/invoiceable-notes').get_json()] == [note['id']]

    def test_invoice_pdf_and_send(self, admin_client):
        note = self._signed(admin_client)
        invoice = admin_client.post('/api/invoices', json={
            'customerName': 'Construcciones García',
            'deliveryNoteIds': [note['id']],
            'defaultUnitPrice': '100',
        }).get_json()

        pdf = admin_client.get(f"/api/invoices/{invoice['id']}/pdf")
        assert pdf.status_code == 200
        assert pdf.data.startswith(b'%PDF')

        assert admin_client.post(f"/api/invoices/{invoice['id']}/send").status_code == 400
        response = admin_client.post(f"/api/invoices/{invoice['id']}/send", json={'email': 'obra@garcia.es'})
        assert response.status_code == 200
        assert response.get_json()['success'] is True

    def test_patch_invoiced_requires_signed_note(self, admin_client):
        note = _create(admin_client)
        response = admin_client.patch(f"/api/delivery-notes/{note['id']}", json={'isInvoiced': True})
        assert response.status_code == 400

    def test_dashboard_stats(self, admin_client):
        self._signed(admin_client)
        _create(admin_client)

        stats = admin_client.get('/api/dashboard/stats').get_json()
        assert stats['deliveryNotes']['total'] == 2
        assert stats['deliveryNotes']['signed'] == 1
        assert stats['deliveryNotes']['invoiceable'] == 1
        assert stats['invoices']['count'] == 0


class TestWorkerAccess:

    def test_worker_creates_own_note(self, worker_client, worker1):
        worker_id = worker1.id
        note = _create(worker_client, workerId=9999, isInvoiced=True)

        assert note['workerId'] == worker_id
        assert note['creatorType'] == 'worker'
        assert note['isInvoiced'] is False

    def test_worker_sees_only_own_notes(self, worker_client, make_note, worker1, worker2):
        mine = make_note(workerId=worker1.id).id
        other = make_note(workerId=worker2.id).id

        listed = worker_client.get('/api/delivery-notes').get_json()
        assert [n['id'] for n in listed] == [mine]
        assert worker_client.get(f'/api/delivery-notes/{other}').status_code == 403
        assert worker_client.get(f'/api/workers/{worker2.id}/delivery-notes').status_code == 403

    def test_worker_cannot_set_invoiced(self, worker_client, make_note, worker1):
        note_id = make_note(workerId=worker1.id).id
        response = worker_client.patch(f'/api/delivery-notes/{note_id}', json={'isInvoiced': True})
        assert response.status_code == 403

    def test_worker_cannot_use_trash(self, worker_client, make_note, worker1):
        note_id = make_note(workerId=worker1.id).id

        assert worker_client.delete(f'/api/delivery-notes/{note_id}').status_code == 403
        assert worker_client.get('/api/delivery-notes/deleted').status_code == 403
        assert worker_client.get('/api/invoices').status_code == 403

    def test_worker_signs_own_note(self, worker_client, make_note, worker1):
        note_id = make_note(workerId=worker1.id).id
        response = worker_client.post(f'/api/delivery-notes/{note_id}/sign/origin', json={
            'document': '12345678A', 'signature': SIGNATURE,
        })
        assert response.status_code == 200
