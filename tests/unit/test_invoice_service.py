"""
Unit tests for invoicing: the gate on signed notes, totals and note release.
"""

import pytest
from datetime import date
from decimal import Decimal

from ealbaran.exceptions import BusinessLogicError, NotFoundError, ValidationError
from ealbaran.models import DeliveryNote
from ealbaran.services import invoice_service
from ealbaran.services.delivery_note_service import trash_delivery_note


def _payload(tenant_id, **extra):
    payload = {
        'tenant_id': tenant_id,
        'customerName': 'Construcciones García',
        'defaultUnitPrice': '150',
    }
    payload.update(extra)
    return payload


class TestCreateInvoice:

    def test_marks_notes_invoiced(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(
            _payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session
        )

        note = session.query(DeliveryNote).filter_by(id=signed_note.id).one()
        assert note.is_invoiced is True
        assert note.invoiced_at is not None
        assert invoice.delivery_note_ids == [note.id]

    def test_invoiced_note_not_eligible_again(self, session, signed_note, tenant1):
        invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

        assert invoice_service.list_invoiceable_notes(session, tenant1.id) == []
        with pytest.raises(BusinessLogicError):
            invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

    def test_unsigned_note_rejected(self, session, make_note, tenant1):
        note = make_note()
        with pytest.raises(BusinessLogicError):
            invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[note.id]), session)

        assert session.query(DeliveryNote).filter_by(id=note.id).one().is_invoiced is False

    def test_trashed_note_rejected(self, session, signed_note, tenant1, owner1):
        trash_delivery_note(session, tenant1.id, signed_note.id, owner1.id)
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

    def test_other_tenant_note_rejected(self, session, signed_note, tenant2):
        with pytest.raises(NotFoundError):
            invoice_service.create_invoice(_payload(tenant2.id, deliveryNoteIds=[signed_note.id]), session)

    def test_duplicate_line_rejected(self, session, signed_note, tenant1):
        lines = [{'deliveryNoteId': signed_note.id}, {'deliveryNoteId': signed_note.id}]
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(_payload(tenant1.id, lines=lines), session)

    def test_totals(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(
            tenant1.id,
            lines=[
                {'deliveryNoteId': signed_note.id, 'unitPrice': '100.00'},
                {'description': 'Espera en destino', 'quantity': 2, 'unitPrice': '12,50'},
            ],
            taxRate='21',
        ), session)

        assert invoice.subtotal == Decimal('125.00')
        assert invoice.tax_amount == Decimal('26.25')
        assert invoice.total == Decimal('151.25')
        assert invoice.invoice_number == 1
        assert invoice.status == 'pending'

    def test_line_description_from_note(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

        description = invoice.line_items[0].description
        assert f'#{signed_note.note_number}' in description

    def test_due_date_defaults(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(
            tenant1.id, deliveryNoteIds=[signed_note.id], issueDate='2024-03-01', due_days=30
        ), session)

        assert invoice.issue_date == date(2024, 3, 1)
        assert invoice.due_date == date(2024, 3, 31)

    def test_requires_customer(self, session, signed_note, tenant1):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice({
                'tenant_id': tenant1.id, 'deliveryNoteIds': [signed_note.id], 'defaultUnitPrice': '1'
            }, session)

    def test_requires_lines(self, session, tenant1):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(_payload(tenant1.id), session)

    @pytest.mark.parametrize('quantity', ['NaN', 'Infinity', '-Infinity', 'sNaN', '0', '-2', 'abc', '1e40'])
    def test_invalid_quantity_rejected(self, session, signed_note, tenant1, quantity):
        with pytest.raises(ValidationError) as exc:
            invoice_service.create_invoice(_payload(
                tenant1.id, lines=[{'deliveryNoteId': signed_note.id, 'quantity': quantity}]
            ), session)
        assert exc.value.field == 'lines'

        stored = session.query(DeliveryNote).filter_by(id=signed_note.id).one()
        assert stored.is_invoiced is False

    @pytest.mark.parametrize('due_days', ['abc', None, -1, float('inf')])
    def test_invalid_due_days_rejected(self, session, signed_note, tenant1, due_days):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(_payload(
                tenant1.id, deliveryNoteIds=[signed_note.id], due_days=due_days
            ), session)

    def test_tax_rate_out_of_range(self, session, signed_note, tenant1):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(_payload(
                tenant1.id, deliveryNoteIds=[signed_note.id], taxRate='250'
            ), session)

    @pytest.mark.parametrize('extra', [
        {'lines': ['oops']},
        {'lines': {'deliveryNoteId': 1}},
        {'lines': [{'deliveryNoteId': 'uno'}]},
        {'deliveryNoteIds': 'abc'},
        {'deliveryNoteIds': [True]},
    ])
    def test_malformed_lines_rejected(self, session, tenant1, extra):
        with pytest.raises(ValidationError):
            invoice_service.create_invoice(_payload(tenant1.id, **extra), session)

    def test_sequential_numbers_and_prefix(self, session, make_note, tenant1):
        from conftest import PHOTO, SIGNATURE

        invoice_service.save_invoice_template(session, tenant1.id, {
            'companyName': 'Transportes Rápidos SL', 'invoicePrefix': 'F2024-'
        })
        first = make_note(photo=PHOTO, signature=SIGNATURE)
        second = make_note(photo=PHOTO, signature=SIGNATURE)

        one = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[first.id]), session)
        two = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[second.id]), session)

        assert (one.invoice_number, two.invoice_number) == (1, 2)
        assert two.display_number == 'F2024-2'

    def test_billing_client_snapshot(self, session, signed_note, tenant1):
        client = invoice_service.save_billing_client(session, tenant1.id, {
            'name': 'Hormigones Ruiz SA', 'taxId': 'B12345678', 'email': 'admin@ruiz.es'
        })
        invoice = invoice_service.create_invoice({
            'tenant_id': tenant1.id,
            'billingClientId': client.id,
            'deliveryNoteIds': [signed_note.id],
            'defaultUnitPrice': '80',
        }, session)

        assert invoice.customer_name == 'Hormigones Ruiz SA'
        assert invoice.customer_tax_id == 'B12345678'
        assert invoice.customer_email == 'admin@ruiz.es'


class TestInvoiceLifecycle:

    def test_delete_releases_notes(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)
        result = invoice_service.delete_invoice(session, tenant1.id, invoice.id)

        assert result['released_note_ids'] == [signed_note.id]
        note = session.query(DeliveryNote).filter_by(id=signed_note.id).one()
        assert note.is_invoiced is False
        assert [n.id for n in invoice_service.list_invoiceable_notes(session, tenant1.id)] == [note.id]

    def test_status_update(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

        assert invoice_service.update_invoice_status(session, tenant1.id, invoice.id, 'paid').status == 'paid'
        with pytest.raises(ValidationError):
            invoice_service.update_invoice_status(session, tenant1.id, invoice.id, 'lost')

    def test_list_by_status(self, session, signed_note, tenant1):
        invoice = invoice_service.create_invoice(_payload(tenant1.id, deliveryNoteIds=[signed_note.id]), session)

        assert [i.id for i in invoice_service.list_invoices(session, tenant1.id, 'pending')] == [invoice.id]
        assert invoice_service.list_invoices(session, tenant1.id, 'paid') == []


class TestBillingClients:

    def test_name_required(self, session, tenant1):
        with pytest.raises(ValidationError):
            invoice_service.save_billing_client(session, tenant1.id, {'taxId': 'B1'})

    def test_update_and_delete(self, session, tenant1):
        client = invoice_service.save_billing_client(session, tenant1.id, {'name': 'Cliente A'})
        updated = invoice_service.save_billing_client(session, tenant1.id, {'phone': '600000000'}, client_id=client.id)

        assert updated.name == 'Cliente A'
        assert updated.phone == '600000000'

        invoice_service.delete_billing_client(session, tenant1.id, client.id)
        assert invoice_service.list_billing_clients(session, tenant1.id) == []

    def test_other_tenant_client_not_found(self, session, tenant1, tenant2):
        client = invoice_service.save_billing_client(session, tenant1.id, {'name': 'Cliente A'})
        with pytest.raises(NotFoundError):
            invoice_service.get_billing_client(session, tenant2.id, client.id)
