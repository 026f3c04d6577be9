"""Invoices blueprint - invoices from signed delivery notes, template and billing clients."""
import logging
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request, send_file, Response

from ealbaran.database import get_session
from ealbaran.exceptions import BusinessLogicError, ValidationError
from ealbaran.middleware import require_login, require_role, require_tenant
from ealbaran.models import AuditAction, UserRole
from ealbaran.services import invoice_service
from ealbaran.services.audit_service import record_action

logger = logging.getLogger(__name__)

invoices_bp = Blueprint('invoices', __name__, url_prefix='/api')


def _company_name() -> str:
    template = invoice_service.get_invoice_template(get_session(), g.tenant_id)
    if template and template.company_name:
        return template.company_name
    return current_app.config.get('BUSINESS_NAME', 'eAlbarán')


def _body() -> dict:
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la petición debe ser un objeto JSON')
    return data


# ============================================================================
# Invoices
# ============================================================================

@invoices_bp.route('/invoices', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_invoices() -> Response:
    db_session = get_session()
    invoices = invoice_service.list_invoices(db_session, g.tenant_id, request.args.get('status') or None)
    return jsonify([invoice.to_dict(include_lines=False) for invoice in invoices])


@invoices_bp.route('/invoices/invoiceable-notes', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def invoiceable_notes() -> Response:
    """Active, fully signed, not yet invoiced notes."""
    db_session = get_session()
    result = invoice_service.list_invoiceable_notes(db_session, g.tenant_id)
    return jsonify([note.to_dict(include_images=False) for note in result])


@invoices_bp.route('/invoices', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def create_invoice() -> Response:
    from ealbaran.blueprints.metrics import invoices_created_total

    db_session = get_session()
    payload = _body()

    payload['tenant_id'] = g.tenant_id
    payload['user_id'] = g.user.id
    payload.setdefault('due_days', current_app.config.get('INVOICE_DUE_DAYS', 30))
    payload['default_tax_rate'] = current_app.config.get('DEFAULT_TAX_RATE', '21')

    invoice = invoice_service.create_invoice(payload, db_session)

    invoices_created_total.inc()
    record_action(db_session, AuditAction.INVOICE_CREATED, 'invoice', invoice.id, {
        'number': invoice.display_number,
        'delivery_note_ids': invoice.delivery_note_ids,
        'total': str(invoice.total),
    })
    return jsonify(invoice.to_dict()), 201


@invoices_bp.route('/invoices/<int:invoice_id>', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def get_invoice(invoice_id: int) -> Response:
    invoice = invoice_service.get_invoice(get_session(), g.tenant_id, invoice_id)
    return jsonify(invoice.to_dict())


@invoices_bp.route('/invoices/<int:invoice_id>/status', methods=['PATCH'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def update_invoice_status(invoice_id: int) -> Response:
    db_session = get_session()
    status = _body().get('status')
    invoice = invoice_service.update_invoice_status(db_session, g.tenant_id, invoice_id, status)
    record_action(db_session, AuditAction.INVOICE_STATUS_CHANGED, 'invoice', invoice.id, {'status': status})
    return jsonify(invoice.to_dict(include_lines=False))


@invoices_bp.route('/invoices/<int:invoice_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def delete_invoice(invoice_id: int) -> Response:
    db_session = get_session()
    result = invoice_service.delete_invoice(db_session, g.tenant_id, invoice_id)
    record_action(db_session, AuditAction.INVOICE_DELETED, 'invoice', invoice_id,
                  {'released_note_ids': result['released_note_ids']})
    return jsonify(result)


@invoices_bp.route('/invoices/<int:invoice_id>/pdf', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def invoice_pdf(invoice_id: int) -> Response:
    from ealbaran.services.pdf_service import generate_invoice_pdf

    db_session = get_session()
    invoice = invoice_service.get_invoice(db_session, g.tenant_id, invoice_id)
    template = invoice_service.get_invoice_template(db_session, g.tenant_id)
    pdf_buffer = generate_invoice_pdf(invoice, template)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=request.args.get('download', '1') != '0',
        download_name=f"factura_{invoice.display_number}_{datetime.now().strftime('%Y%m%d')}.pdf"
    )


@invoices_bp.route('/invoices/<int:invoice_id>/send', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def send_invoice(invoice_id: int) -> Response:
    """E-mail the invoice PDF to the customer (or to the address in the body)."""
    from ealbaran.services.email_service import send_invoice_email
    from ealbaran.services.pdf_service import generate_invoice_pdf

    db_session = get_session()
    invoice = invoice_service.get_invoice(db_session, g.tenant_id, invoice_id)
    to_email = _body().get('email') or invoice.customer_email
    if not to_email:
        raise ValidationError('La factura no tiene email de cliente', field='email')

    template = invoice_service.get_invoice_template(db_session, g.tenant_id)
    pdf = generate_invoice_pdf(invoice, template).getvalue()
    if not send_invoice_email(to_email, invoice, pdf, _company_name()):
        raise BusinessLogicError('No se pudo enviar el email. Revisa la configuración de correo.')
    return jsonify({'success': True, 'message': f'Factura enviada a {to_email}'})


# ============================================================================
# Invoice template
# ============================================================================

@invoices_bp.route('/invoice-template', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def get_invoice_template() -> Response:
    template = invoice_service.get_invoice_template(get_session(), g.tenant_id)
    return jsonify(template.to_dict() if template else None)


@invoices_bp.route('/invoice-template', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def save_invoice_template() -> Response:
    db_session = get_session()
    template = invoice_service.save_invoice_template(db_session, g.tenant_id, _body())
    record_action(db_session, AuditAction.SETTINGS_CHANGED, 'invoice_template', template.id)
    return jsonify(template.to_dict())


# ============================================================================
# Billing clients
# ============================================================================

@invoices_bp.route('/billing-clients', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_billing_clients() -> Response:
    clients = invoice_service.list_billing_clients(get_session(), g.tenant_id)
    return jsonify([client.to_dict() for client in clients])


@invoices_bp.route('/billing-clients', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def create_billing_client() -> Response:
    client = invoice_service.save_billing_client(get_session(), g.tenant_id, _body())
    return jsonify(client.to_dict()), 201


@invoices_bp.route('/billing-clients/<int:client_id>', methods=['PATCH'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def update_billing_client(client_id: int) -> Response:
    client = invoice_service.save_billing_client(
        get_session(), g.tenant_id, _body(), client_id=client_id
    )
    return jsonify(client.to_dict())


@invoices_bp.route('/billing-clients/<int:client_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def delete_billing_client(client_id: int) -> Response:
    invoice_service.delete_billing_client(get_session(), g.tenant_id, client_id)
    return jsonify({'success': True})
