"""Invoice service with transactional logic - Multi-Tenant."""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ealbaran.exceptions import (
    BusinessLogicError, ConflictError, NotFoundError, ValidationError
)
from ealbaran.models import (
    BillingClient, DeliveryNote, Invoice, InvoiceLineItem, InvoiceStatus,
    InvoiceTemplate, NoteLifecycle
)
from ealbaran.services.delivery_note_service import list_invoiceable_notes  # noqa: F401
from ealbaran.utils.completion import is_invoiceable
from ealbaran.utils.number_format import parse_amount

logger = logging.getLogger(__name__)

# Column bounds of invoice amounts and quantities
MAX_AMOUNT = Decimal('1000000000000')
MAX_QUANTITY = Decimal('1000000000')

VALID_STATUSES = {status.value for status in InvoiceStatus}


def _invalidate_billing_cache(tenant_id: int) -> None:
    try:
        from ealbaran.services.cache_service import get_cache
        get_cache().invalidate(tenant_id, 'invoices', 'notes')
    except RuntimeError:
        pass  # Cache not initialized (CLI)


def _parse_date(value, field_name: str) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f'Fecha inválida en {field_name}', field=field_name)


def note_line_description(note: DeliveryNote) -> str:
    """Default invoice line text for a delivery note."""
    origins = ' / '.join(
        stop.get('name') or stop.get('address') or ''
        for stop in (note.pickup_origins or [])
    )
    parts = [f'Albarán #{note.note_number}']
    if note.client_name:
        parts.append(note.client_name)
    if origins or note.destination:
        parts.append(f'{origins} → {note.destination or ""}'.strip())
    if note.date:
        parts.append(note.date)
    return ' - '.join(parts)


def get_invoice_template(session, tenant_id: int) -> Optional[InvoiceTemplate]:
    return session.query(InvoiceTemplate).filter(InvoiceTemplate.tenant_id == tenant_id).first()


TEMPLATE_FIELDS = {
    'companyName': 'company_name',
    'companyAddress': 'company_address',
    'companyCity': 'company_city',
    'companyPostalCode': 'company_postal_code',
    'companyTaxId': 'company_tax_id',
    'companyPhone': 'company_phone',
    'companyEmail': 'company_email',
    'bankAccount': 'bank_account',
    'invoicePrefix': 'invoice_prefix',
    'footerText': 'footer_text',
}


def save_invoice_template(session, tenant_id: int, data: dict) -> InvoiceTemplate:
    """Create or update the tenant's invoice header."""
    try:
        template = get_invoice_template(session, tenant_id)
        if not template:
            template = InvoiceTemplate(tenant_id=tenant_id)
            session.add(template)

        for api_name, attr in TEMPLATE_FIELDS.items():
            if api_name in data:
                value = data[api_name]
                setattr(template, attr, value.strip() if isinstance(value, str) else value)

        if 'defaultTaxRate' in data:
            raw_rate = data['defaultTaxRate']
            try:
                template.default_tax_rate = (
                    None if raw_rate in (None, '') else parse_amount(raw_rate, 'IVA por defecto')
                )
            except ValueError as e:
                raise ValidationError(str(e), field='defaultTaxRate')

        session.commit()
        logger.info(f"[INVOICE] Template saved for tenant {tenant_id}")
        return template

    except ValidationError:
        session.rollback()
        raise


def list_billing_clients(session, tenant_id: int) -> List[BillingClient]:
    return session.query(BillingClient).filter(
        BillingClient.tenant_id == tenant_id
    ).order_by(BillingClient.name.asc()).all()


def get_billing_client(session, tenant_id: int, client_id: int) -> BillingClient:
    client = session.query(BillingClient).filter(
        BillingClient.id == client_id,
        BillingClient.tenant_id == tenant_id
    ).first()
    if not client:
        raise NotFoundError(f'Cliente #{client_id} no encontrado')
    return client


def save_billing_client(session, tenant_id: int, data: dict, client_id: Optional[int] = None) -> BillingClient:
    """Create (client_id None) or update a billing client."""
    try:
        if client_id is None:
            client = BillingClient(tenant_id=tenant_id)
            session.add(client)
        else:
            client = get_billing_client(session, tenant_id, client_id)

        for api_name, attr in (('name', 'name'), ('taxId', 'tax_id'), ('address', 'address'),
                               ('email', 'email'), ('phone', 'phone')):
            if api_name in data:
                value = data[api_name]
                setattr(client, attr, value.strip() if isinstance(value, str) else value)

        if not client.name:
            raise ValidationError('El nombre del cliente es requerido', field='name')

        session.commit()
        return client

    except (ValidationError, NotFoundError):
        session.rollback()
        raise


def delete_billing_client(session, tenant_id: int, client_id: int) -> None:
    """Remove a client; issued invoices keep their customer snapshot."""
    client = get_billing_client(session, tenant_id, client_id)
    session.query(Invoice).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.billing_client_id == client.id
    ).update({Invoice.billing_client_id: None}, synchronize_session=False)
    session.delete(client)
    session.commit()


def next_invoice_number(session, tenant_id: int) -> int:
    current = session.query(func.max(Invoice.invoice_number)).filter(
        Invoice.tenant_id == tenant_id
    ).scalar()
    return (current or 0) + 1


def list_invoices(session, tenant_id: int, status: Optional[str] = None) -> List[Invoice]:
    query = session.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if status:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.invoice_number.desc()).all()


def get_invoice(session, tenant_id: int, invoice_id: int) -> Invoice:
    invoice = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.tenant_id == tenant_id
    ).first()
    if not invoice:
        raise NotFoundError(f'Factura #{invoice_id} no encontrada')
    return invoice


def _is_id(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _expand_lines(payload: dict) -> list:
    """Merge the deliveryNoteIds shorthand into the explicit line list."""
    raw_lines = payload.get('lines') or []
    note_ids = payload.get('deliveryNoteIds') or []
    if not isinstance(raw_lines, list) or not all(isinstance(line, dict) for line in raw_lines):
        raise ValidationError('Las líneas deben ser una lista de objetos', field='lines')
    if any(line.get('deliveryNoteId') is not None and not _is_id(line['deliveryNoteId']) for line in raw_lines):
        raise ValidationError('deliveryNoteId debe ser un identificador numérico', field='lines')
    if not isinstance(note_ids, list) or not all(_is_id(note_id) for note_id in note_ids):
        raise ValidationError('deliveryNoteIds debe ser una lista de identificadores', field='deliveryNoteIds')

    lines = list(raw_lines)
    referenced = {line.get('deliveryNoteId') for line in lines if line.get('deliveryNoteId')}
    for note_id in note_ids:
        if note_id not in referenced:
            lines.append({'deliveryNoteId': note_id})
            referenced.add(note_id)
    return lines


def create_invoice(payload: dict, session) -> Invoice:
    """
    Create an invoice and mark its delivery notes as invoiced (tenant-scoped).

    Steps:
    1. Resolve customer (billing client or inline data)
    2. Validate lines; referenced notes must be invoiceable
    3. Calculate subtotal, tax and total with Decimal
    4. Create invoice + lines with the next sequential number
    5. Mark referenced notes isInvoiced/invoicedAt
    6. Commit transaction

    Args:
        payload: Dictionary with:
            - tenant_id: int (REQUIRED)
            - user_id: int | None
            - billingClientId | customerName (+ customerTaxId, customerAddress, customerEmail)
            - deliveryNoteIds: list[int]
            - lines: list of {deliveryNoteId?, description?, quantity?, unitPrice?}
            - taxRate, issueDate, dueDate, notes, defaultUnitPrice
            - due_days: int (default days until due date)
        session: SQLAlchemy session

    Returns:
        The persisted Invoice

    Raises:
        ValidationError: invalid data
        BusinessLogicError: a referenced note is not invoiceable
    """
    try:
        tenant_id = payload.get('tenant_id')
        if not tenant_id:
            raise ValidationError('tenant_id es requerido')

        template = get_invoice_template(session, tenant_id)

        # Step 1: customer snapshot
        client = None
        if payload.get('billingClientId'):
            client = get_billing_client(session, tenant_id, payload['billingClientId'])
        customer_name = (payload.get('customerName') or (client.name if client else '') or '').strip()
        if not customer_name:
            raise ValidationError('El cliente de la factura es requerido', field='customerName')

        # Step 2: lines
        raw_lines = _expand_lines(payload)
        if not raw_lines:
            raise ValidationError('Debe agregar al menos un albarán o línea a la factura', field='lines')

        default_price = payload.get('defaultUnitPrice')
        validated_lines = []
        notes_to_mark = []
        subtotal = Decimal('0.00')

        for position, line in enumerate(raw_lines):
            note = None
            note_id = line.get('deliveryNoteId')
            if note_id:
                note = session.query(DeliveryNote).filter(
                    DeliveryNote.id == note_id,
                    DeliveryNote.tenant_id == tenant_id,
                    DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value
                ).first()
                if not note:
                    raise NotFoundError(f'Albarán #{note_id} no encontrado')
                if not is_invoiceable(note):
                    reason = 'ya está facturado' if note.is_invoiced else 'no está firmado'
                    raise BusinessLogicError(
                        f'El albarán #{note.note_number} {reason} y no puede facturarse'
                    )
                if note in notes_to_mark:
                    raise ValidationError(
                        f'El albarán #{note.note_number} aparece más de una vez', field='lines'
                    )
                notes_to_mark.append(note)

            description = (line.get('description') or '').strip()
            if not description:
                if not note:
                    raise ValidationError(f'La línea {position + 1} necesita descripción', field='lines')
                description = note_line_description(note)

            raw_price = line.get('unitPrice')
            if raw_price in (None, '') and note is not None and note.quote is not None:
                raw_price = note.quote.total_price
            if raw_price in (None, ''):
                raw_price = default_price
            try:
                unit_price = parse_amount(raw_price, f'precio de la línea {position + 1}')
                quantity = Decimal(str(line.get('quantity') or 1))
            except (ValueError, ArithmeticError) as e:
                raise ValidationError(str(e), field='lines')
            if not quantity.is_finite() or quantity <= 0:
                raise ValidationError(f'La cantidad de la línea {position + 1} debe ser mayor a 0', field='lines')
            if quantity >= MAX_QUANTITY or quantity != quantity.quantize(Decimal('0.001')):
                raise ValidationError(f'Cantidad inválida en la línea {position + 1}', field='lines')

            if unit_price >= MAX_AMOUNT or quantity * unit_price >= MAX_AMOUNT:
                raise ValidationError(f'Importe fuera de rango en la línea {position + 1}', field='lines')
            amount = (quantity * unit_price).quantize(Decimal('0.01'))
            subtotal += amount
            validated_lines.append(InvoiceLineItem(
                delivery_note_id=note.id if note else None,
                position=position,
                description=description,
                quantity=quantity,
                unit_price=unit_price,
                amount=amount,
            ))

        # Step 3: totals
        raw_rate = payload.get('taxRate')
        if raw_rate in (None, ''):
            raw_rate = template.default_tax_rate if template and template.default_tax_rate is not None \
                else payload.get('default_tax_rate', '21')
        try:
            tax_rate = parse_amount(raw_rate, 'IVA')
        except (ValueError, ArithmeticError) as e:
            raise ValidationError(str(e), field='taxRate')
        if tax_rate > 100:
            raise ValidationError('El IVA no puede superar el 100%', field='taxRate')
        subtotal = subtotal.quantize(Decimal('0.01'))
        tax_amount = (subtotal * tax_rate / Decimal('100')).quantize(Decimal('0.01'))
        total = subtotal + tax_amount
        if total >= MAX_AMOUNT:
            raise ValidationError('El total de la factura está fuera de rango', field='lines')

        issue_date = _parse_date(payload.get('issueDate'), 'issueDate') or date.today()
        due_date = _parse_date(payload.get('dueDate'), 'dueDate')
        if due_date is None:
            try:
                due_days = int(payload.get('due_days', 30))
            except (TypeError, ValueError, OverflowError):
                raise ValidationError('Los días de vencimiento deben ser un número entero', field='due_days')
            if not 0 <= due_days <= 3650:
                raise ValidationError('Los días de vencimiento están fuera de rango', field='due_days')
            due_date = issue_date + timedelta(days=due_days)
        if due_date < issue_date:
            raise ValidationError('El vencimiento no puede ser anterior a la emisión', field='dueDate')

        # Step 4: invoice
        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=next_invoice_number(session, tenant_id),
            invoice_prefix=template.invoice_prefix if template else None,
            billing_client_id=client.id if client else None,
            customer_name=customer_name,
            customer_tax_id=payload.get('customerTaxId') or (client.tax_id if client else None),
            customer_address=payload.get('customerAddress') or (client.address if client else None),
            customer_email=payload.get('customerEmail') or (client.email if client else None),
            issue_date=issue_date,
            due_date=due_date,
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            total=total,
            status=InvoiceStatus.PENDING.value,
            notes=payload.get('notes'),
            created_by=payload.get('user_id'),
        )
        invoice.line_items = validated_lines
        session.add(invoice)

        # Step 5: gate bookkeeping, same transaction
        now = datetime.now(timezone.utc)
        for note in notes_to_mark:
            note.is_invoiced = True
            note.invoiced_at = now
            note.version = (note.version or 0) + 1

        session.commit()

        logger.info(
            f"[INVOICE] Invoice {invoice.display_number} created for tenant {tenant_id} "
            f"with {len(validated_lines)} lines, total {total}"
        )
        _invalidate_billing_cache(tenant_id)
        return invoice

    except (ValidationError, BusinessLogicError, NotFoundError):
        session.rollback()
        raise

    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[INVOICE] Integrity error creating invoice: {e.orig}")
        raise ConflictError('El número de factura ya fue asignado. Intente nuevamente.')


def update_invoice_status(session, tenant_id: int, invoice_id: int, status: str) -> Invoice:
    if status not in VALID_STATUSES:
        raise ValidationError(f'Estado de factura inválido: {status}', field='status')

    invoice = get_invoice(session, tenant_id, invoice_id)
    invoice.status = status
    session.commit()
    _invalidate_billing_cache(tenant_id)
    logger.info(f"[INVOICE] Invoice {invoice.display_number} -> {status}")
    return invoice


def delete_invoice(session, tenant_id: int, invoice_id: int) -> dict:
    """
    Delete an invoice and release its delivery notes.

    Notes referenced by the invoice lines go back to isInvoiced = False so
    they can be billed again.

    Returns:
        dict with the released note ids
    """
    try:
        invoice = get_invoice(session, tenant_id, invoice_id)
        note_ids = invoice.delivery_note_ids
        display_number = invoice.display_number

        released = []
        if note_ids:
            notes = session.query(DeliveryNote).filter(
                DeliveryNote.tenant_id == tenant_id,
                DeliveryNote.id.in_(note_ids)
            ).all()
            for note in notes:
                note.is_invoiced = False
                note.invoiced_at = None
                note.version = (note.version or 0) + 1
                released.append(note.id)

        session.delete(invoice)
        session.commit()

        logger.info(f"[INVOICE] Invoice {display_number} deleted, released notes {released}")
        _invalidate_billing_cache(tenant_id)
        return {
            'success': True,
            'message': f'Factura {display_number} eliminada',
            'released_note_ids': released,
        }

    except NotFoundError:
        session.rollback()
        raise
