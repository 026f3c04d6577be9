"""Delivery note service - creation, partial updates and trash lifecycle (tenant-scoped)."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, cast, String
from sqlalchemy.exc import IntegrityError

from ealbaran.exceptions import (
    BusinessLogicError, ConflictError, NotFoundError, ValidationError
)
from ealbaran.models import (
    DeliveryNote, NoteLifecycle, CreatorType, Quote, Worker
)
from ealbaran.utils.completion import (
    DOCUMENT_MIN_LENGTH, PHOTO_MIN_LENGTH,
    has_valid_photo, is_fully_signed, is_invoiceable, validate_document_id
)
from ealbaran.utils.formatters import as_utc, parse_datetime

logger = logging.getLogger(__name__)

# API field name -> model attribute
DESCRIPTIVE_FIELDS = {
    'clientName': 'client_name',
    'destination': 'destination',
    'vehicleType': 'vehicle_type',
    'date': 'date',
    'time': 'time',
    'observations': 'observations',
    'carloadDetails': 'carload_details',
}

SIGNATURE_FIELDS = {
    'originSignature': 'origin_signature',
    'originSignatureDocument': 'origin_signature_document',
    'originSignedAt': 'origin_signed_at',
    'destinationSignature': 'destination_signature',
    'destinationSignatureDocument': 'destination_signature_document',
    'destinationSignedAt': 'destination_signed_at',
    'signature': 'signature',
    'photo': 'photo',
}

STATE_FIELDS = {
    'status': 'status',
    'isInvoiced': 'is_invoiced',
    'arrivedAt': 'arrived_at',
    'departedAt': 'departed_at',
    'waitTime': 'wait_time',
    'pickupOrigins': 'pickup_origins',
    'workerId': 'worker_id',
}

UPDATABLE_FIELDS = {**DESCRIPTIVE_FIELDS, **SIGNATURE_FIELDS, **STATE_FIELDS}
_SNAKE_TO_API = {snake: api for api, snake in UPDATABLE_FIELDS.items()}

# Never writable through an update
IMMUTABLE_FIELDS = {'id', 'noteNumber', 'note_number', 'tenantId', 'tenant_id', 'createdAt', 'created_at'}

# Bounded columns of delivery_note
MAX_LENGTHS = {
    'clientName': 255,
    'vehicleType': 120,
    'date': 10,
    'time': 5,
    'status': 20,
}


def _bounded(api_name: str, value: Any) -> Any:
    """Coerce a text field to a stripped string no longer than its column."""
    if value is None:
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f'{api_name} debe ser texto', field=api_name)
    value = str(value).strip()
    limit = MAX_LENGTHS.get(api_name)
    if limit is not None and len(value) > limit:
        raise ValidationError(f'{api_name} no puede superar {limit} caracteres', field=api_name)
    return value


def normalize_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map an update payload to API (camelCase) keys, dropping unknown and
    immutable fields. snake_case keys are accepted too.
    """
    normalized = {}
    for key, value in (changes or {}).items():
        if key in IMMUTABLE_FIELDS:
            continue
        if key in UPDATABLE_FIELDS:
            normalized[key] = value
        elif key in _SNAKE_TO_API:
            normalized[_SNAKE_TO_API[key]] = value
    return normalized


def _normalize_pickup_origins(value: Any) -> List[Dict[str, Any]]:
    """Validate the ordered list of pickup stops; at least one is required."""
    if isinstance(value, str):
        value = [{'name': value, 'address': value}]
    if not isinstance(value, list) or not value:
        raise ValidationError('Debe indicar al menos un origen de recogida', field='pickupOrigins')

    origins = []
    for idx, stop in enumerate(value, start=1):
        if not isinstance(stop, dict):
            raise ValidationError(f'Origen de recogida #{idx} inválido', field='pickupOrigins')
        name = (stop.get('name') or '').strip()
        address = (stop.get('address') or '').strip()
        if not name and not address:
            raise ValidationError(
                f'El origen de recogida #{idx} necesita nombre o dirección', field='pickupOrigins'
            )
        origin = dict(stop)
        origin['name'] = name or address
        origin['address'] = address or name
        origins.append(origin)
    return origins


def get_delivery_note(session, tenant_id: int, note_id: int, include_trashed: bool = False) -> DeliveryNote:
    """
    Fetch a note of the tenant.

    Raises:
        NotFoundError: if the note does not exist, belongs to another tenant,
            or is trashed and include_trashed is False.
    """
    query = session.query(DeliveryNote).filter(
        DeliveryNote.id == note_id,
        DeliveryNote.tenant_id == tenant_id
    )
    if not include_trashed:
        query = query.filter(DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value)

    note = query.first()
    if not note:
        raise NotFoundError(f'Albarán #{note_id} no encontrado')
    return note


def next_note_number(session, tenant_id: int) -> int:
    """Next sequential note number for the tenant (trashed notes keep their numbers)."""
    current = session.query(func.max(DeliveryNote.note_number)).filter(
        DeliveryNote.tenant_id == tenant_id
    ).scalar()
    return (current or 0) + 1


def _invalidate_notes_cache(tenant_id: int) -> None:
    try:
        from ealbaran.services.cache_service import get_cache
        get_cache().invalidate(tenant_id, 'notes')
    except RuntimeError:
        pass  # Cache not initialized (CLI)


def _apply_photo(note: DeliveryNote, photo: Any, photo_min_length: int, photo_options: Optional[dict]) -> None:
    if photo in (None, ''):
        note.photo = None
        return
    if not has_valid_photo(photo, photo_min_length):
        raise ValidationError('La foto de entrega no es válida o está vacía', field='photo')
    if photo_options and photo_options.get('enabled'):
        from ealbaran.services.photo_service import compress_photo_data_url
        try:
            photo = compress_photo_data_url(
                photo,
                max_width=photo_options.get('max_width', 1200),
                quality=photo_options.get('quality', 70)
            )
        except ValidationError as e:
            # Stored as received
            logger.warning(f"[NOTES] Photo of note #{note.note_number} not compressed: {e.message}")
    note.photo = photo


def _apply_signature_slot(note: DeliveryNote, prefix: str, changes: Dict[str, Any],
                          now: datetime, document_min_length: int) -> None:
    """
    Apply one signature sub-record ('origin' or 'destination').

    The *_signed_at timestamp is written once: a value sent by the client is
    used only if the slot was never signed, otherwise it is ignored.
    """
    sig_key = f'{prefix}Signature'
    doc_key = f'{prefix}SignatureDocument'
    at_key = f'{prefix}SignedAt'
    label = 'documento de origen' if prefix == 'origin' else 'documento de destino'

    if sig_key in changes:
        setattr(note, f'{prefix}_signature', changes[sig_key] or None)

    if doc_key in changes:
        raw_document = changes[doc_key]
        if raw_document in (None, ''):
            setattr(note, f'{prefix}_signature_document', None)
        else:
            setattr(note, f'{prefix}_signature_document',
                    validate_document_id(raw_document, label=label, min_length=document_min_length))

    touched = sig_key in changes or doc_key in changes or at_key in changes
    has_data = getattr(note, f'{prefix}_signature') or getattr(note, f'{prefix}_signature_document')
    if touched and has_data and getattr(note, f'{prefix}_signed_at') is None:
        try:
            signed_at = parse_datetime(changes.get(at_key)) or now
        except ValueError:
            raise ValidationError('Fecha de firma inválida', field=at_key)
        setattr(note, f'{prefix}_signed_at', signed_at)


def apply_changes(note: DeliveryNote, changes: Dict[str, Any], session=None,
                  document_min_length: int = DOCUMENT_MIN_LENGTH,
                  photo_min_length: int = PHOTO_MIN_LENGTH,
                  photo_options: Optional[dict] = None) -> List[str]:
    """
    Merge a partial update into a note (PATCH semantics).

    Only keys present in changes are touched. Returns the list of API field
    names that were applied.

    Raises:
        ValidationError: on malformed values.
        BusinessLogicError: when marking as invoiced a note that is not signed.
    """
    changes = normalize_changes(changes)
    now = datetime.now(timezone.utc)

    for api_name, attr in DESCRIPTIVE_FIELDS.items():
        if api_name in changes:
            value = changes[api_name]
            setattr(note, attr, _bounded(api_name, value))

    if 'pickupOrigins' in changes:
        note.pickup_origins = _normalize_pickup_origins(changes['pickupOrigins'])

    if 'workerId' in changes:
        worker_id = changes['workerId']
        if worker_id is not None and session is not None:
            worker = session.query(Worker).filter(
                Worker.id == worker_id,
                Worker.tenant_id == note.tenant_id
            ).first()
            if not worker:
                raise ValidationError(f'Trabajador #{worker_id} no encontrado', field='workerId')
        note.worker_id = worker_id

    if 'waitTime' in changes:
        wait_time = changes['waitTime']
        if wait_time is not None:
            try:
                wait_time = int(wait_time)
            except (TypeError, ValueError):
                raise ValidationError('El tiempo de espera debe ser un número de minutos', field='waitTime')
            if wait_time < 0:
                raise ValidationError('El tiempo de espera no puede ser negativo', field='waitTime')
        note.wait_time = wait_time

    _apply_signature_slot(note, 'origin', changes, now, document_min_length)
    _apply_signature_slot(note, 'destination', changes, now, document_min_length)

    if 'signature' in changes:
        note.signature = changes['signature'] or None

    if 'photo' in changes:
        _apply_photo(note, changes['photo'], photo_min_length, photo_options)

    for api_name in ('arrivedAt', 'departedAt'):
        if api_name in changes:
            try:
                setattr(note, STATE_FIELDS[api_name], parse_datetime(changes[api_name]))
            except ValueError:
                raise ValidationError(f'Fecha inválida en {api_name}', field=api_name)
    if note.arrived_at and note.departed_at and as_utc(note.departed_at) < as_utc(note.arrived_at):
        raise ValidationError('La hora de salida no puede ser anterior a la de llegada', field='departedAt')

    if 'status' in changes and changes['status']:
        note.status = _bounded('status', str(changes['status']))

    # Completion evaluator decides the signed status
    if is_fully_signed(note):
        if note.status in (None, '', 'pending'):
            note.status = 'signed'
        if note.signed_at is None:
            note.signed_at = now

    if 'isInvoiced' in changes:
        wants_invoiced = bool(changes['isInvoiced'])
        if wants_invoiced and not note.is_invoiced:
            if not is_fully_signed(note):
                raise BusinessLogicError(
                    f'El albarán #{note.note_number} no está firmado y no puede facturarse'
                )
            note.invoiced_at = now
        elif not wants_invoiced:
            note.invoiced_at = None
        note.is_invoiced = wants_invoiced

    return list(changes.keys())


def create_delivery_note(payload: dict, session,
                         document_min_length: int = DOCUMENT_MIN_LENGTH,
                         photo_min_length: int = PHOTO_MIN_LENGTH,
                         photo_options: Optional[dict] = None) -> DeliveryNote:
    """
    Create a delivery note with the next sequential number of the tenant.

    Args:
        payload: Dictionary with:
            - tenant_id: int (REQUIRED)
            - creator_type: 'admin' | 'worker'
            - quoteId, workerId, clientName, pickupOrigins, destination,
              vehicleType, date, time, observations, carloadDetails, waitTime,
              and optionally any signature/photo field
        session: SQLAlchemy session

    Returns:
        The persisted DeliveryNote

    Raises:
        ValidationError / BusinessLogicError: for invalid input
        ConflictError: if the note number was taken by a concurrent request
    """
    try:
        tenant_id = payload.get('tenant_id')
        if not tenant_id:
            raise ValidationError('tenant_id es requerido')

        creator_type = payload.get('creator_type') or CreatorType.ADMIN.value
        if creator_type not in (CreatorType.ADMIN.value, CreatorType.WORKER.value):
            raise ValidationError(f'Tipo de creador inválido: {creator_type}', field='creatorType')

        data = dict(payload)

        # Legacy single-origin payloads
        if 'pickupOrigins' not in data and data.get('pickupOrigin'):
            data['pickupOrigins'] = data['pickupOrigin']

        quote = None
        quote_id = data.get('quoteId')
        if quote_id:
            quote = session.query(Quote).filter(
                Quote.id == quote_id,
                Quote.tenant_id == tenant_id
            ).first()
            if not quote:
                raise ValidationError(f'Presupuesto #{quote_id} no encontrado', field='quoteId')
            # Defaults taken from the quote
            data.setdefault('clientName', quote.client_name)
            data.setdefault('destination', quote.destination)
            data.setdefault('vehicleType', quote.vehicle_type_name)
            if not data.get('pickupOrigins'):
                data['pickupOrigins'] = [{'name': quote.origin, 'address': quote.origin}]
            if not data.get('workerId') and quote.worker_id:
                data['workerId'] = quote.worker_id

        if not data.get('pickupOrigins'):
            raise ValidationError('Debe indicar al menos un origen de recogida', field='pickupOrigins')

        note = DeliveryNote(
            tenant_id=tenant_id,
            note_number=next_note_number(session, tenant_id),
            quote_id=quote.id if quote else None,
            creator_type=creator_type,
            status='pending',
            is_invoiced=False,
            lifecycle=NoteLifecycle.ACTIVE.value,
            version=1,
            pickup_origins=[],
        )

        creatable = {k: v for k, v in data.items() if k not in ('isInvoiced', 'status')}
        apply_changes(
            note, creatable, session=session,
            document_min_length=document_min_length,
            photo_min_length=photo_min_length,
            photo_options=photo_options
        )
        if data.get('status') and not is_fully_signed(note):
            note.status = _bounded('status', str(data['status']))

        session.add(note)
        session.commit()

        logger.info(f"[NOTES] Created delivery note #{note.note_number} for tenant {tenant_id}")
        _invalidate_notes_cache(tenant_id)
        return note

    except (ValidationError, BusinessLogicError):
        session.rollback()
        raise

    except IntegrityError as e:
        session.rollback()
        logger.warning(f"[NOTES] Integrity error creating note: {e.orig}")
        raise ConflictError('El número de albarán ya fue asignado. Intente nuevamente.')


def update_delivery_note(session, tenant_id: int, note_id: int, changes: dict,
                         expected_version: Optional[int] = None,
                         document_min_length: int = DOCUMENT_MIN_LENGTH,
                         photo_min_length: int = PHOTO_MIN_LENGTH,
                         photo_options: Optional[dict] = None) -> dict:
    """
    Apply a partial update to an active note in one transaction.

    When expected_version is given and differs from the stored version the
    update is rejected; without it the last writer wins.

    Returns:
        dict with 'note', 'changed' (applied field names) and
        'became_signed' (True when this update completed the note).
    """
    try:
        note = get_delivery_note(session, tenant_id, note_id)

        if expected_version is not None and int(expected_version) != note.version:
            raise ConflictError(
                f'El albarán #{note.note_number} fue modificado por otro usuario',
                current_version=note.version
            )

        was_signed = is_fully_signed(note)
        changed = apply_changes(
            note, changes, session=session,
            document_min_length=document_min_length,
            photo_min_length=photo_min_length,
            photo_options=photo_options
        )

        if changed:
            note.version = (note.version or 0) + 1
            session.commit()
            _invalidate_notes_cache(tenant_id)
            logger.info(f"[NOTES] Note #{note.note_number} updated: {', '.join(sorted(changed))}")

        return {
            'note': note,
            'changed': changed,
            'became_signed': not was_signed and is_fully_signed(note),
        }

    except (ValidationError, BusinessLogicError, NotFoundError):
        session.rollback()
        raise


def list_delivery_notes(session, tenant_id: int, worker_id: Optional[int] = None,
                        status: Optional[str] = None, signed: Optional[bool] = None,
                        invoiced: Optional[bool] = None, search: Optional[str] = None) -> List[DeliveryNote]:
    """
    Active notes of the tenant, newest first.

    The signed filter uses the shared completion predicate so that list
    filters agree with badges and the invoicing gate.
    """
    query = session.query(DeliveryNote).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value
    )

    if worker_id is not None:
        query = query.filter(DeliveryNote.worker_id == worker_id)

    if status:
        query = query.filter(DeliveryNote.status == status)

    if invoiced is not None:
        query = query.filter(DeliveryNote.is_invoiced == invoiced)

    if search:
        pattern = f'%{search}%'
        query = query.filter(
            or_(
                DeliveryNote.client_name.ilike(pattern),
                DeliveryNote.destination.ilike(pattern),
                DeliveryNote.vehicle_type.ilike(pattern),
                DeliveryNote.observations.ilike(pattern),
                cast(DeliveryNote.note_number, String).like(pattern),
            )
        )

    notes = query.order_by(DeliveryNote.note_number.desc()).all()

    if signed is not None:
        notes = [note for note in notes if is_fully_signed(note) == signed]

    return notes


def list_invoiceable_notes(session, tenant_id: int) -> List[DeliveryNote]:
    """Notes eligible for invoice line-item selection."""
    notes = session.query(DeliveryNote).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value,
        DeliveryNote.is_invoiced.is_(False)
    ).order_by(DeliveryNote.note_number.asc()).all()
    return [note for note in notes if is_invoiceable(note)]


def list_deleted_delivery_notes(session, tenant_id: int) -> List[DeliveryNote]:
    """Trashed notes of the tenant, most recently deleted first."""
    return session.query(DeliveryNote).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.TRASHED.value
    ).order_by(DeliveryNote.deleted_at.desc()).all()


def trash_delivery_note(session, tenant_id: int, note_id: int, user_id: Optional[int]) -> DeliveryNote:
    """
    ACTIVE -> TRASHED. The note disappears from normal listings.

    Raises:
        NotFoundError: unknown or purged note
        BusinessLogicError: the note is already in the trash
    """
    try:
        note = get_delivery_note(session, tenant_id, note_id, include_trashed=True)
        if note.lifecycle != NoteLifecycle.ACTIVE.value:
            raise BusinessLogicError(f'El albarán #{note.note_number} ya está en la papelera')

        note.lifecycle = NoteLifecycle.TRASHED.value
        note.deleted_at = datetime.now(timezone.utc)
        note.deleted_by = user_id
        note.version = (note.version or 0) + 1
        session.commit()

        logger.info(f"[NOTES] Note #{note.note_number} moved to trash by user {user_id}")
        _invalidate_notes_cache(tenant_id)
        return note

    except (NotFoundError, BusinessLogicError):
        session.rollback()
        raise


def restore_delivery_note(session, tenant_id: int, note_id: int) -> DeliveryNote:
    """
    TRASHED -> ACTIVE.

    Raises:
        NotFoundError: unknown or purged note
        BusinessLogicError: the note is not in the trash
    """
    try:
        note = get_delivery_note(session, tenant_id, note_id, include_trashed=True)
        if note.lifecycle != NoteLifecycle.TRASHED.value:
            raise BusinessLogicError(f'El albarán #{note.note_number} no está en la papelera')

        note.lifecycle = NoteLifecycle.ACTIVE.value
        note.deleted_at = None
        note.deleted_by = None
        note.version = (note.version or 0) + 1
        session.commit()

        logger.info(f"[NOTES] Note #{note.note_number} restored")
        _invalidate_notes_cache(tenant_id)
        return note

    except (NotFoundError, BusinessLogicError):
        session.rollback()
        raise


def purge_delivery_note(session, tenant_id: int, note_id: int) -> dict:
    """
    TRASHED -> PURGED. Removes the row; irreversible.

    Invoice lines that referenced the note keep their text and amounts and
    lose the reference.

    Raises:
        NotFoundError: unknown or already purged note
        BusinessLogicError: the note is not in the trash
    """
    from ealbaran.models import InvoiceLineItem

    try:
        note = get_delivery_note(session, tenant_id, note_id, include_trashed=True)
        if note.lifecycle != NoteLifecycle.TRASHED.value:
            raise BusinessLogicError(
                f'Solo se pueden eliminar definitivamente albaranes de la papelera'
            )

        note_number = note.note_number
        session.query(InvoiceLineItem).filter(
            InvoiceLineItem.delivery_note_id == note.id
        ).update({InvoiceLineItem.delivery_note_id: None}, synchronize_session=False)
        session.delete(note)
        session.commit()

        logger.info(f"[NOTES] Note #{note_number} permanently deleted")
        _invalidate_notes_cache(tenant_id)
        return {
            'success': True,
            'message': f'Albarán #{note_number} eliminado permanentemente',
            'note_id': note_id,
            'lifecycle': NoteLifecycle.PURGED.value,
        }

    except (NotFoundError, BusinessLogicError):
        session.rollback()
        raise


def toggle_invoiced(session, tenant_id: int, note_id: int) -> DeliveryNote:
    """Admin correction path: flip is_invoiced on a note."""
    note = get_delivery_note(session, tenant_id, note_id)
    result = update_delivery_note(session, tenant_id, note_id, {'isInvoiced': not note.is_invoiced})
    return result['note']


def get_delivery_note_stats(session, tenant_id: int) -> dict:
    """Counters for the admin dashboard."""
    notes = session.query(DeliveryNote).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.ACTIVE.value
    ).all()
    trashed = session.query(func.count(DeliveryNote.id)).filter(
        DeliveryNote.tenant_id == tenant_id,
        DeliveryNote.lifecycle == NoteLifecycle.TRASHED.value
    ).scalar()

    signed = [note for note in notes if is_fully_signed(note)]
    return {
        'total': len(notes),
        'signed': len(signed),
        'pending': len(notes) - len(signed),
        'invoiced': sum(1 for note in notes if note.is_invoiced),
        'invoiceable': sum(1 for note in notes if is_invoiceable(note)),
        'trashed': trashed or 0,
    }
