"""Delivery notes API - creation, signing, PDF and trash lifecycle (tenant-scoped)."""
import logging
from datetime import datetime
from typing import Optional

from flask import Blueprint, current_app, g, jsonify, request, send_file, Response

from ealbaran.database import get_session
from ealbaran.exceptions import UnauthorizedError, ValidationError
from ealbaran.middleware import (
    ensure_worker_scope, has_role, require_login, require_role, require_tenant
)
from ealbaran.models import AuditAction, CreatorType, UserRole
from ealbaran.services import delivery_note_service as notes
from ealbaran.services import signing_service
from ealbaran.services.audit_service import record_action
from ealbaran.utils.completion import get_missing_signature_info, signing_stage

logger = logging.getLogger(__name__)

delivery_notes_bp = Blueprint('delivery_notes', __name__, url_prefix='/api')

ADMIN_ONLY_FIELDS = {'isInvoiced', 'is_invoiced'}


def parse_bool_arg(name: str) -> Optional[bool]:
    value = request.args.get(name)
    if value is None or value == '':
        return None
    return value.lower() in ('1', 'true', 'yes', 'si', 'sí')


def business_info() -> dict:
    cfg = current_app.config
    return {
        'name': cfg.get('BUSINESS_NAME', 'eAlbarán'),
        'address': cfg.get('BUSINESS_ADDRESS', ''),
        'phone': cfg.get('BUSINESS_PHONE', ''),
        'email': cfg.get('BUSINESS_EMAIL', ''),
    }


def capture_settings() -> dict:
    """Validation thresholds and photo options from config."""
    cfg = current_app.config
    return {
        'document_min_length': cfg.get('DOCUMENT_MIN_LENGTH', 8),
        'photo_min_length': cfg.get('PHOTO_MIN_LENGTH', 100),
        'photo_options': {
            'enabled': cfg.get('PHOTO_COMPRESSION_ENABLED', False),
            'max_width': cfg.get('PHOTO_MAX_WIDTH', 1280),
            'quality': cfg.get('PHOTO_JPEG_QUALITY', 70),
        },
    }


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('El cuerpo de la petición debe ser un objeto JSON')
    return payload


def _expected_version(payload: dict) -> Optional[int]:
    value = payload.pop('expectedVersion', None)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('expectedVersion debe ser un número', field='expectedVersion')


def _load_scoped_note(db_session, note_id: int, include_trashed: bool = False):
    note = notes.get_delivery_note(db_session, g.tenant_id, note_id, include_trashed=include_trashed)
    ensure_worker_scope(note.worker_id)
    return note


def _notify_created(db_session, note) -> None:
    if not current_app.config.get('NOTIFY_ON_NOTE_CREATED', True):
        return
    from ealbaran.services.email_service import get_admin_emails, send_delivery_note_created_email

    try:
        created_by = g.user.full_name or g.user.email
        send_delivery_note_created_email(get_admin_emails(db_session, g.tenant_id), note, created_by)
    except Exception as e:
        logger.warning(f"[NOTES] Creation email failed for note {note.id}: {e}")


def _on_signed(db_session, note) -> None:
    """Side effects once a note becomes fully signed: metrics, audit, e-mail."""
    from ealbaran.blueprints.metrics import delivery_notes_signed_total

    delivery_notes_signed_total.inc()
    record_action(db_session, AuditAction.DELIVERY_NOTE_SIGNED, 'delivery_note', note.id,
                  {'note_number': note.note_number})

    if not current_app.config.get('NOTIFY_ON_NOTE_SIGNED', True):
        return
    from ealbaran.services.email_service import get_admin_emails, send_delivery_note_signed_email
    from ealbaran.services.pdf_service import generate_delivery_note_pdf

    try:
        pdf = generate_delivery_note_pdf(note, business_info()).getvalue()
        send_delivery_note_signed_email(get_admin_emails(db_session, g.tenant_id), note, pdf)
    except Exception as e:
        logger.warning(f"[NOTES] Signed email failed for note {note.id}: {e}")


def _include_images() -> bool:
    return request.args.get('images', '1') not in ('0', 'false', 'no')


# ============================================================================
# CRUD
# ============================================================================

@delivery_notes_bp.route('/delivery-notes', methods=['GET'])
@require_login
@require_tenant
def list_delivery_notes() -> Response:
    """List active notes. Workers only see their own."""
    db_session = get_session()

    worker_id = request.args.get('workerId', type=int)
    if not has_role(UserRole.ADMIN.value):
        if g.get('worker_id') is None:
            return jsonify([])
        worker_id = g.worker_id

    result = notes.list_delivery_notes(
        db_session, g.tenant_id,
        worker_id=worker_id,
        status=request.args.get('status') or None,
        signed=parse_bool_arg('signed'),
        invoiced=parse_bool_arg('invoiced'),
        search=(request.args.get('q') or '').strip() or None,
    )
    include_images = _include_images()
    return jsonify([note.to_dict(include_images=include_images) for note in result])


@delivery_notes_bp.route('/delivery-notes', methods=['POST'])
@require_login
@require_tenant
def create_delivery_note() -> Response:
    """Create a note; the server assigns noteNumber."""
    from ealbaran.blueprints.metrics import delivery_notes_created_total

    db_session = get_session()
    payload = _json_body()

    if has_role(UserRole.ADMIN.value):
        payload['creator_type'] = CreatorType.ADMIN.value
    else:
        if g.get('worker_id') is None:
            raise UnauthorizedError('Tu usuario no está vinculado a ningún trabajador')
        payload['creator_type'] = CreatorType.WORKER.value
        payload['workerId'] = g.worker_id
        payload.pop('isInvoiced', None)

    payload['tenant_id'] = g.tenant_id
    settings = capture_settings()
    note = notes.create_delivery_note(payload, db_session, **settings)

    delivery_notes_created_total.labels(creator_type=note.creator_type).inc()
    record_action(db_session, AuditAction.DELIVERY_NOTE_CREATED, 'delivery_note', note.id,
                  {'note_number': note.note_number})
    _notify_created(db_session, note)

    return jsonify(note.to_dict()), 201


@delivery_notes_bp.route('/delivery-notes/<int:note_id>', methods=['GET'])
@require_login
@require_tenant
def get_delivery_note(note_id: int) -> Response:
    db_session = get_session()
    note = _load_scoped_note(db_session, note_id)
    return jsonify(note.to_dict())


@delivery_notes_bp.route('/delivery-notes/<int:note_id>', methods=['PATCH'])
@require_login
@require_tenant
def update_delivery_note(note_id: int) -> Response:
    """
    Partial update. Only fields present in the body are written.

    Body may carry expectedVersion; a stale version returns 409.
    """
    db_session = get_session()
    payload = _json_body()
    expected_version = _expected_version(payload)

    _load_scoped_note(db_session, note_id)
    if not has_role(UserRole.ADMIN.value):
        if ADMIN_ONLY_FIELDS & set(payload):
            raise UnauthorizedError('Solo un administrador puede cambiar el estado de facturación')
        payload.pop('workerId', None)
        payload.pop('worker_id', None)

    result = notes.update_delivery_note(
        db_session, g.tenant_id, note_id, payload,
        expected_version=expected_version,
        **capture_settings()
    )
    note = result['note']

    if result['changed']:
        record_action(db_session, AuditAction.DELIVERY_NOTE_UPDATED, 'delivery_note', note.id,
                      {'fields': sorted(result['changed'])})
    if result['became_signed']:
        _on_signed(db_session, note)

    return jsonify(note.to_dict())


# ============================================================================
# Signing workflow
# ============================================================================

@delivery_notes_bp.route('/delivery-notes/<int:note_id>/signing', methods=['GET'])
@require_login
@require_tenant
def signing_state(note_id: int) -> Response:
    """Stage, missing items and the tab to reopen on the signing screen."""
    db_session = get_session()
    note = _load_scoped_note(db_session, note_id)
    return jsonify({
        'noteId': note.id,
        'stage': signing_stage(note).value,
        'initialTab': signing_service.initial_tab(note),
        'missing': get_missing_signature_info(note),
        'captureMode': current_app.config.get('SIGNATURE_CAPTURE_MODE'),
        'version': note.version,
    })


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/sign/origin', methods=['POST'])
@require_login
@require_tenant
def sign_origin(note_id: int) -> Response:
    from ealbaran.blueprints.metrics import signature_saves_total

    db_session = get_session()
    payload = _json_body()
    _load_scoped_note(db_session, note_id)
    settings = capture_settings()

    try:
        result = signing_service.save_origin(
            db_session, g.tenant_id, note_id,
            document=payload.get('document', payload.get('originSignatureDocument')),
            signature=payload.get('signature', payload.get('originSignature')),
            capture_mode=current_app.config.get('SIGNATURE_CAPTURE_MODE'),
            document_min_length=settings['document_min_length'],
            expected_version=_expected_version(payload),
        )
    except Exception:
        signature_saves_total.labels(phase='origin', result='error').inc()
        raise

    signature_saves_total.labels(phase='origin', result='ok').inc()
    return jsonify(result['note'].to_dict())


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/sign/destination', methods=['POST'])
@require_login
@require_tenant
def sign_destination(note_id: int) -> Response:
    from ealbaran.blueprints.metrics import signature_saves_total

    db_session = get_session()
    payload = _json_body()
    _load_scoped_note(db_session, note_id)

    try:
        result = signing_service.save_destination(
            db_session, g.tenant_id, note_id,
            document=payload.get('document', payload.get('destinationSignatureDocument')),
            signature=payload.get('signature', payload.get('destinationSignature')),
            photo=payload.get('photo'),
            capture_mode=current_app.config.get('SIGNATURE_CAPTURE_MODE'),
            expected_version=_expected_version(payload),
            **capture_settings()
        )
    except Exception:
        signature_saves_total.labels(phase='destination', result='error').inc()
        raise

    signature_saves_total.labels(phase='destination', result='ok').inc()
    note = result['note']
    if result['became_signed']:
        _on_signed(db_session, note)
    return jsonify(note.to_dict())


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/pdf', methods=['GET'])
@require_login
@require_tenant
def delivery_note_pdf(note_id: int) -> Response:
    from ealbaran.services.pdf_service import generate_delivery_note_pdf

    db_session = get_session()
    note = _load_scoped_note(db_session, note_id)
    pdf_buffer = generate_delivery_note_pdf(note, business_info())
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=request.args.get('download', '1') != '0',
        download_name=f"albaran_{note.note_number}_{datetime.now().strftime('%Y%m%d')}.pdf"
    )


# ============================================================================
# Trash lifecycle (admin)
# ============================================================================

@delivery_notes_bp.route('/delivery-notes/deleted', methods=['GET'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def list_deleted_delivery_notes() -> Response:
    db_session = get_session()
    result = notes.list_deleted_delivery_notes(db_session, g.tenant_id)
    return jsonify([note.to_dict(include_images=False) for note in result])


@delivery_notes_bp.route('/delivery-notes/<int:note_id>', methods=['DELETE'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def trash_delivery_note(note_id: int) -> Response:
    db_session = get_session()
    note = notes.trash_delivery_note(db_session, g.tenant_id, note_id, g.user.id)
    record_action(db_session, AuditAction.DELIVERY_NOTE_TRASHED, 'delivery_note', note.id,
                  {'note_number': note.note_number})
    return jsonify({
        'success': True,
        'message': f'Albarán #{note.note_number} movido a la papelera',
        'note': note.to_dict(include_images=False),
    })


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/restore', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def restore_delivery_note(note_id: int) -> Response:
    db_session = get_session()
    note = notes.restore_delivery_note(db_session, g.tenant_id, note_id)
    record_action(db_session, AuditAction.DELIVERY_NOTE_RESTORED, 'delivery_note', note.id,
                  {'note_number': note.note_number})
    return jsonify({
        'success': True,
        'message': f'Albarán #{note.note_number} restaurado',
        'note': note.to_dict(),
    })


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/permanent', methods=['DELETE'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def purge_delivery_note(note_id: int) -> Response:
    db_session = get_session()
    result = notes.purge_delivery_note(db_session, g.tenant_id, note_id)
    record_action(db_session, AuditAction.DELIVERY_NOTE_PURGED, 'delivery_note', note_id)
    return jsonify(result)


@delivery_notes_bp.route('/delivery-notes/<int:note_id>/toggle-invoiced', methods=['POST'])
@require_login
@require_tenant
@require_role(UserRole.ADMIN.value)
def toggle_invoiced(note_id: int) -> Response:
    db_session = get_session()
    note = notes.toggle_invoiced(db_session, g.tenant_id, note_id)
    record_action(db_session, AuditAction.DELIVERY_NOTE_INVOICE_TOGGLED, 'delivery_note', note.id,
                  {'is_invoiced': note.is_invoiced})
    return jsonify(note.to_dict(include_images=False))


@delivery_notes_bp.route('/workers/<int:worker_id>/delivery-notes', methods=['GET'])
@require_login
@require_tenant
def worker_delivery_notes(worker_id: int) -> Response:
    db_session = get_session()
    ensure_worker_scope(worker_id)
    result = notes.list_delivery_notes(db_session, g.tenant_id, worker_id=worker_id)
    include_images = _include_images()
    return jsonify([note.to_dict(include_images=include_images) for note in result])
