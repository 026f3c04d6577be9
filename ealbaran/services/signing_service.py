"""
Two-phase signature capture for delivery notes.

The origin party signs at pickup and the destination party at delivery. Each
phase is persisted by its own request; the in-memory SigningDraft only
collects what the signer typed before saving and is never stored.
"""
import logging
from typing import Any, Dict, Optional

from ealbaran.exceptions import BusinessLogicError, ValidationError
from ealbaran.services.delivery_note_service import get_delivery_note, update_delivery_note
from ealbaran.utils.completion import (
    CAPTURE_DOCUMENT_ONLY, CAPTURE_DOCUMENT_PLUS_DRAWING, CAPTURE_MODES,
    DOCUMENT_MIN_LENGTH, PHOTO_MIN_LENGTH,
    SigningStage, field, has_origin_document, has_valid_photo,
    is_valid_document_id, normalize_document_id, signing_stage
)

logger = logging.getLogger(__name__)

TAB_ORIGIN = 'origin'
TAB_DESTINATION = 'destination'


class SigningDraft:
    """Unsaved input of one signing phase."""

    def __init__(self, document: Optional[str] = None, signature: Optional[str] = None,
                 photo: Optional[str] = None, capture_mode: str = CAPTURE_DOCUMENT_ONLY,
                 document_min_length: int = DOCUMENT_MIN_LENGTH,
                 photo_min_length: int = PHOTO_MIN_LENGTH):
        if capture_mode not in CAPTURE_MODES:
            raise ValueError(f'Modo de captura desconocido: {capture_mode}')
        self.document = normalize_document_id(document)
        self.signature = signature or None
        self.photo = photo or None
        self.capture_mode = capture_mode
        self.document_min_length = document_min_length
        self.photo_min_length = photo_min_length

    @property
    def requires_drawing(self) -> bool:
        return self.capture_mode == CAPTURE_DOCUMENT_PLUS_DRAWING

    def signer_ready(self) -> bool:
        """Document valid and, when the mode asks for it, a drawing present."""
        if not is_valid_document_id(self.document, self.document_min_length):
            return False
        return bool(self.signature) or not self.requires_drawing

    def origin_ready(self) -> bool:
        return self.signer_ready()

    def destination_ready(self, existing_photo: Optional[str] = None) -> bool:
        if not self.signer_ready():
            return False
        return (has_valid_photo(self.photo, self.photo_min_length)
                or has_valid_photo(existing_photo, self.photo_min_length))

    def __repr__(self):
        return f"<SigningDraft(document='{self.document}', mode='{self.capture_mode}')>"


def build_changed_payload(note: Any, draft_fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only the draft fields whose value differs from the stored note.

    Keys are API (camelCase) names; the stored value is read with the same
    accessor the completion rules use.
    """
    from ealbaran.services.delivery_note_service import UPDATABLE_FIELDS

    payload = {}
    for api_name, value in draft_fields.items():
        attr = UPDATABLE_FIELDS.get(api_name, api_name)
        if field(note, attr) != value:
            payload[api_name] = value
    return payload


def initial_tab(note: Any) -> str:
    """Tab to open when a signer re-enters the signing screen."""
    if has_origin_document(note):
        return TAB_DESTINATION
    return TAB_ORIGIN


def _signature_image(draft: SigningDraft, label: str, field_name: str) -> str:
    """Drawn signature, or a rendered document stamp when drawing is disabled."""
    if draft.signature:
        return draft.signature
    if draft.requires_drawing:
        raise ValidationError(f'La firma de {label} es obligatoria', field=field_name)

    from ealbaran.services.photo_service import render_document_stamp
    return render_document_stamp(draft.document)


def save_origin(session, tenant_id: int, note_id: int, document: Optional[str],
                signature: Optional[str] = None,
                capture_mode: str = CAPTURE_DOCUMENT_ONLY,
                document_min_length: int = DOCUMENT_MIN_LENGTH,
                expected_version: Optional[int] = None) -> dict:
    """
    Persist the origin signature (OriginDraft -> OriginSaved).

    originSignedAt is only written the first time. Saving the same document
    and drawing again is a no-op.

    Raises:
        ValidationError: document missing/too short, or drawing missing when
            the capture mode requires it. Nothing is persisted.
    """
    draft = SigningDraft(document=document, signature=signature, capture_mode=capture_mode,
                         document_min_length=document_min_length)
    if not is_valid_document_id(draft.document, document_min_length):
        raise ValidationError(
            f'El documento de origen debe tener al menos {document_min_length} caracteres',
            field='originSignatureDocument'
        )

    note = get_delivery_note(session, tenant_id, note_id)

    draft_fields = {'originSignatureDocument': draft.document}
    if draft.signature or draft.requires_drawing:
        draft_fields['originSignature'] = _signature_image(draft, 'origen', 'originSignature')
    elif not note.origin_signature or note.origin_signature_document != draft.document:
        draft_fields['originSignature'] = _signature_image(draft, 'origen', 'originSignature')

    payload = build_changed_payload(note, draft_fields)
    if not payload:
        logger.info(f"[SIGN] Origin of note #{note.note_number} unchanged, nothing to save")
        return {'note': note, 'changed': [], 'became_signed': False}

    result = update_delivery_note(
        session, tenant_id, note_id, payload,
        expected_version=expected_version,
        document_min_length=document_min_length
    )
    logger.info(f"[SIGN] Origin signature saved for note #{note.note_number}")
    return result


def save_destination(session, tenant_id: int, note_id: int, document: Optional[str],
                     signature: Optional[str] = None, photo: Optional[str] = None,
                     capture_mode: str = CAPTURE_DOCUMENT_ONLY,
                     document_min_length: int = DOCUMENT_MIN_LENGTH,
                     photo_min_length: int = PHOTO_MIN_LENGTH,
                     photo_options: Optional[dict] = None,
                     expected_version: Optional[int] = None) -> dict:
    """
    Persist the destination signature and delivery photo
    (DestinationDraft -> FullySigned).

    Steps:
    1. Origin must already be saved
    2. Validate destination document (and drawing, per capture mode)
    3. Require a new photo or an existing stored one
    4. Send only the changed fields; status becomes 'signed'

    Raises:
        BusinessLogicError: origin not saved yet.
        ValidationError: invalid document, drawing or photo.
    """
    note = get_delivery_note(session, tenant_id, note_id)

    if signing_stage(note) not in (SigningStage.ORIGIN_SAVED, SigningStage.FULLY_SIGNED):
        raise BusinessLogicError(
            f'Primero debe guardarse la firma de origen del albarán #{note.note_number}'
        )

    draft = SigningDraft(document=document, signature=signature, photo=photo,
                         capture_mode=capture_mode,
                         document_min_length=document_min_length,
                         photo_min_length=photo_min_length)
    if not is_valid_document_id(draft.document, document_min_length):
        raise ValidationError(
            f'El documento de destino debe tener al menos {document_min_length} caracteres',
            field='destinationSignatureDocument'
        )

    draft_fields = {'destinationSignatureDocument': draft.document}
    if draft.signature or draft.requires_drawing:
        draft_fields['destinationSignature'] = _signature_image(draft, 'destino', 'destinationSignature')
    elif not note.destination_signature or note.destination_signature_document != draft.document:
        draft_fields['destinationSignature'] = _signature_image(draft, 'destino', 'destinationSignature')

    if not draft.destination_ready(existing_photo=note.photo):
        raise ValidationError('La foto de entrega es obligatoria', field='photo')

    if has_valid_photo(draft.photo, photo_min_length):
        draft_fields['photo'] = draft.photo

    payload = build_changed_payload(note, draft_fields)
    if note.status in (None, '', 'pending'):
        payload['status'] = 'signed'

    result = update_delivery_note(
        session, tenant_id, note_id, payload,
        expected_version=expected_version,
        document_min_length=document_min_length,
        photo_min_length=photo_min_length,
        photo_options=photo_options
    )
    logger.info(f"[SIGN] Destination signature saved for note #{note.note_number}")
    return result
