"""
Completion rules for delivery notes.

Every place that needs to know whether a note is signed (list filters, the
invoicing gate, PDF badges, JSON payloads) goes through these functions.
They are pure: they accept a DeliveryNote instance or a plain mapping with
camelCase or snake_case keys and never touch the database.
"""
import enum
import re
from typing import Any, List, Mapping

DOCUMENT_MIN_LENGTH = 8
DOCUMENT_MAX_LENGTH = 32
PHOTO_MIN_LENGTH = 100

CAPTURE_DOCUMENT_ONLY = 'document-only'
CAPTURE_DOCUMENT_PLUS_DRAWING = 'document-plus-drawing'
CAPTURE_MODES = (CAPTURE_DOCUMENT_ONLY, CAPTURE_DOCUMENT_PLUS_DRAWING)

_CAMEL_RE = re.compile(r'_([a-z])')


class SigningStage(enum.Enum):
    """Persisted position of a note in the signing workflow."""
    LEGACY_PENDING_PHOTO = "legacy_pending_photo"  # legacy track, signature without photo
    LEGACY_SIGNED = "legacy_signed"    # legacy track, photo + single signature
    NO_ORIGIN = "no_origin"            # dual track, origin not saved yet
    ORIGIN_SAVED = "origin_saved"      # dual track, waiting for destination
    FULLY_SIGNED = "fully_signed"      # dual track complete


def _camel(name: str) -> str:
    return _CAMEL_RE.sub(lambda m: m.group(1).upper(), name)


def field(note: Any, name: str) -> Any:
    """Read a snake_case field from a model or a camelCase/snake_case mapping."""
    if note is None:
        return None
    if isinstance(note, Mapping):
        if name in note:
            return note[name]
        return note.get(_camel(name))
    return getattr(note, name, None)


def _present(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return bool(value)


def has_valid_photo(photo: Any, min_length: int = PHOTO_MIN_LENGTH) -> bool:
    """A photo payload counts only if its encoded length exceeds the threshold."""
    return isinstance(photo, str) and len(photo) > min_length


def normalize_document_id(value: Any) -> str:
    """Trim and uppercase a signer's document ID."""
    if value is None:
        return ""
    return str(value).strip().upper()


def is_valid_document_id(value: Any, min_length: int = DOCUMENT_MIN_LENGTH,
                         max_length: int = DOCUMENT_MAX_LENGTH) -> bool:
    return min_length <= len(normalize_document_id(value)) <= max_length


def validate_document_id(value: Any, label: str = 'documento', min_length: int = DOCUMENT_MIN_LENGTH,
                         max_length: int = DOCUMENT_MAX_LENGTH) -> str:
    """
    Normalize a document ID and enforce its length bounds.

    Returns:
        The normalized (trimmed, uppercased) document ID.

    Raises:
        ValidationError: if the normalized value is shorter than min_length
            or longer than max_length.
    """
    from ealbaran.exceptions import ValidationError

    normalized = normalize_document_id(value)
    if not normalized:
        raise ValidationError(f'El {label} del firmante es obligatorio', field=label)
    if len(normalized) < min_length:
        raise ValidationError(
            f'El {label} del firmante debe tener al menos {min_length} caracteres',
            field=label
        )
    if len(normalized) > max_length:
        raise ValidationError(
            f'El {label} del firmante no puede superar {max_length} caracteres',
            field=label
        )
    return normalized


def has_origin_signature(note: Any) -> bool:
    return _present(field(note, 'origin_signature')) and _present(field(note, 'origin_signature_document'))


def has_destination_signature(note: Any) -> bool:
    return _present(field(note, 'destination_signature')) and _present(field(note, 'destination_signature_document'))


def has_origin_document(note: Any) -> bool:
    return _present(field(note, 'origin_signature_document'))


def has_new_dual(note: Any) -> bool:
    return has_origin_signature(note) and has_destination_signature(note)


def has_legacy(note: Any) -> bool:
    return _present(field(note, 'photo')) and _present(field(note, 'signature'))


def is_fully_signed(note: Any) -> bool:
    """
    A note is fully signed when the dual scheme is complete or when the legacy
    photo + signature pair is present. The legacy check is not gated on the
    absence of dual fields.
    """
    return has_new_dual(note) or has_legacy(note)


def is_legacy_complete(note: Any) -> bool:
    """Purely legacy note: photo + signature and no origin signature started."""
    return has_legacy(note) and not _present(field(note, 'origin_signature'))


def is_trashed(note: Any) -> bool:
    lifecycle = field(note, 'lifecycle')
    if lifecycle is not None:
        return lifecycle == 'TRASHED'
    return field(note, 'deleted_at') is not None


def is_invoiceable(note: Any) -> bool:
    """Eligible for a new invoice line: fully signed, not invoiced, not trashed."""
    return is_fully_signed(note) and not field(note, 'is_invoiced') and not is_trashed(note)


def signing_stage(note: Any) -> SigningStage:
    """Derive the workflow stage from the stored fields."""
    if has_new_dual(note):
        return SigningStage.FULLY_SIGNED
    if is_legacy_complete(note):
        return SigningStage.LEGACY_SIGNED
    if has_origin_document(note):
        return SigningStage.ORIGIN_SAVED
    if _present(field(note, 'signature')):
        return SigningStage.LEGACY_PENDING_PHOTO
    return SigningStage.NO_ORIGIN


def get_missing_signature_info(note: Any) -> List[str]:
    """
    List what is still missing for a note to count as signed.

    Returns an empty list for fully signed notes. Items:
    'origin_signature', 'origin_document', 'destination_signature',
    'destination_document', 'photo'.
    """
    if is_fully_signed(note):
        return []

    missing = []
    if not _present(field(note, 'origin_signature')):
        missing.append('origin_signature')
    if not _present(field(note, 'origin_signature_document')):
        missing.append('origin_document')
    if not _present(field(note, 'destination_signature')):
        missing.append('destination_signature')
    if not _present(field(note, 'destination_signature_document')):
        missing.append('destination_document')
    if not _present(field(note, 'photo')):
        missing.append('photo')
    return missing
