"""
Photo and signature image helpers (Pillow).

Delivery photos and signatures travel as data URLs
(data:image/jpeg;base64,...). Photos are downscaled and re-encoded as JPEG
before they are stored; signature stamps are rendered for tenants that
capture signer documents without a drawn signature.
"""
import base64
import binascii
import logging
import re
from datetime import datetime
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from ealbaran.exceptions import ValidationError

logger = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r'^data:(image/[\w.+-]+);base64,(.*)$', re.DOTALL)

# Photos below this size are left untouched by the bulk compressor
LARGE_PHOTO_THRESHOLD = 100_000


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    Split a data URL into (mime_type, raw_bytes).

    Raises:
        ValidationError: if the string is not a base64 image data URL.
    """
    match = DATA_URL_RE.match(data_url or '')
    if not match:
        raise ValidationError('La imagen debe enviarse como data URL base64', field='photo')
    mime_type, payload = match.groups()
    try:
        raw = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError):
        raise ValidationError('La imagen no es un base64 válido', field='photo')
    return mime_type, raw


def encode_data_url(raw: bytes, mime_type: str = 'image/jpeg') -> str:
    return f"data:{mime_type};base64,{base64.b64encode(raw).decode('ascii')}"


def compress_photo_data_url(data_url: str, max_width: int = 1200, quality: int = 70) -> str:
    """
    Downscale a photo to max_width and re-encode it as JPEG.

    The original is returned when the compressed version would not be smaller.

    Raises:
        ValidationError: if the payload is not a decodable image.
    """
    _, raw = decode_data_url(data_url)
    try:
        img = Image.open(BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError(f'No se pudo leer la foto: {e}', field='photo')

    if img.width > max_width:
        height = int(img.height * max_width / img.width)
        img = img.resize((max_width, max(height, 1)), Image.LANCZOS)

    output = BytesIO()
    img.convert('RGB').save(output, format='JPEG', quality=quality, optimize=True)
    compressed = encode_data_url(output.getvalue(), 'image/jpeg')

    if len(compressed) >= len(data_url):
        return data_url
    logger.debug(f"[PHOTO] Compressed {len(data_url)} -> {len(compressed)} chars")
    return compressed


def render_document_stamp(document: str, signed_at: Optional[datetime] = None) -> str:
    """
    Render a PNG stamp used as signature image when drawing is disabled.

    The stamp shows the signer's document and the signing time so that the
    signature slot of the PDF is never empty.
    """
    signed_at = signed_at or datetime.now()
    img = Image.new('RGB', (360, 90), 'white')
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()
    draw.rectangle([(2, 2), (357, 87)], outline='#2C3E50', width=2)
    draw.text((14, 14), 'FIRMADO CON DOCUMENTO', fill='#2C3E50', font=font)
    draw.text((14, 38), f'DNI/NIE: {document}', fill='black', font=font)
    draw.text((14, 60), signed_at.strftime('%d/%m/%Y %H:%M'), fill='#7F8C8D', font=font)

    output = BytesIO()
    img.save(output, format='PNG')
    return encode_data_url(output.getvalue(), 'image/png')


def compress_stored_photos(session, max_width: int = 1200, quality: int = 70,
                           threshold: int = LARGE_PHOTO_THRESHOLD) -> dict:
    """
    Compress every stored delivery photo larger than threshold characters.

    Each note is committed on its own; a photo that cannot be decoded is
    logged and skipped.

    Returns:
        dict with compressed count, skipped count and characters saved.
    """
    from ealbaran.models import DeliveryNote

    notes = session.query(DeliveryNote).filter(DeliveryNote.photo.isnot(None)).all()
    compressed = 0
    skipped = 0
    saved = 0

    for note in notes:
        if not note.photo or len(note.photo) <= threshold:
            continue
        original_size = len(note.photo)
        try:
            new_photo = compress_photo_data_url(note.photo, max_width=max_width, quality=quality)
        except ValidationError as e:
            logger.error(f"[PHOTO] Error compressing photo for note {note.id}: {e.message}")
            skipped += 1
            continue

        if len(new_photo) < original_size:
            note.photo = new_photo
            session.commit()
            compressed += 1
            saved += original_size - len(new_photo)
            logger.info(
                f"[PHOTO] Note #{note.note_number}: {original_size // 1024}KB -> {len(new_photo) // 1024}KB"
            )

    return {'compressed': compressed, 'skipped': skipped, 'saved_chars': saved}
