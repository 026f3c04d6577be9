"""
Unit tests for photo handling (Pillow) and PDF rendering (ReportLab).
"""

import pytest
from io import BytesIO

from PIL import Image

from conftest import PHOTO, SIGNATURE
from ealbaran.exceptions import ValidationError
from ealbaran.models import DeliveryNote
from ealbaran.services import photo_service
from ealbaran.services.invoice_service import create_invoice, save_invoice_template
from ealbaran.services.pdf_service import generate_delivery_note_pdf, generate_invoice_pdf


def _png_data_url(size=(1600, 800)):
    img = Image.effect_noise(size, 64).convert('RGB')
    output = BytesIO()
    img.save(output, format='PNG')
    return photo_service.encode_data_url(output.getvalue(), 'image/png')


def _open(data_url):
    _, raw = photo_service.decode_data_url(data_url)
    return Image.open(BytesIO(raw))


class TestPhotos:

    def test_large_photo_downscaled_to_jpeg(self):
        original = _png_data_url()
        compressed = photo_service.compress_photo_data_url(original, max_width=1200, quality=70)

        assert compressed.startswith('data:image/jpeg;base64,')
        assert len(compressed) < len(original)
        img = _open(compressed)
        assert img.size == (1200, 600)

    def test_not_a_data_url(self):
        with pytest.raises(ValidationError):
            photo_service.decode_data_url('https://example.com/photo.jpg')

    def test_undecodable_image(self):
        with pytest.raises(ValidationError):
            photo_service.compress_photo_data_url(photo_service.encode_data_url(b'not an image'))

    def test_document_stamp(self):
        stamp = photo_service.render_document_stamp('12345678A')

        assert stamp.startswith('data:image/png;base64,')
        assert _open(stamp).size == (360, 90)

    def test_compress_stored_photos(self, session, make_note):
        big = make_note(photo=_png_data_url())
        broken = make_note(photo=PHOTO)

        result = photo_service.compress_stored_photos(session, threshold=100)

        assert result['compressed'] == 1
        assert result['skipped'] == 1
        assert result['saved_chars'] > 0
        stored = session.query(DeliveryNote).filter_by(id=big.id).one()
        assert stored.photo.startswith('data:image/jpeg;base64,')
        assert session.query(DeliveryNote).filter_by(id=broken.id).one().photo == PHOTO


class TestPdf:

    def test_delivery_note_pdf(self, make_note):
        stamp = photo_service.render_document_stamp('12345678A')
        note = make_note(
            observations='Descargar por la puerta trasera\nPreguntar por Luis',
            originSignature=stamp,
            originSignatureDocument='12345678A',
            destinationSignature=stamp,
            destinationSignatureDocument='87654321B',
            photo=_png_data_url((800, 600)),
            waitTime=20,
        )

        pdf = generate_delivery_note_pdf(note, {'name': 'Transportes Rápidos SL', 'taxId': 'B00000000'})
        assert pdf.getvalue().startswith(b'%PDF')

    def test_unreadable_images_are_skipped(self, make_note):
        note = make_note(
            originSignature=SIGNATURE, originSignatureDocument='12345678A',
            destinationSignature=SIGNATURE, destinationSignatureDocument='87654321B',
            photo=PHOTO,
        )
        assert generate_delivery_note_pdf(note).getvalue().startswith(b'%PDF')

    def test_invoice_pdf(self, session, signed_note, tenant1):
        template = save_invoice_template(session, tenant1.id, {
            'companyName': 'Transportes Rápidos SL',
            'companyTaxId': 'B00000000',
            'bankAccount': 'ES00 0000 0000 0000 0000 0000',
            'invoicePrefix': 'F-',
        })
        invoice = create_invoice({
            'tenant_id': tenant1.id,
            'customerName': 'Construcciones García <SA>',
            'deliveryNoteIds': [signed_note.id],
            'defaultUnitPrice': '1.234,50',
        }, session)

        pdf = generate_invoice_pdf(invoice, template)
        assert pdf.getvalue().startswith(b'%PDF')
