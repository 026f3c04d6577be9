"""
Unit tests for the two-phase signing workflow.
"""

import pytest

from conftest import PHOTO, SIGNATURE
from ealbaran.exceptions import BusinessLogicError, ConflictError, ValidationError
from ealbaran.models import DeliveryNote
from ealbaran.services import signing_service
from ealbaran.services.signing_service import SigningDraft, build_changed_payload, initial_tab
from ealbaran.utils.completion import (
    CAPTURE_DOCUMENT_ONLY, CAPTURE_DOCUMENT_PLUS_DRAWING, SigningStage, is_fully_signed, signing_stage
)


class TestSigningDraft:

    def test_document_normalized(self):
        draft = SigningDraft(document=' ab123456 ')
        assert draft.document == 'AB123456'

    def test_origin_ready_document_only(self):
        assert SigningDraft(document='12345678').origin_ready() is True
        assert SigningDraft(document='1234567').origin_ready() is False

    def test_drawing_required(self):
        draft = SigningDraft(document='12345678', capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        assert draft.origin_ready() is False
        draft.signature = SIGNATURE
        assert draft.origin_ready() is True

    def test_destination_needs_photo(self):
        draft = SigningDraft(document='12345678')
        assert draft.destination_ready() is False
        assert draft.destination_ready(existing_photo=PHOTO) is True

    def test_short_photo_does_not_count(self):
        draft = SigningDraft(document='12345678', photo='data:image/jpeg;base64,abc')
        assert draft.destination_ready() is False

    def test_signer_ready_shared_by_both_phases(self):
        draft = SigningDraft(document='12345678', photo=PHOTO, capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        assert draft.signer_ready() is False
        assert draft.destination_ready() is False

        draft.signature = SIGNATURE
        assert draft.signer_ready() is True
        assert draft.destination_ready() is True

    def test_overlong_document_not_ready(self):
        assert SigningDraft(document='1' * 33).signer_ready() is False

    def test_unknown_capture_mode(self):
        with pytest.raises(ValueError):
            SigningDraft(capture_mode='fingerprint')


class TestHelpers:

    def test_changed_payload_skips_equal_values(self):
        note = {'originSignatureDocument': '12345678A', 'originSignature': SIGNATURE}
        payload = build_changed_payload(note, {
            'originSignatureDocument': '12345678A',
            'originSignature': SIGNATURE + 'X',
        })
        assert payload == {'originSignature': SIGNATURE + 'X'}

    def test_initial_tab(self):
        assert initial_tab({}) == signing_service.TAB_ORIGIN
        assert initial_tab({'originSignatureDocument': '12345678A'}) == signing_service.TAB_DESTINATION


class TestSaveOrigin:

    def test_saves_origin(self, session, make_note, tenant1):
        note = make_note()
        result = signing_service.save_origin(
            session, tenant1.id, note.id, ' ab123456 ', SIGNATURE,
            capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING
        )

        saved = result['note']
        assert saved.origin_signature_document == 'AB123456'
        assert saved.origin_signature == SIGNATURE
        assert saved.origin_signed_at is not None
        assert signing_stage(saved) == SigningStage.ORIGIN_SAVED
        assert is_fully_signed(saved) is False

    def test_saving_twice_keeps_first_timestamp(self, session, make_note, tenant1):
        note = make_note()
        first = signing_service.save_origin(
            session, tenant1.id, note.id, '12345678A', SIGNATURE,
            capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING
        )['note'].origin_signed_at

        second = signing_service.save_origin(
            session, tenant1.id, note.id, '12345678A', SIGNATURE + 'redrawn',
            capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING
        )['note']

        assert second.origin_signature == SIGNATURE + 'redrawn'
        assert second.origin_signed_at == first

    def test_unchanged_save_is_noop(self, session, make_note, tenant1):
        note = make_note()
        signing_service.save_origin(session, tenant1.id, note.id, '12345678A', SIGNATURE,
                                    capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        result = signing_service.save_origin(session, tenant1.id, note.id, '12345678a', SIGNATURE,
                                             capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)

        assert result['changed'] == []
        assert result['note'].version == 2

    def test_short_document_persists_nothing(self, session, make_note, tenant1):
        note = make_note()
        with pytest.raises(ValidationError):
            signing_service.save_origin(session, tenant1.id, note.id, '1234567', SIGNATURE,
                                        capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)

        stored = session.query(DeliveryNote).filter_by(id=note.id).first()
        assert stored.origin_signature_document is None
        assert stored.origin_signature is None

    def test_missing_drawing_rejected(self, session, make_note, tenant1):
        note = make_note()
        with pytest.raises(ValidationError):
            signing_service.save_origin(session, tenant1.id, note.id, '12345678A', None,
                                        capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)

    def test_document_only_renders_stamp(self, session, make_note, tenant1):
        note = make_note()
        saved = signing_service.save_origin(session, tenant1.id, note.id, '12345678A',
                                            capture_mode=CAPTURE_DOCUMENT_ONLY)['note']

        assert saved.origin_signature.startswith('data:image/png;base64,')

    def test_stale_version_rejected(self, session, make_note, tenant1):
        note = make_note()
        with pytest.raises(ConflictError):
            signing_service.save_origin(session, tenant1.id, note.id, '12345678A', SIGNATURE,
                                        capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING,
                                        expected_version=7)


class TestSaveDestination:

    def _with_origin(self, session, make_note, tenant1):
        note = make_note()
        signing_service.save_origin(session, tenant1.id, note.id, '12345678A', SIGNATURE,
                                    capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        return note.id

    def test_requires_origin_first(self, session, make_note, tenant1):
        note = make_note()
        with pytest.raises(BusinessLogicError):
            signing_service.save_destination(session, tenant1.id, note.id, '87654321B', SIGNATURE, PHOTO,
                                             capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)

    def test_completes_note(self, session, make_note, tenant1):
        note_id = self._with_origin(session, make_note, tenant1)
        result = signing_service.save_destination(
            session, tenant1.id, note_id, '87654321b', SIGNATURE, PHOTO,
            capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING
        )

        saved = result['note']
        assert result['became_signed'] is True
        assert saved.status == 'signed'
        assert saved.destination_signature_document == '87654321B'
        assert saved.destination_signed_at is not None
        assert saved.photo == PHOTO
        assert is_fully_signed(saved) is True

    def test_photo_required(self, session, make_note, tenant1):
        note_id = self._with_origin(session, make_note, tenant1)
        with pytest.raises(ValidationError) as exc:
            signing_service.save_destination(session, tenant1.id, note_id, '87654321B', SIGNATURE, None,
                                             capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        assert exc.value.field == 'photo'

    def test_existing_photo_is_enough(self, session, make_note, tenant1):
        note = make_note(photo=PHOTO)
        signing_service.save_origin(session, tenant1.id, note.id, '12345678A', SIGNATURE,
                                    capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        result = signing_service.save_destination(session, tenant1.id, note.id, '87654321B', SIGNATURE,
                                                  capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        assert is_fully_signed(result['note']) is True

    def test_missing_drawing_reported_before_photo(self, session, make_note, tenant1):
        note_id = self._with_origin(session, make_note, tenant1)
        with pytest.raises(ValidationError) as exc:
            signing_service.save_destination(session, tenant1.id, note_id, '87654321B', None, None,
                                             capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)
        assert exc.value.field == 'destinationSignature'

    def test_short_document_rejected(self, session, make_note, tenant1):
        note_id = self._with_origin(session, make_note, tenant1)
        with pytest.raises(ValidationError):
            signing_service.save_destination(session, tenant1.id, note_id, '7654321', SIGNATURE, PHOTO,
                                             capture_mode=CAPTURE_DOCUMENT_PLUS_DRAWING)

        stored = session.query(DeliveryNote).filter_by(id=note_id).first()
        assert stored.destination_signature is None
        assert stored.photo is None
