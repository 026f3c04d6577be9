"""
Unit tests for the delivery note completion rules.
"""

import pytest

from ealbaran.exceptions import ValidationError
from ealbaran.utils.completion import (
    SigningStage, get_missing_signature_info, is_fully_signed, is_invoiceable,
    is_legacy_complete, is_valid_document_id, normalize_document_id,
    signing_stage, validate_document_id
)

DUAL = {
    'originSignature': 'data:image/png;base64,AAA',
    'originSignatureDocument': '12345678A',
    'destinationSignature': 'data:image/png;base64,BBB',
    'destinationSignatureDocument': '87654321B',
}


class TestIsFullySigned:
    """Tests for the shared signed predicate."""

    def test_dual_fields_complete_without_photo(self):
        assert is_fully_signed(DUAL) is True

    def test_dual_fields_complete_with_photo_and_signature(self):
        note = dict(DUAL, photo='data:image/jpeg;base64,X', signature='data:image/png;base64,Y')
        assert is_fully_signed(note) is True

    def test_legacy_photo_and_signature(self):
        note = {'photo': 'data:image/jpeg;base64,X', 'signature': 'data:image/png;base64,Y'}
        assert is_fully_signed(note) is True
        assert is_legacy_complete(note) is True

    def test_legacy_pair_counts_even_with_partial_dual(self):
        note = {
            'photo': 'data:image/jpeg;base64,X',
            'signature': 'data:image/png;base64,Y',
            'originSignature': 'data:image/png;base64,AAA',
        }
        assert is_fully_signed(note) is True

    def test_only_origin_is_not_signed(self):
        note = {
            'originSignature': DUAL['originSignature'],
            'originSignatureDocument': DUAL['originSignatureDocument'],
        }
        assert is_fully_signed(note) is False

    def test_missing_destination_document_is_not_signed(self):
        note = dict(DUAL, destinationSignatureDocument='   ')
        assert is_fully_signed(note) is False

    def test_photo_alone_is_not_signed(self):
        assert is_fully_signed({'photo': 'data:image/jpeg;base64,X'}) is False

    def test_empty_note(self):
        assert is_fully_signed({}) is False

    def test_snake_case_keys(self):
        note = {
            'origin_signature': 'a', 'origin_signature_document': '12345678',
            'destination_signature': 'b', 'destination_signature_document': '87654321',
        }
        assert is_fully_signed(note) is True


class TestDocumentIds:
    """Signer document normalization."""

    def test_seven_characters_rejected(self):
        assert is_valid_document_id('1234567') is False
        with pytest.raises(ValidationError):
            validate_document_id('1234567')

    def test_eight_characters_accepted(self):
        assert validate_document_id('12345678') == '12345678'

    def test_trimmed_and_uppercased(self):
        assert normalize_document_id(' ab123456 ') == 'AB123456'
        assert validate_document_id(' ab123456 ') == 'AB123456'

    def test_padding_does_not_count(self):
        assert is_valid_document_id('  1234567  ') is False

    def test_over_max_length_rejected(self):
        assert is_valid_document_id('X' * 32) is True
        assert is_valid_document_id('X' * 33) is False
        with pytest.raises(ValidationError) as exc:
            validate_document_id('X' * 40, label='documento de origen')
        assert 'superar' in exc.value.message

    def test_empty_document(self):
        assert normalize_document_id(None) == ''
        with pytest.raises(ValidationError) as exc:
            validate_document_id('', label='documento de origen')
        assert 'obligatorio' in exc.value.message


class TestSigningStage:
    """Workflow stage derived from stored fields."""

    def test_new_note(self):
        assert signing_stage({}) == SigningStage.NO_ORIGIN

    def test_origin_saved(self):
        note = {'originSignatureDocument': '12345678A', 'originSignature': 'x'}
        assert signing_stage(note) == SigningStage.ORIGIN_SAVED

    def test_fully_signed(self):
        assert signing_stage(DUAL) == SigningStage.FULLY_SIGNED

    def test_legacy_signed(self):
        note = {'photo': 'p', 'signature': 's'}
        assert signing_stage(note) == SigningStage.LEGACY_SIGNED

    def test_legacy_signature_without_photo(self):
        assert signing_stage({'signature': 's'}) == SigningStage.LEGACY_PENDING_PHOTO


class TestMissingInfoAndInvoiceable:

    def test_nothing_missing_when_signed(self):
        assert get_missing_signature_info(DUAL) == []

    def test_missing_destination_and_photo(self):
        note = {'originSignature': 'x', 'originSignatureDocument': '12345678'}
        assert get_missing_signature_info(note) == ['destination_signature', 'destination_document', 'photo']

    def test_invoiceable_requires_signed_not_invoiced_not_trashed(self):
        assert is_invoiceable(DUAL) is True
        assert is_invoiceable(dict(DUAL, isInvoiced=True)) is False
        assert is_invoiceable(dict(DUAL, lifecycle='TRASHED')) is False
        assert is_invoiceable({'originSignature': 'x', 'originSignatureDocument': '12345678'}) is False
