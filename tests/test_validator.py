"""Tests for the upload validator"""

import pytest

from conftest import b64
from papertrail.vault.catalog import INVALID_DOCUMENT_TYPE
from papertrail.vault.exceptions import UploadValidationError
from papertrail.vault.validator import (
    FILE_TOO_LARGE,
    INVALID_SIDE,
    MALFORMED_PAYLOAD,
    MAX_UPLOAD_BYTES,
    UNSUPPORTED_FILE_TYPE,
    Side,
    UploadRequest,
    normalize_file_type,
    validate_upload,
)


PDF_BYTES = b"%PDF-1.4 test document"


def make_request(**overrides) -> UploadRequest:
    values = dict(
        user_id="user-123",
        document_type_id="passport",
        payload=b64(PDF_BYTES),
        mime_or_extension="pdf",
    )
    values.update(overrides)
    return UploadRequest(**values)


def rejection_code(request: UploadRequest, **kwargs) -> str:
    with pytest.raises(UploadValidationError) as exc_info:
        validate_upload(request, **kwargs)
    return exc_info.value.code


class TestAcceptedUploads:
    """Test uploads that pass every check"""

    def test_single_sided_defaults_to_front(self):
        upload = validate_upload(make_request())

        assert upload.side is Side.FRONT
        assert upload.data == PDF_BYTES
        assert upload.extension == "pdf"
        assert upload.content_type == "application/pdf"
        assert upload.size == len(PDF_BYTES)

    def test_single_sided_unknown_side_is_filed_as_front(self):
        assert validate_upload(make_request(side="sideways")).side is Side.FRONT

    def test_two_sided_back(self):
        upload = validate_upload(make_request(document_type_id="drivers_license", side="back",
                                              mime_or_extension="image/jpeg"))

        assert upload.side is Side.BACK
        assert upload.extension == "jpeg"
        assert upload.content_type == "image/jpeg"

    def test_additional_flag_wins_over_side(self):
        upload = validate_upload(make_request(document_type_id="drivers_license", side="front",
                                              is_additional_file=True))

        assert upload.side is Side.ADDITIONAL
        assert upload.is_additional_file

    def test_additional_side_without_flag(self):
        upload = validate_upload(make_request(document_type_id="insurance_card", side="additional"))
        assert upload.side is Side.ADDITIONAL

    def test_whitespace_in_payload_is_ignored(self):
        encoded = b64(PDF_BYTES)
        wrapped = encoded[:8] + "\n" + encoded[8:16] + " " + encoded[16:]

        assert validate_upload(make_request(payload=wrapped)).data == PDF_BYTES

    def test_exactly_max_size_is_accepted(self):
        upload = validate_upload(make_request(payload=b64(b"x" * 64)), max_bytes=64)
        assert upload.size == 64

    def test_default_limit_accepts_five_mebibytes(self):
        data = b"\0" * MAX_UPLOAD_BYTES
        assert validate_upload(make_request(payload=b64(data))).size == 5242880


class TestFileTypes:
    """Test file type normalization"""

    @pytest.mark.parametrize("given,expected", [
        ("pdf", "pdf"),
        ("PDF", "pdf"),
        (".png", "png"),
        ("jpg", "jpg"),
        ("JPEG", "jpeg"),
        ("application/pdf", "pdf"),
        ("image/jpg", "jpg"),
        ("IMAGE/PNG", "png"),
    ])
    def test_supported_spellings(self, given, expected):
        assert normalize_file_type(given) == expected

    @pytest.mark.parametrize("given", ["gif", "image/gif", "docx", "text/plain", "", None])
    def test_unsupported_types_are_rejected(self, given):
        assert rejection_code(make_request(mime_or_extension=given)) == UNSUPPORTED_FILE_TYPE


class TestRejections:
    """Test each rejection code and the order of checks"""

    def test_unknown_document_type(self):
        assert rejection_code(make_request(document_type_id="library_card")) == INVALID_DOCUMENT_TYPE

    @pytest.mark.parametrize("side", [None, "", "middle", "additional-ish"])
    def test_two_sided_requires_front_or_back(self, side):
        request = make_request(document_type_id="medicaid_card", side=side)
        assert rejection_code(request) == INVALID_SIDE

    @pytest.mark.parametrize("payload", ["", None, "not base64!!", "abc"])
    def test_malformed_payload(self, payload):
        assert rejection_code(make_request(payload=payload)) == MALFORMED_PAYLOAD

    def test_one_byte_over_limit(self):
        request = make_request(payload=b64(b"x" * 65))

        with pytest.raises(UploadValidationError) as exc_info:
            validate_upload(request, max_bytes=64)

        assert exc_info.value.code == FILE_TOO_LARGE
        assert exc_info.value.details["size"] == 65

    def test_default_limit_rejects_one_byte_over(self):
        data = b"\0" * (MAX_UPLOAD_BYTES + 1)
        assert rejection_code(make_request(payload=b64(data))) == FILE_TOO_LARGE

    def test_document_type_checked_before_file_type(self):
        request = make_request(document_type_id="library_card", mime_or_extension="gif")
        assert rejection_code(request) == INVALID_DOCUMENT_TYPE

    def test_file_type_checked_before_side(self):
        request = make_request(document_type_id="drivers_license", mime_or_extension="gif", side=None)
        assert rejection_code(request) == UNSUPPORTED_FILE_TYPE

    def test_side_checked_before_payload(self):
        request = make_request(document_type_id="drivers_license", payload="###", side=None)
        assert rejection_code(request) == INVALID_SIDE

    def test_payload_checked_before_size(self):
        assert rejection_code(make_request(payload="###"), max_bytes=1) == MALFORMED_PAYLOAD
