"""Tests for the callable HTTP surface"""

import pytest
from fastapi.testclient import TestClient

from conftest import TEST_SECRET, USER_ID, b64
from papertrail.api import create_app
from papertrail.vault.auth import JwtIdentityVerifier, create_identity_token


PDF_BYTES = b"%PDF-1.4 api upload"


@pytest.fixture
def client(vault, config):
    app = create_app(vault=vault, verifier=JwtIdentityVerifier(secret=TEST_SECRET, algorithm="HS256"),
                     config=config)
    return TestClient(app)


@pytest.fixture
def auth_headers():
    token = create_identity_token(USER_ID, TEST_SECRET, email="jane@example.com")
    return {"Authorization": f"Bearer {token}"}


def call(client, route, data, headers=None):
    return client.post(route, json={"data": data}, headers=headers or {})


class TestEnvelope:
    """Test authentication and the error envelope"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_token(self, client):
        response = call(client, "/getDocumentProgress", {})

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["status"] == "UNAUTHENTICATED"
        assert error["message"] == "User not authenticated"

    def test_invalid_token(self, client):
        response = call(client, "/getDocumentProgress", {}, {"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_body_without_data_object(self, client, auth_headers):
        response = client.post("/updateUserProfile", json={"data": "nope"}, headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"]["status"] == "INVALID_ARGUMENT"


class TestUploadDocument:
    """Test POST /uploadDocument"""

    def test_upload_and_progress(self, client, auth_headers):
        response = call(client, "/uploadDocument", {
            "documentTypeId": "passport",
            "fileDataBase64": b64(PDF_BYTES),
            "fileType": "pdf",
            "side": "front",
        }, auth_headers)

        assert response.status_code == 200
        result = response.json()["result"]
        assert result["success"] is True
        assert result["storageKey"].startswith(f"user_uploads/{USER_ID}/passport/front_")

        progress = call(client, "/getDocumentProgress", {}, auth_headers).json()["result"]
        assert progress["passport"]["status"] == "completed"
        assert progress["passport"]["frontKey"] == result["storageKey"]

    def test_original_client_field_names(self, client, auth_headers):
        response = call(client, "/uploadDocument", {
            "documentId": "birth_certificate",
            "fileData": b64(PDF_BYTES),
            "fileType": "application/pdf",
        }, auth_headers)

        assert response.status_code == 200
        assert response.json()["result"]["documentTypeId"] == "birth_certificate"

    @pytest.mark.parametrize("data,code,status_code", [
        ({"documentTypeId": "library_card", "fileType": "pdf"}, "INVALID_DOCUMENT_TYPE", 400),
        ({"documentTypeId": "passport", "fileType": "gif"}, "UNSUPPORTED_FILE_TYPE", 400),
        ({"documentTypeId": "drivers_license", "fileType": "png"}, "INVALID_SIDE", 400),
        ({"documentTypeId": "passport", "fileType": "pdf", "fileDataBase64": "@@@"}, "MALFORMED_PAYLOAD", 400),
    ])
    def test_rejections(self, client, auth_headers, data, code, status_code):
        data.setdefault("fileDataBase64", b64(PDF_BYTES))
        response = call(client, "/uploadDocument", data, auth_headers)

        assert response.status_code == status_code
        assert response.json()["error"]["status"] == code

    def test_file_too_large(self, client, auth_headers):
        response = call(client, "/uploadDocument", {
            "documentTypeId": "passport",
            "fileDataBase64": b64(b"\0" * (5 * 1024 * 1024 + 1)),
            "fileType": "pdf",
        }, auth_headers)

        assert response.status_code == 413
        assert response.json()["error"]["status"] == "FILE_TOO_LARGE"


class TestOtherOperations:
    """Test replacement, profile, URLs and the wipe"""

    def test_replacement(self, client, auth_headers):
        response = call(client, "/requestDocumentReplacement", {"documentTypeId": "passport"}, auth_headers)

        assert response.json()["result"] == {"success": True, "estimatedTime": "6-8 weeks"}

    def test_profile(self, client, auth_headers):
        response = call(client, "/updateUserProfile", {
            "firstName": "Jane", "lastName": "Doe", "email": "Jane@Example.com", "phone": "415-555-0100",
        }, auth_headers)

        assert response.status_code == 200
        assert response.json()["result"]["profile"]["email"] == "jane@example.com"
        profile = call(client, "/getUserProfile", {}, auth_headers).json()["result"]["profile"]
        assert profile["phone"] == "415-555-0100"

    def test_profile_rejection_names_field(self, client, auth_headers):
        response = call(client, "/updateUserProfile", {"firstName": "", "lastName": "Doe", "email": "a@b.com"},
                        auth_headers)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["status"] == "INVALID_ARGUMENT"
        assert error["details"]["field"] == "firstName"

    def test_sign_url(self, client, auth_headers):
        key = call(client, "/uploadDocument", {
            "documentTypeId": "passport", "fileDataBase64": b64(PDF_BYTES), "fileType": "pdf",
        }, auth_headers).json()["result"]["storageKey"]

        response = client.get("/auth/sign-url", params={"key": key}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["expiresIn"] == 120

    def test_sign_url_for_foreign_key(self, client, auth_headers):
        response = client.get("/auth/sign-url", params={"key": "user_uploads/someone-else/passport/front_1.pdf"},
                              headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["error"]["status"] == "PERMISSION_DENIED"

    def test_get_document_url_not_found(self, client, auth_headers):
        response = call(client, "/getDocumentUrl", {"documentTypeId": "passport"}, auth_headers)
        assert response.status_code == 404

    def test_clear_all_data(self, client, auth_headers):
        call(client, "/requestDocumentReplacement", {"documentTypeId": "passport"}, auth_headers)

        assert call(client, "/clearAllData", {}, auth_headers).json()["result"] == {"success": True}
        assert call(client, "/getDocumentProgress", {}, auth_headers).json()["result"] == {}

    def test_retry_progress_patch_without_object(self, client, auth_headers):
        response = call(client, "/retryProgressPatch", {
            "documentTypeId": "passport", "side": "front",
            "storageKey": f"user_uploads/{USER_ID}/passport/front_1.pdf",
        }, auth_headers)

        assert response.status_code == 404
