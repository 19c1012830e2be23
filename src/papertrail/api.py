"""
HTTP surface for the papertrail vault.

Each vault operation is exposed as a callable endpoint: the request body is
``{"data": {...}}``, a success is ``{"result": {...}}`` and a failure is
``{"error": {"status": CODE, "message": ..., "details": {...}}}``. The
caller's identity comes from the ``Authorization: Bearer`` token.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel, Field

from .vault.auth import Identity, JwtIdentityVerifier
from .vault.config import VaultConfig, get_config
from .vault.exceptions import StorageError, VaultError
from .vault.validator import FILE_TOO_LARGE, UploadRequest
from .vault.vault import DocumentVault, create_vault


# Wire error code -> HTTP status. Unlisted validation codes are 400.
ERROR_STATUS = {
    "UNAUTHENTICATED": status.HTTP_401_UNAUTHORIZED,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    FILE_TOO_LARGE: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "STORAGE_WRITE_FAILED": status.HTTP_503_SERVICE_UNAVAILABLE,
    "STORAGE_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
    "METADATA_WRITE_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "FAILED_PRECONDITION": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "INTERNAL": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class CallableRequest(BaseModel):
    """Envelope of every callable request."""
    data: Dict[str, Any] = Field(default_factory=dict)


security = HTTPBearer(auto_error=False)


def status_for(error: VaultError) -> int:
    if error.code in ERROR_STATUS:
        return ERROR_STATUS[error.code]
    if isinstance(error, StorageError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def error_envelope(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"error": {"status": code, "message": message, "details": details or {}}}


def _first(data: Dict[str, Any], *names: str) -> Any:
    """Value of the first present name; older clients use different field names."""
    for name in names:
        if data.get(name) is not None:
            return data[name]
    return None


def create_app(vault: Optional[DocumentVault] = None, verifier: Optional[JwtIdentityVerifier] = None,
               config: Optional[VaultConfig] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        vault: Vault instance (defaults to one built from config)
        verifier: Token verifier (defaults to one built from config)
        config: Vault configuration (defaults to the global config)
    """
    config = config or get_config()
    vault = vault or create_vault(config)
    verifier = verifier or JwtIdentityVerifier(config=config)

    app = FastAPI(
        title="Papertrail Vault API",
        description="Per-user document vault",
        version="0.1.0",
        docs_url=None if config.is_production() else "/docs",
        redoc_url=None,
    )
    app.state.vault = vault
    app.state.verifier = verifier

    def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[Identity]:
        # A missing token is left to the vault, which reports UNAUTHENTICATED
        if credentials is None:
            return None
        return verifier.verify(credentials.credentials)

    # =============================================================================
    # EXCEPTION HANDLERS
    # =============================================================================

    @app.exception_handler(VaultError)
    async def vault_exception_handler(request: Request, exc: VaultError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc}")
        else:
            logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=error_envelope(exc.code, exc.message, exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Malformed request on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_envelope("INVALID_ARGUMENT", "Request validation failed", {"errors": jsonable_encoder(exc.errors())}),
        )

    # =============================================================================
    # ROUTES
    # =============================================================================

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @app.post("/uploadDocument")
    def upload_document(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        data = body.data
        request = UploadRequest(
            user_id=identity.user_id if identity else "",
            document_type_id=_first(data, "documentTypeId", "documentId"),
            payload=_first(data, "fileDataBase64", "fileData"),
            mime_or_extension=data.get("fileType"),
            side=data.get("side"),
            is_additional_file=bool(data.get("isAdditionalFile", False)),
            file_name=data.get("fileName"),
        )
        return {"result": vault.submit_upload(identity, request)}

    @app.post("/requestDocumentReplacement")
    def request_document_replacement(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        document_type_id = _first(body.data, "documentTypeId", "documentId")
        return {"result": vault.request_replacement(identity, document_type_id)}

    @app.post("/getDocumentProgress")
    def get_document_progress(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        return {"result": vault.get_document_progress(identity)}

    @app.post("/updateUserProfile")
    def update_user_profile(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        return {"result": vault.update_profile(identity, body.data)}

    @app.post("/getUserProfile")
    def get_user_profile(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        return {"result": {"profile": vault.get_profile(identity)}}

    @app.post("/getDocumentUrl")
    def get_document_url(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        data = body.data
        return {"result": vault.get_document_url(
            identity,
            _first(data, "documentTypeId", "documentId"),
            side=data.get("side") or "front",
        )}

    @app.post("/retryProgressPatch")
    def retry_progress_patch(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        data = body.data
        return {"result": vault.retry_progress_patch(
            identity,
            _first(data, "documentTypeId", "documentId"),
            data.get("side"),
            data.get("storageKey"),
        )}

    @app.post("/clearAllData")
    def clear_all_data(body: CallableRequest, identity: Optional[Identity] = Depends(get_identity)):
        return {"result": vault.clear_all_data(identity)}

    @app.get("/auth/sign-url")
    def sign_url(key: str = Query(...), identity: Optional[Identity] = Depends(get_identity)):
        return vault.sign_read_url(identity, key)

    return app


def serve() -> None:
    """Run the API with uvicorn (development server)."""
    import uvicorn

    from .vault.config import load_config, setup_logging

    config = load_config()
    setup_logging(config)
    uvicorn.run(
        create_app(config=config),
        host="0.0.0.0",
        port=8000,
        log_level=config.log_level.lower(),
    )
