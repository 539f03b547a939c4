"""
HTTP routes for session status, registration and cleanup
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
import structlog

from .schemas import TokenRequest, StatusResponse, RegisterResponse, CleanupResponse
from ..adapters.base import StoreError, DuplicateSessionError
from ..auth.api_key import verify_api_key
from ..crypto import TokenDecryptor, DecryptError
from ..services.gate import (
    GateService,
    NotFoundError,
    NoWindowSetError,
    AlreadyExpiredError,
)
from ..services.sweeper import Sweeper

log = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["sessions"])


def get_gate_service(request: Request) -> GateService:
    return request.app.state.gate


def get_decryptor(request: Request) -> TokenDecryptor:
    return request.app.state.decryptor


def get_sweeper(request: Request) -> Sweeper:
    return request.app.state.sweeper


def _status_response(code: int, body: StatusResponse) -> JSONResponse:
    return JSONResponse(status_code=code, content=body.model_dump(exclude_none=True))


@router.post(
    "/users/check",
    response_model=StatusResponse,
    response_model_exclude_none=True,
    summary="Check admission window",
    responses={400: {"model": StatusResponse}, 403: {"model": StatusResponse},
               404: {"model": StatusResponse}, 500: {"model": StatusResponse}},
)
async def check_session(
    body: TokenRequest,
    request: Request,
    gate: GateService = Depends(get_gate_service),
    decryptor: TokenDecryptor = Depends(get_decryptor),
) -> JSONResponse:
    """
    Report whether an encrypted token is inside its admission window

    - **token**: Encrypted token as presented by the client

    Never modifies the session.
    """
    if not body.token:
        return _status_response(400, StatusResponse(valid=False, error="Missing token"))

    try:
        token = decryptor.decrypt(body.token)
    except DecryptError as e:
        log.info("gate.decrypt_failed", code=e.code, path=request.url.path)
        request.app.state.metrics.record_decrypt_failure(e.code)
        return _status_response(400, StatusResponse(valid=False, error="Invalid token"))

    try:
        result = await gate.check_status(token)
    except NotFoundError as e:
        return _status_response(404, StatusResponse(valid=False, error=str(e)))
    except NoWindowSetError as e:
        return _status_response(400, StatusResponse(valid=False, error=str(e)))
    except AlreadyExpiredError as e:
        return _status_response(
            403, StatusResponse(valid=False, error=str(e), expired_time=e.expired_time)
        )
    except StoreError as e:
        log.error("gate.store_error", error=str(e), path=request.url.path)
        return _status_response(500, StatusResponse(valid=False, error="Session store unavailable"))

    return _status_response(200, StatusResponse(**result.model_dump()))


@router.post(
    "/users",
    response_model=RegisterResponse,
    summary="Register token",
    description="Create a session record for a plaintext token",
)
async def register_session(
    body: TokenRequest,
    gate: GateService = Depends(get_gate_service),
    api_key: str = Depends(verify_api_key),
):
    if not body.token:
        return JSONResponse(status_code=400, content={"error": "Missing token"})

    try:
        record = await gate.register(body.token)
    except DuplicateSessionError:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT,
                            content={"error": "Token already registered"})
    except StoreError as e:
        log.error("gate.register_failed", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Session store unavailable"})

    return RegisterResponse(token=record.token, created_time=record.created_time)


@router.post(
    "/users/cleanup",
    response_model=CleanupResponse,
    summary="Sweep unused sessions",
    description="Delete sessions that were registered but never entered",
)
async def cleanup_sessions(
    sweeper: Sweeper = Depends(get_sweeper),
    api_key: str = Depends(verify_api_key),
):
    try:
        deleted = await sweeper.sweep_once()
    except StoreError as e:
        log.error("sweeper.failed", error=str(e), trigger="manual")
        return JSONResponse(status_code=500, content={"error": "Session store unavailable"})
    return CleanupResponse(deleted=deleted)
