"""REST API routes for profile transfer between devices."""

import functools
from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from french_quiz.api.rate_limit import client_ip, limiter, transfer_rate_limit
from french_quiz.config import get_settings
from french_quiz.errors import TransferError, ValidationError
from french_quiz.models.transfer import (
    CreateTransferRequest,
    RedeemTransferRequest,
    RedeemTransferResponse,
)
from french_quiz.transfer.datastore import TransferCodeTable
from french_quiz.transfer.service import TransferService

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


@functools.lru_cache
def get_transfer_service() -> TransferService:
    """Build the transfer service from settings (singleton)."""
    settings = get_settings()
    table = TransferCodeTable(
        base_url=settings.supabase_url,
        service_key=settings.supabase_service_key,
        anon_key=settings.supabase_anon_key,
        timeout=settings.supabase_timeout_seconds,
    )
    return TransferService(table, ttl=timedelta(minutes=settings.transfer_ttl_minutes))


def _error_response(error: TransferError) -> JSONResponse:
    return JSONResponse({"error": error.message}, status_code=error.status_code)


async def _json_body(request: Request, message: str) -> dict:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError(message)
    if not isinstance(body, dict):
        raise ValidationError(message)
    return body


@router.post("/transfer/create", status_code=201)
@limiter.limit(transfer_rate_limit)
async def create_transfer(
    request: Request,
    response: Response,
    service: TransferService = Depends(get_transfer_service),
):
    """Store a profile snapshot and hand back a one-time code."""
    try:
        body = await _json_body(request, "Invalid profile data")
        payload = CreateTransferRequest.model_validate(body)
        result = await service.create(payload.profile_data, client_ip=client_ip(request))
    except TransferError as e:
        return _error_response(e)
    except Exception:
        logger.exception("create_transfer_code_error")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return result.model_dump(mode="json", by_alias=True)


@router.post("/transfer/redeem")
@limiter.limit(transfer_rate_limit)
async def redeem_transfer(
    request: Request,
    response: Response,
    service: TransferService = Depends(get_transfer_service),
):
    """Exchange a code for the profile snapshot stored under it."""
    try:
        body = await _json_body(request, "Invalid code format")
        payload = RedeemTransferRequest.model_validate(body)
        profile_data = await service.redeem(payload.code)
    except TransferError as e:
        return _error_response(e)
    except Exception:
        logger.exception("redeem_transfer_code_error")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return RedeemTransferResponse(profile_data=profile_data).model_dump(by_alias=True)


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
