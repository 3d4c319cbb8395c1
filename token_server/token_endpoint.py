"""
Token endpoint (POST /token). Parses the JSON body, applies CORS and security headers,
rate limits per IP, and maps policy decisions to HTTP status codes.
All issuance rules live in policy.py; this module only translates.
"""
import json
import logging
import time

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, StrictInt, StrictStr, ValidationError
from sqlalchemy.orm import Session

from token_server.audit import get_client_ip, get_db, log_issuance
from token_server.config import PolicyConfig
from token_server.policy import (
    Credential,
    IssuanceRequest,
    KIND_RTC,
    RejectReason,
    Rejected,
    decide,
    origin_allowed,
)

logger = logging.getLogger(__name__)
router = APIRouter()

ROOM_PASSWORD_HEADER = "x-room-password"
ALLOW_METHODS = "POST, OPTIONS"
ALLOW_HEADERS = "content-type, x-room-password"

STATUS_BY_REASON = {
    RejectReason.METHOD_NOT_ALLOWED: 405,
    RejectReason.FORBIDDEN_ENVIRONMENT: 403,
    RejectReason.SERVER_NOT_CONFIGURED: 500,
    RejectReason.FORBIDDEN_ORIGIN: 403,
    RejectReason.UNAUTHORIZED: 401,
    RejectReason.INVALID_INPUT: 400,
    RejectReason.BAD_CHANNEL: 400,
    RejectReason.CHANNEL_AND_UID_REQUIRED: 400,
    RejectReason.TOKEN_GENERATION_FAILED: 500,
}


class TokenRequestBody(BaseModel):
    """Canonical request body. Unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    channel: str | None = None
    pw: str | None = None
    uid: StrictInt | StrictStr | None = None
    role: str | None = None


def _apply_headers(response: Response, origin: str | None, config: PolicyConfig) -> Response:
    # Echo only an allow-listed origin; never "*"
    if origin_allowed(origin, config):
        response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Vary"] = "Origin"
    response.headers["Cache-Control"] = "no-store"
    response.headers["Content-Security-Policy"] = "default-src 'none'"
    response.headers["Referrer-Policy"] = "no-referrer"
    return response


def _error(code: str, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"error": code}, status_code=status_code, headers=headers)


def _credential_body(credential: Credential) -> dict:
    body = {"type": credential.kind, "token": credential.token}
    if credential.kind == KIND_RTC:
        body["uid"] = credential.identity.value
    else:
        body["account"] = credential.identity.value
    body["expiresIn"] = credential.ttl_seconds
    body["expiresAt"] = credential.expires_at
    return body


async def _read_issuance_request(request: Request) -> IssuanceRequest:
    """Build an IssuanceRequest from headers and JSON body. The header password wins over body pw."""
    method = request.method.upper()
    origin = request.headers.get("origin")
    header_secret = request.headers.get(ROOM_PASSWORD_HEADER) or None
    if method != "POST":
        return IssuanceRequest(method=method, origin=origin, supplied_secret=header_secret)

    try:
        raw = await request.body()
        data = json.loads(raw) if raw.strip() else {}
        if not isinstance(data, dict):
            raise ValueError("JSON body must be an object")
        body = TokenRequestBody.model_validate(data)
    except (ValueError, ValidationError, RecursionError) as e:
        logger.debug("Malformed token request body: %s", e)
        return IssuanceRequest(method=method, origin=origin, supplied_secret=header_secret, malformed=True)

    return IssuanceRequest(
        method=method,
        kind=body.type,
        channel=body.channel,
        supplied_secret=header_secret or body.pw,
        raw_uid=body.uid,
        requested_role=body.role,
        origin=origin,
    )


@router.options("/token")
def token_preflight(request: Request):
    """CORS preflight."""
    config: PolicyConfig = request.app.state.config
    response = Response(status_code=204)
    response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
    return _apply_headers(response, request.headers.get("origin"), config)


@router.api_route("/token", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def token(request: Request, db: Session | None = Depends(get_db)):
    """
    Issue a short-lived RTC or RTM token.
    Body: {"type": "rtc"|"rtm", "channel": "...", "pw": "..."}; password preferably in x-room-password.
    """
    config: PolicyConfig = request.app.state.config
    origin = request.headers.get("origin")
    ip = get_client_ip(request)

    allowed, retry_after = request.app.state.limiter.check_and_consume(ip or "unknown")
    if not allowed:
        logger.warning("Rate limit exceeded for ip=%s", ip)
        response = _error("rate_limited", 429, headers={"Retry-After": str(retry_after)})
        return _apply_headers(response, origin, config)

    issuance_request = await _read_issuance_request(request)
    result = decide(issuance_request, config, int(time.time()), request.app.state.signer)

    if db is not None and not (isinstance(result, Rejected) and result.reason is RejectReason.METHOD_NOT_ALLOWED):
        log_issuance(db, result, kind=issuance_request.kind, channel=issuance_request.channel, ip=ip)

    if isinstance(result, Rejected):
        headers = {"Allow": ALLOW_METHODS} if result.reason is RejectReason.METHOD_NOT_ALLOWED else None
        response = _error(result.reason.value, STATUS_BY_REASON[result.reason], headers=headers)
    else:
        response = JSONResponse(_credential_body(result), status_code=200)
    return _apply_headers(response, origin, config)
