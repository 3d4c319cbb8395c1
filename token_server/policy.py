"""
Credential policy engine. Decides, per request, whether a credential may be minted,
which identity it is bound to, how long it lives and what it is scoped to.

Stateless: each decide() call is a pure function of (request, config, now) plus the
signer call. Nothing minted is recorded here; see audit.py for the optional log.
"""
import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from token_server.config import PolicyConfig
from token_server.signer import ROLE_PUBLISHER, ROLE_SUBSCRIBER, SigningError

logger = logging.getLogger(__name__)

KIND_RTC = "rtc"
KIND_RTM = "rtm"

ISSUE_METHOD = "POST"

# Platform models RTC uids as 32-bit ints; 0 and the signed boundary are avoided.
RTC_UID_MIN = 1
RTC_UID_MAX = 2**31 - 2
# Range accepted for client-supplied numeric uids (unsigned 32-bit, 0 reserved)
CLIENT_UID_MAX = 2**32 - 1
MAX_ACCOUNT_LENGTH = 255

ROLE_AUDIENCE = "audience"


class RejectReason(str, Enum):
    METHOD_NOT_ALLOWED = "method_not_allowed"
    FORBIDDEN_ENVIRONMENT = "forbidden_env"
    SERVER_NOT_CONFIGURED = "server_not_configured"
    FORBIDDEN_ORIGIN = "forbidden_origin"
    UNAUTHORIZED = "unauthorized"
    INVALID_INPUT = "invalid_input"
    BAD_CHANNEL = "bad_channel"
    CHANNEL_AND_UID_REQUIRED = "channel_and_uid_required"
    TOKEN_GENERATION_FAILED = "token_generation_failed"


class IdentityOrigin(str, Enum):
    SERVER_GENERATED = "server_generated"
    CLIENT_SUPPLIED = "client_supplied"


@dataclass(frozen=True)
class IssuanceRequest:
    method: str = ISSUE_METHOD
    kind: str | None = None
    channel: str | None = None
    supplied_secret: str | None = None
    raw_uid: str | int | None = None
    requested_role: str | None = None
    origin: str | None = None
    malformed: bool = False


@dataclass(frozen=True)
class ResolvedIdentity:
    value: int | str
    origin: IdentityOrigin


@dataclass(frozen=True)
class Credential:
    kind: str
    token: str
    identity: ResolvedIdentity
    expires_at: int
    ttl_seconds: int
    channel: str | None = None
    role: int | None = None


@dataclass(frozen=True)
class Rejected:
    reason: RejectReason


class Signer(Protocol):
    def sign_rtc(self, app_id: str, app_secret: str, channel: str, identity: int | str, role: int, expires_at: int) -> str:
        ...

    def sign_rtm(self, app_id: str, app_secret: str, account: str, expires_at: int) -> str:
        ...


def origin_allowed(origin: str | None, config: PolicyConfig) -> bool:
    """Exact string match against the allow-list. No list configured means no origin is allowed."""
    if not origin:
        return False
    return origin in config.allowed_origins


def secrets_match(supplied: str | None, expected: str) -> bool:
    """Constant-time comparison of a shared secret (room password, audit secret)."""
    if supplied is None:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def generate_rtc_uid() -> int:
    return RTC_UID_MIN + secrets.randbelow(RTC_UID_MAX - RTC_UID_MIN + 1)


def generate_rtm_account() -> str:
    return str(uuid.uuid4())


def _normalize_kind(kind: str | None) -> str | None:
    if kind is None or not str(kind).strip():
        return KIND_RTC
    kind = str(kind).strip().lower()
    if kind in (KIND_RTC, KIND_RTM):
        return kind
    return None


def _client_identity(raw_uid: str | int | None) -> ResolvedIdentity | RejectReason:
    """Parse a caller-chosen uid (insecure toggle only). Digits become an int uid, anything else an account."""
    if isinstance(raw_uid, bool):
        return RejectReason.INVALID_INPUT
    if isinstance(raw_uid, int):
        value = raw_uid
    else:
        text = (raw_uid or "").strip()
        if not text:
            return RejectReason.CHANNEL_AND_UID_REQUIRED
        if not text.isdigit():
            if len(text) > MAX_ACCOUNT_LENGTH:
                return RejectReason.INVALID_INPUT
            return ResolvedIdentity(text, IdentityOrigin.CLIENT_SUPPLIED)
        value = int(text)
    if not 1 <= value <= CLIENT_UID_MAX:
        return RejectReason.INVALID_INPUT
    return ResolvedIdentity(value, IdentityOrigin.CLIENT_SUPPLIED)


def _rtc_role(requested_role: str | None, config: PolicyConfig) -> int:
    if config.allow_client_role and (requested_role or "").strip().lower() == ROLE_AUDIENCE:
        return ROLE_SUBSCRIBER
    return ROLE_PUBLISHER


def decide(
    request: IssuanceRequest,
    config: PolicyConfig,
    now: int,
    signer: Signer,
) -> Credential | Rejected:
    """
    Run the issuance gates in order and mint a credential, or return the first rejection.
    Order: method, environment, configuration, origin, shared secret, kind dispatch.
    """
    if (request.method or "").upper() != ISSUE_METHOD:
        return Rejected(RejectReason.METHOD_NOT_ALLOWED)

    if config.prod_only and not config.is_production:
        return Rejected(RejectReason.FORBIDDEN_ENVIRONMENT)

    if not config.is_configured:
        return Rejected(RejectReason.SERVER_NOT_CONFIGURED)

    if config.strict_origin and config.allowed_origins and request.origin and not origin_allowed(request.origin, config):
        logger.warning("Rejected request from origin not in allow-list")
        return Rejected(RejectReason.FORBIDDEN_ORIGIN)

    if config.room_password and not secrets_match(request.supplied_secret, config.room_password):
        logger.warning("Rejected request with missing or wrong room password")
        return Rejected(RejectReason.UNAUTHORIZED)

    if request.malformed:
        return Rejected(RejectReason.INVALID_INPUT)
    kind = _normalize_kind(request.kind)
    if kind is None:
        return Rejected(RejectReason.INVALID_INPUT)

    expires_at = now + config.token_ttl_seconds

    if kind == KIND_RTM:
        # Chat identities are never taken from the client.
        identity = ResolvedIdentity(generate_rtm_account(), IdentityOrigin.SERVER_GENERATED)
        try:
            token = signer.sign_rtm(config.app_id, config.app_secret, identity.value, expires_at)
        except SigningError:
            logger.exception("RTM token generation failed")
            return Rejected(RejectReason.TOKEN_GENERATION_FAILED)
        logger.info("Issued rtm token account=%s expires_at=%s", identity.value, expires_at)
        return Credential(
            kind=KIND_RTM,
            token=token,
            identity=identity,
            expires_at=expires_at,
            ttl_seconds=config.token_ttl_seconds,
        )

    channel = (request.channel or "").strip(" ")
    if config.allow_client_uid and not channel:
        return Rejected(RejectReason.CHANNEL_AND_UID_REQUIRED)
    if not config.channel_name_pattern.fullmatch(channel):
        return Rejected(RejectReason.BAD_CHANNEL)

    if config.allow_client_uid:
        resolved = _client_identity(request.raw_uid)
        if isinstance(resolved, RejectReason):
            return Rejected(resolved)
        identity = resolved
    else:
        identity = ResolvedIdentity(generate_rtc_uid(), IdentityOrigin.SERVER_GENERATED)

    role = _rtc_role(request.requested_role, config)
    try:
        token = signer.sign_rtc(config.app_id, config.app_secret, channel, identity.value, role, expires_at)
    except SigningError:
        logger.exception("RTC token generation failed for channel=%s", channel)
        return Rejected(RejectReason.TOKEN_GENERATION_FAILED)

    logger.info("Issued rtc token channel=%s uid=%s role=%s expires_at=%s", channel, identity.value, role, expires_at)
    return Credential(
        kind=KIND_RTC,
        token=token,
        identity=identity,
        expires_at=expires_at,
        ttl_seconds=config.token_ttl_seconds,
        channel=channel,
        role=role,
    )
