"""
Issuance log. Records each decision made at POST /token; no tokens, passwords or
request bodies. Disabled unless ISSUANCE_LOG_ENABLED is set.
"""
import logging
from typing import Iterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from token_server.models import IssuanceRecord
from token_server.policy import Credential, Rejected, secrets_match

logger = logging.getLogger(__name__)

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (e.g. request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def get_db(request: Request) -> Iterator[Session | None]:
    """Dependency: yield a session for the issuance log, or None when the log is disabled."""
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        yield None
        return
    db = factory()
    try:
        yield db
    finally:
        db.close()


def log_issuance(
    db: Session,
    result: Credential | Rejected,
    *,
    kind: str | None = None,
    channel: str | None = None,
    ip: str | None = None,
) -> None:
    """Append one record for a decision. Never log the token itself."""
    if isinstance(result, Credential):
        record = IssuanceRecord(
            kind=result.kind,
            channel=result.channel,
            identity=str(result.identity.value),
            expires_at=result.expires_at,
            outcome=OUTCOME_SUCCESS,
            ip=ip,
        )
    else:
        record = IssuanceRecord(
            kind=(kind or "")[:8] or None,
            channel=(channel or "")[:64] or None,
            outcome=OUTCOME_FAIL,
            reason=result.reason.value,
            ip=ip,
        )
    db.add(record)
    db.commit()


def query_issuance_log(
    db: Session,
    *,
    limit: int = 100,
    kind: str | None = None,
    outcome: str | None = None,
) -> list[dict]:
    """Most recent first."""
    q = db.query(IssuanceRecord).order_by(IssuanceRecord.id.desc())
    if kind:
        q = q.filter(IssuanceRecord.kind == kind)
    if outcome:
        q = q.filter(IssuanceRecord.outcome == outcome)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "kind": r.kind,
            "channel": r.channel,
            "identity": r.identity,
            "expires_at": r.expires_at,
            "outcome": r.outcome,
            "reason": r.reason,
            "ip": r.ip,
        }
        for r in rows
    ]


router = APIRouter(tags=["audit"])

AUDIT_SECRET_HEADER = "x-audit-secret"


@router.get("/audit")
def list_issuance_log(
    request: Request,
    limit: int = 100,
    kind: str | None = None,
    outcome: str | None = None,
    db: Session | None = Depends(get_db),
):
    """List recent issuance decisions. No tokens or secrets. Requires the x-audit-secret header."""
    expected = request.app.state.config.audit_secret
    if not expected or not secrets_match(request.headers.get(AUDIT_SECRET_HEADER), expected):
        logger.warning("Rejected audit log request with missing or wrong secret ip=%s", get_client_ip(request))
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    if db is None:
        return []
    return query_issuance_log(db, limit=limit, kind=kind, outcome=outcome)
