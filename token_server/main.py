"""
Token Server: short-lived RTC/RTM credential issuer.
POST /token, OPTIONS /token, GET /health; GET /audit when the issuance log is enabled.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from token_server.audit import router as audit_router
from token_server.config import PolicyConfig, load_config
from token_server.database import make_session_factory
from token_server.policy import Signer
from token_server.rate_limit import SlidingWindowLimiter
from token_server.signer import AgoraSigner
from token_server.token_endpoint import router as token_router

logger = logging.getLogger(__name__)


def _log_startup(config: PolicyConfig) -> None:
    if not config.is_configured:
        logger.warning("AGORA_APP_ID / AGORA_APP_CERTIFICATE not set; /token will answer server_not_configured")
    if config.prod_only and not config.is_production:
        logger.warning("Production-only issuance is on and environment=%s; /token will answer forbidden_env", config.environment)
    if not config.allowed_origins:
        logger.info("No allowed origins configured; cross-origin browsers cannot read /token responses")
    if config.issuance_log_enabled and not config.audit_secret:
        logger.warning("ISSUANCE_LOG_SECRET not set; GET /audit will answer unauthorized")
    if config.allow_client_uid:
        logger.warning("INSECURE: TOKEN_ALLOW_CLIENT_UID is on; RTC identities are chosen by callers")
    if config.allow_client_role:
        logger.warning("INSECURE: TOKEN_ALLOW_CLIENT_ROLE is on; callers may request the audience role")
    logger.info(
        "Token server ready: ttl=%ss origins=%d room_password=%s issuance_log=%s",
        config.token_ttl_seconds,
        len(config.allowed_origins),
        bool(config.room_password),
        config.issuance_log_enabled,
    )


def create_app(config: PolicyConfig | None = None, signer: Signer | None = None) -> FastAPI:
    """Build an app bound to one immutable configuration."""
    config = config if config is not None else load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _log_startup(config)
        yield

    app = FastAPI(title="Token Server", version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.signer = signer if signer is not None else AgoraSigner()
    app.state.limiter = SlidingWindowLimiter(config.rate_limit_per_minute)
    app.state.session_factory = None
    app.include_router(token_router, tags=["token"])
    if config.issuance_log_enabled:
        app.state.session_factory = make_session_factory(config.issuance_database_url)
        app.include_router(audit_router)

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "token_server"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "token_server.main:app",
        host="127.0.0.1",
        port=8080,
        reload=True,
    )
