"""
Token server configuration. Read once from the environment at startup into an
immutable PolicyConfig that is passed to the app and the policy engine.
No secrets in this file; credentials come from env.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Mapping

# Platform credentials (Agora project settings)
ENV_APP_ID = "AGORA_APP_ID"
ENV_APP_SECRET = "AGORA_APP_CERTIFICATE"

# Allowed browser origins: comma-separated list and/or a single origin
ENV_ALLOWED_ORIGINS = "ALLOWED_ORIGINS"
ENV_APP_ORIGIN = "APP_ORIGIN"

# Optional shared secret required from callers
ENV_ROOM_PASSWORD = "ROOM_PASSWORD"

# Credential lifetime (seconds). Short by default: a leaked token is useful for two minutes.
ENV_TOKEN_TTL = "TOKEN_TTL_SECONDS"
DEFAULT_TOKEN_TTL_SECONDS = 120

ENV_CHANNEL_PATTERN = "CHANNEL_NAME_PATTERN"
DEFAULT_CHANNEL_PATTERN = r"[A-Za-z0-9._-]{3,64}"

# Production-only issuance. Anything but "false" keeps it on.
ENV_PROD_ONLY = "TOKEN_PROD_ONLY"
ENV_DEPLOY_ENV = "DEPLOY_ENV"
ENV_VERCEL_ENV = "VERCEL_ENV"
PRODUCTION = "production"

ENV_STRICT_ORIGIN = "TOKEN_STRICT_ORIGIN"

# INSECURE toggles: let callers choose their own uid / role. Off unless explicitly enabled.
ENV_ALLOW_CLIENT_UID = "TOKEN_ALLOW_CLIENT_UID"
ENV_ALLOW_CLIENT_ROLE = "TOKEN_ALLOW_CLIENT_ROLE"

# Rate limiting: per-IP, per minute. 0 disables.
ENV_RATE_LIMIT = "RATE_LIMIT_TOKEN_PER_MINUTE"
DEFAULT_RATE_LIMIT_PER_MINUTE = 60

# Optional issuance log (SQLite acceptable)
ENV_ISSUANCE_LOG_ENABLED = "ISSUANCE_LOG_ENABLED"
ENV_ISSUANCE_DATABASE_URL = "ISSUANCE_DATABASE_URL"
DEFAULT_ISSUANCE_DATABASE_URL = "sqlite:///./issuance_log.db"
# Required by GET /audit (x-audit-secret header). Unset means the route refuses every caller.
ENV_ISSUANCE_LOG_SECRET = "ISSUANCE_LOG_SECRET"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised at startup when an environment value cannot be used."""


@dataclass(frozen=True)
class PolicyConfig:
    app_id: str = ""
    app_secret: str = ""
    allowed_origins: frozenset[str] = frozenset()
    room_password: str | None = None
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    channel_name_pattern: re.Pattern = field(default_factory=lambda: re.compile(DEFAULT_CHANNEL_PATTERN))
    prod_only: bool = True
    environment: str = "development"
    strict_origin: bool = False
    allow_client_uid: bool = False
    allow_client_role: bool = False
    rate_limit_per_minute: int = DEFAULT_RATE_LIMIT_PER_MINUTE
    issuance_log_enabled: bool = False
    issuance_database_url: str = DEFAULT_ISSUANCE_DATABASE_URL
    audit_secret: str | None = None

    def __post_init__(self):
        if self.token_ttl_seconds <= 0:
            raise ConfigError("token_ttl_seconds must be positive")
        if self.rate_limit_per_minute < 0:
            raise ConfigError("rate_limit_per_minute must not be negative")
        if isinstance(self.channel_name_pattern, str):
            object.__setattr__(self, "channel_name_pattern", _compile_pattern(self.channel_name_pattern))
        if not isinstance(self.allowed_origins, frozenset):
            object.__setattr__(self, "allowed_origins", frozenset(self.allowed_origins))

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id) and bool(self.app_secret)

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION


def _compile_pattern(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"Invalid channel name pattern {pattern!r}: {e}") from e


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _flag_env(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUTHY


def _split_origins(*values: str | None) -> frozenset[str]:
    origins = set()
    for value in values:
        if not value:
            continue
        origins.update(o.strip() for o in value.split(",") if o.strip())
    return frozenset(origins)


def load_config(environ: Mapping[str, str] | None = None) -> PolicyConfig:
    """Build the process-wide PolicyConfig from environment variables."""
    env = os.environ if environ is None else environ
    deploy_env = (env.get(ENV_DEPLOY_ENV) or env.get(ENV_VERCEL_ENV) or "development").strip().lower()
    return PolicyConfig(
        app_id=env.get(ENV_APP_ID, "").strip(),
        app_secret=env.get(ENV_APP_SECRET, "").strip(),
        allowed_origins=_split_origins(env.get(ENV_ALLOWED_ORIGINS), env.get(ENV_APP_ORIGIN)),
        room_password=env.get(ENV_ROOM_PASSWORD) or None,
        token_ttl_seconds=_int_env(env, ENV_TOKEN_TTL, DEFAULT_TOKEN_TTL_SECONDS),
        channel_name_pattern=_compile_pattern(env.get(ENV_CHANNEL_PATTERN) or DEFAULT_CHANNEL_PATTERN),
        prod_only=env.get(ENV_PROD_ONLY, "").strip().lower() != "false",
        environment=deploy_env,
        strict_origin=_flag_env(env, ENV_STRICT_ORIGIN),
        allow_client_uid=_flag_env(env, ENV_ALLOW_CLIENT_UID),
        allow_client_role=_flag_env(env, ENV_ALLOW_CLIENT_ROLE),
        rate_limit_per_minute=_int_env(env, ENV_RATE_LIMIT, DEFAULT_RATE_LIMIT_PER_MINUTE),
        issuance_log_enabled=_flag_env(env, ENV_ISSUANCE_LOG_ENABLED),
        issuance_database_url=env.get(ENV_ISSUANCE_DATABASE_URL) or DEFAULT_ISSUANCE_DATABASE_URL,
        audit_secret=env.get(ENV_ISSUANCE_LOG_SECRET) or None,
    )
