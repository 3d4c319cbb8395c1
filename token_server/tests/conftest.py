"""
Pytest configuration for token_server. Tests build explicit PolicyConfig objects, so the
process environment must not leak credentials or toggles into the module-level app.
"""
import os

import pytest

from token_server.signer import SigningError

for _name in (
    "AGORA_APP_ID",
    "AGORA_APP_CERTIFICATE",
    "ALLOWED_ORIGINS",
    "APP_ORIGIN",
    "ROOM_PASSWORD",
    "TOKEN_TTL_SECONDS",
    "CHANNEL_NAME_PATTERN",
    "TOKEN_STRICT_ORIGIN",
    "TOKEN_ALLOW_CLIENT_UID",
    "TOKEN_ALLOW_CLIENT_ROLE",
    "RATE_LIMIT_TOKEN_PER_MINUTE",
    "ISSUANCE_LOG_ENABLED",
    "ISSUANCE_DATABASE_URL",
    "ISSUANCE_LOG_SECRET",
):
    os.environ.pop(_name, None)


class RecordingSigner:
    """Stand-in for AgoraSigner that records calls and returns distinct fake tokens."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple] = []

    def sign_rtc(self, app_id, app_secret, channel, identity, role, expires_at):
        self.calls.append(("rtc", app_id, app_secret, channel, identity, role, expires_at))
        if self.fail:
            raise SigningError("boom: certificate rejected")
        return f"rtc-token-{len(self.calls)}-{identity}"

    def sign_rtm(self, app_id, app_secret, account, expires_at):
        self.calls.append(("rtm", app_id, app_secret, account, expires_at))
        if self.fail:
            raise SigningError("boom: certificate rejected")
        return f"rtm-token-{len(self.calls)}-{account}"

@pytest.fixture
def signer():
    return RecordingSigner()

@pytest.fixture
def failing_signer():
    return RecordingSigner(fail=True)
