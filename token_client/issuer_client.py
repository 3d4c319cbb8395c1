"""
HTTP client for the token server. Fetches RTC/RTM credentials and renews them.
Renewal is just another issuance call; the server picks a fresh identity each time.
"""
import logging
import time

import httpx

from token_client.config import RENEW_BUFFER_SECONDS, REQUEST_TIMEOUT, ROOM_PASSWORD, TOKEN_API_BASE
from token_client.credential_store import StoredCredential

logger = logging.getLogger(__name__)


class IssuerError(Exception):
    """The token server refused the request or returned an unusable response."""

    def __init__(self, status_code: int, error: str):
        super().__init__(f"token server returned {status_code}: {error}")
        self.status_code = status_code
        self.error = error


class IssuerClient:
    def __init__(
        self,
        base_url: str = TOKEN_API_BASE,
        room_password: str | None = ROOM_PASSWORD,
        transport: httpx.BaseTransport | None = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.room_password = room_password
        self._http = httpx.Client(base_url=self.base_url, transport=transport, timeout=timeout)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _request_token(self, payload: dict) -> dict:
        headers = {"Cache-Control": "no-store"}
        if self.room_password:
            headers["x-room-password"] = self.room_password
        try:
            r = self._http.post("/token", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise IssuerError(0, f"request_failed: {e}") from e
        try:
            data = r.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if r.status_code != 200:
            raise IssuerError(r.status_code, str(data.get("error") or r.reason_phrase))
        if not data.get("token"):
            raise IssuerError(r.status_code, "missing_token")
        return data

    def fetch_rtc_token(self, channel: str) -> StoredCredential:
        """Token for joining an audio/video channel. The server chooses the uid."""
        data = self._request_token({"type": "rtc", "channel": channel})
        return StoredCredential(
            kind="rtc",
            token=data["token"],
            identity=data.get("uid"),
            expires_in=int(data.get("expiresIn") or 0),
            issued_at=time.time(),
            channel=channel,
            expires_at=data.get("expiresAt"),
        )

    def fetch_rtm_token(self) -> StoredCredential:
        """Token for messaging login. The server chooses the account."""
        data = self._request_token({"type": "rtm"})
        return StoredCredential(
            kind="rtm",
            token=data["token"],
            identity=data.get("account"),
            expires_in=int(data.get("expiresIn") or 0),
            issued_at=time.time(),
            expires_at=data.get("expiresAt"),
        )

    def renew(self, credential: StoredCredential) -> StoredCredential:
        """Fetch a replacement credential of the same kind (and channel, for RTC)."""
        logger.info("Renewing %s credential channel=%s", credential.kind, credential.channel)
        if credential.kind == "rtm":
            return self.fetch_rtm_token()
        return self.fetch_rtc_token(credential.channel or "")

    def ensure_fresh(self, credential: StoredCredential, buffer_seconds: int = RENEW_BUFFER_SECONDS) -> StoredCredential:
        """Return the credential unchanged, or a renewed one when it is expired or about to be."""
        if credential.expired_or_soon(buffer_seconds):
            return self.renew(credential)
        return credential
