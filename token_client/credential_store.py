"""
Credential held by a client between fetches. Used to decide when to ask the issuer again.
"""
import time
from dataclasses import dataclass

from token_client.config import RENEW_BUFFER_SECONDS


@dataclass
class StoredCredential:
    kind: str
    token: str
    identity: int | str
    expires_in: int
    issued_at: float
    channel: str | None = None
    # Absolute expiry (epoch seconds) as reported by the server
    expires_at: int | None = None

    def expiry(self) -> float:
        """Server-reported expiry when known, else local issue time plus lifetime."""
        if self.expires_at is not None:
            return float(self.expires_at)
        return self.issued_at + self.expires_in

    def expired_or_soon(self, buffer_seconds: int = RENEW_BUFFER_SECONDS, now: float | None = None) -> bool:
        """
        True if the credential is expired or within buffer_seconds of expiry (for proactive renewal).
        When the lifetime is shorter than buffer_seconds, only return True when actually expired.
        """
        now = time.time() if now is None else now
        remaining = self.expiry() - now
        if remaining <= 0:
            return True
        # Renewing early only makes sense when the credential outlives the buffer
        return self.expires_in > buffer_seconds and remaining <= buffer_seconds
