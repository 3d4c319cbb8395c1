"""
Signing primitive for platform credentials. Thin wrapper over agora-token-builder;
the policy engine never sees builder internals, only SigningError.
"""

from agora_token_builder import RtcTokenBuilder, RtmTokenBuilder


# RTC roles as defined by the platform (RtcTokenBuilder.Role_*)
ROLE_PUBLISHER = 1
ROLE_SUBSCRIBER = 2

# RTM has a single role for logged-in users
RTM_ROLE_USER = 1


class SigningError(Exception):
    """The external builder failed to produce a token."""


class AgoraSigner:
    """Builds RTC and RTM tokens with the app certificate."""

    def sign_rtc(
        self,
        app_id: str,
        app_secret: str,
        channel: str,
        identity: int | str,
        role: int,
        expires_at: int,
    ) -> str:
        """Integer identities use the uid flavour; string identities use user accounts."""
        try:
            if isinstance(identity, int):
                token = RtcTokenBuilder.buildTokenWithUid(app_id, app_secret, channel, identity, role, expires_at)
            else:
                token = RtcTokenBuilder.buildTokenWithAccount(app_id, app_secret, channel, identity, role, expires_at)
        except Exception as e:
            raise SigningError("RTC token build failed") from e
        return _as_text(token)

    def sign_rtm(self, app_id: str, app_secret: str, account: str, expires_at: int) -> str:
        try:
            token = RtmTokenBuilder.buildToken(app_id, app_secret, account, RTM_ROLE_USER, expires_at)
        except Exception as e:
            raise SigningError("RTM token build failed") from e
        return _as_text(token)


def _as_text(token) -> str:
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    if not token:
        raise SigningError("builder returned an empty token")
    return token
