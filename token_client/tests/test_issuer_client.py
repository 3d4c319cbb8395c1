"""Tests for IssuerClient against a mocked token server (httpx.MockTransport)."""
import json
import time

import httpx
import pytest

from token_client.config import RENEW_BUFFER_SECONDS
from token_client.credential_store import StoredCredential
from token_client.issuer_client import IssuerClient, IssuerError


def _transport(handler):
    return httpx.MockTransport(handler)


def _issuer(responses: list[httpx.Response], seen: list[httpx.Request], **kwargs) -> IssuerClient:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.pop(0)

    return IssuerClient(base_url="https://tokens.example", transport=_transport(handler), **kwargs)


def test_fetch_rtc_token_posts_json_and_parses():
    seen = []
    issuer = _issuer(
        [httpx.Response(200, json={"type": "rtc", "token": "t1", "uid": 12345, "expiresIn": 120, "expiresAt": 999})],
        seen,
    )
    cred = issuer.fetch_rtc_token("demo-room")
    assert cred.kind == "rtc"
    assert cred.token == "t1"
    assert cred.identity == 12345
    assert cred.channel == "demo-room"
    assert cred.expires_in == 120
    assert cred.expires_at == 999
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/token"
    assert json.loads(request.content) == {"type": "rtc", "channel": "demo-room"}
    assert request.headers["Cache-Control"] == "no-store"
    assert "x-room-password" not in request.headers


def test_room_password_sent_as_header_not_body():
    seen = []
    issuer = _issuer(
        [httpx.Response(200, json={"type": "rtm", "token": "t", "account": "acc", "expiresIn": 60})],
        seen,
        room_password="secret",
    )
    cred = issuer.fetch_rtm_token()
    assert cred.identity == "acc"
    assert seen[0].headers["x-room-password"] == "secret"
    assert "secret" not in seen[0].content.decode()
    assert "secret" not in str(seen[0].url)


@pytest.mark.parametrize(
    "status, body, error",
    [
        (400, {"error": "bad_channel"}, "bad_channel"),
        (401, {"error": "unauthorized"}, "unauthorized"),
        (429, {"error": "rate_limited"}, "rate_limited"),
        (500, {"error": "token_generation_failed"}, "token_generation_failed"),
    ],
)
def test_error_responses_raise(status, body, error):
    issuer = _issuer([httpx.Response(status, json=body)], [])
    with pytest.raises(IssuerError) as exc_info:
        issuer.fetch_rtc_token("demo-room")
    assert exc_info.value.status_code == status
    assert exc_info.value.error == error


def test_non_json_error_uses_reason_phrase():
    issuer = _issuer([httpx.Response(502, text="<html>bad gateway</html>")], [])
    with pytest.raises(IssuerError) as exc_info:
        issuer.fetch_rtm_token()
    assert exc_info.value.status_code == 502
    assert exc_info.value.error == "Bad Gateway"


def test_missing_token_raises():
    issuer = _issuer([httpx.Response(200, json={"type": "rtc", "uid": 1})], [])
    with pytest.raises(IssuerError) as exc_info:
        issuer.fetch_rtc_token("demo-room")
    assert exc_info.value.error == "missing_token"


def test_transport_error_raises_issuer_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    issuer = IssuerClient(base_url="https://tokens.example", transport=_transport(handler))
    with pytest.raises(IssuerError) as exc_info:
        issuer.fetch_rtc_token("demo-room")
    assert exc_info.value.status_code == 0


def test_renew_rtc_reuses_channel():
    seen = []
    issuer = _issuer(
        [httpx.Response(200, json={"type": "rtc", "token": "new", "uid": 7, "expiresIn": 120})],
        seen,
    )
    old = StoredCredential(kind="rtc", token="old", identity=5, expires_in=120, issued_at=time.time(), channel="demo-room")
    new = issuer.renew(old)
    assert new.token == "new"
    assert json.loads(seen[0].content) == {"type": "rtc", "channel": "demo-room"}


def test_ensure_fresh_only_renews_when_needed():
    seen = []
    issuer = _issuer(
        [httpx.Response(200, json={"type": "rtm", "token": "renewed", "account": "b", "expiresIn": 120})],
        seen,
    )
    fresh = StoredCredential(kind="rtm", token="t", identity="a", expires_in=120, issued_at=time.time())
    assert issuer.ensure_fresh(fresh, buffer_seconds=30) is fresh
    assert seen == []
    stale = StoredCredential(kind="rtm", token="t", identity="a", expires_in=120, issued_at=time.time() - 100)
    renewed = issuer.ensure_fresh(stale, buffer_seconds=30)
    assert renewed.token == "renewed"
    assert len(seen) == 1


def test_ensure_fresh_uses_configured_buffer_by_default():
    seen = []
    issuer = _issuer(
        [httpx.Response(200, json={"type": "rtc", "token": "renewed", "uid": 7, "expiresIn": 120})],
        seen,
    )
    now = time.time()
    lifetime = RENEW_BUFFER_SECONDS + 120
    fresh = StoredCredential(
        kind="rtc", token="t", identity=1, expires_in=lifetime, issued_at=now, channel="demo-room",
        expires_at=int(now) + RENEW_BUFFER_SECONDS + 60,
    )
    assert issuer.ensure_fresh(fresh) is fresh
    assert seen == []
    stale = StoredCredential(
        kind="rtc", token="t", identity=1, expires_in=lifetime, issued_at=now - 120, channel="demo-room",
        expires_at=int(now) + RENEW_BUFFER_SECONDS // 2,
    )
    assert issuer.ensure_fresh(stale).token == "renewed"
    assert json.loads(seen[0].content) == {"type": "rtc", "channel": "demo-room"}


def test_context_manager_closes():
    with IssuerClient(base_url="https://tokens.example", transport=_transport(lambda r: httpx.Response(200))) as issuer:
        assert issuer.base_url == "https://tokens.example"
