"""
Tests for the ALM OAuth helper
"""
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from alm_auth import (
    REFRESH_URL,
    TOKEN_URL,
    ALMOAuth,
    AuthConfigError,
    AuthenticatedSession,
    AuthRequiredError,
    TokenStore,
)
from alm_client import ALMAPIError
from conftest import mock_client


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _oauth(handler, **kwargs):
    defaults = dict(
        client_id="cid", client_secret="secret",
        admin_client_id="aid", admin_client_secret="asecret", admin_refresh_token="arefresh",
    )
    defaults.update(kwargs)
    return ALMOAuth(client=mock_client(handler), **defaults)


def _form(request):
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_authorization_url():
    url = _oauth(lambda r: httpx.Response(200)).authorization_url("https://site/cb", state="xyz")
    query = parse_qs(urlparse(url).query)
    assert query["client_id"] == ["cid"]
    assert query["redirect_uri"] == ["https://site/cb"]
    assert query["state"] == ["xyz"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["learner:read learner:write"]


def test_exchange_code(recorded):
    def handler(request):
        recorded.append(request)
        return httpx.Response(200, json={"access_token": "at", "refresh_token": "rt", "expires_in": 600})

    tokens = _oauth(handler).exchange_code("the-code", "https://site/cb")

    assert tokens["access_token"] == "at"
    assert str(recorded[0].url) == TOKEN_URL
    assert _form(recorded[0]) == {
        "redirect_uri": "https://site/cb",
        "code": "the-code",
        "grant_type": "authorization_code",
        "client_id": "cid",
        "client_secret": "secret",
    }


def test_exchange_code_requires_credentials():
    with pytest.raises(AuthConfigError):
        _oauth(lambda r: httpx.Response(200), client_secret="").exchange_code("c", "u")


def test_refresh_admin_token(recorded):
    def handler(request):
        recorded.append(request)
        return httpx.Response(200, json={"access_token": "admin"})

    assert _oauth(handler).refresh_admin_token() == {"access_token": "admin"}
    assert str(recorded[0].url) == REFRESH_URL
    assert _form(recorded[0])["refresh_token"] == "arefresh"


def test_token_request_error_carries_upstream_status():
    with pytest.raises(ALMAPIError) as exc:
        _oauth(lambda r: httpx.Response(401, text="bad client")).refresh_admin_token()
    assert exc.value.status == 401


def test_token_store_expiry():
    clock = FakeClock()
    store = TokenStore(clock=clock)
    assert not store.is_authenticated()

    store.store({"access_token": "at", "refresh_token": "rt", "expires_in": 60})
    assert store.get_access_token() == "at"

    clock.now += 61
    assert not store.is_authenticated()
    assert store.get_access_token() is None
    assert store.refresh_token == "rt"

    store.clear()
    assert store.refresh_token is None


def test_session_retries_once_after_401(recorded):
    def handler(request):
        recorded.append((request.method, str(request.url), request.headers.get("Authorization")))
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "fresh", "expires_in": 3600})
        if request.headers["Authorization"] == "oauth stale":
            return httpx.Response(401)
        return httpx.Response(200, json={"data": {"id": "user:1"}})

    oauth = _oauth(handler)
    store = TokenStore()
    store.store({"access_token": "stale", "refresh_token": "rt"})
    session = AuthenticatedSession(oauth, store, api_base="https://alm.test/primeapi/v2")

    assert session.fetch_user_info() == {"data": {"id": "user:1"}}
    assert store.access_token == "fresh"
    assert store.user_info == {"data": {"id": "user:1"}}
    assert [r[2] for r in recorded if r[1] != TOKEN_URL] == ["oauth stale", "oauth fresh"]


def test_session_refreshes_expired_token_first(recorded):
    def handler(request):
        recorded.append(str(request.url))
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "fresh"})
        return httpx.Response(200, json={})

    clock = FakeClock()
    store = TokenStore(clock=clock)
    store.store({"access_token": "old", "refresh_token": "rt", "expires_in": 10})
    clock.now += 20

    session = AuthenticatedSession(_oauth(handler), store, api_base="https://alm.test/primeapi/v2")
    session.request("GET", "/user")

    assert recorded == [TOKEN_URL, "https://alm.test/primeapi/v2/user"]


def test_failed_refresh_clears_store():
    store = TokenStore()
    session = AuthenticatedSession(_oauth(lambda r: httpx.Response(400, text="nope")), store)

    with pytest.raises(AuthRequiredError):
        session.request("GET", "/user")
    assert store.access_token is None
