"""
ALM OAuth helper
Token exchange and refresh against the ALM OAuth endpoints, a per-learner
token store, and a session that refreshes once on expiry or a 401.
"""
from __future__ import annotations

import logging
import os
import secrets
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from alm_client import DEFAULT_API_BASE, JSON_API, ALMAPIError


logger = logging.getLogger(__name__)

ALM_BASE_URL = "https://learningmanager.adobe.com"
AUTHORIZE_URL = f"{ALM_BASE_URL}/oauth/o/authorize"
TOKEN_URL = f"{ALM_BASE_URL}/oauth/token"
REFRESH_URL = f"{ALM_BASE_URL}/oauth/token/refresh"
DEFAULT_SCOPE = "learner:read learner:write"
DEFAULT_EXPIRES_IN = 3600


class AuthConfigError(Exception):
    """OAuth client credentials are not configured"""


class AuthRequiredError(Exception):
    """No usable token and refreshing failed; the learner has to log in again"""


def _create_client() -> httpx.Client:
    return httpx.Client(
        headers={"Accept": "*/*"},
        timeout=httpx.Timeout(15.0, connect=10.0),
        follow_redirects=True,
    )


def generate_state() -> str:
    return secrets.token_urlsafe(16)


class ALMOAuth:
    """Client for the ALM OAuth token endpoints"""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        admin_client_id: Optional[str] = None,
        admin_client_secret: Optional[str] = None,
        admin_refresh_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id if client_id is not None else os.getenv("ALM_CLIENT_ID", "")
        self.client_secret = client_secret if client_secret is not None else os.getenv("ALM_CLIENT_SECRET", "")
        self.admin_client_id = admin_client_id if admin_client_id is not None else os.getenv("ALM_ADMIN_CLIENT_ID", "")
        self.admin_client_secret = (
            admin_client_secret if admin_client_secret is not None else os.getenv("ALM_ADMIN_CLIENT_SECRET", "")
        )
        self.admin_refresh_token = (
            admin_refresh_token if admin_refresh_token is not None else os.getenv("ALM_ADMIN_REFRESH_TOKEN", "")
        )
        self.client = client or _create_client()

    def authorization_url(self, redirect_uri: str, state: Optional[str] = None, scope: str = DEFAULT_SCOPE) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "state": state or generate_state(),
            "scope": scope,
            "response_type": "code",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _token_request(self, endpoint: str, form: Dict[str, str]) -> Dict[str, Any]:
        logger.info("Making POST request to %s", endpoint)
        response = self.client.post(
            endpoint,
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not response.is_success:
            logger.error("Token request failed with status %s: %s", response.status_code, response.text)
            raise ALMAPIError(
                f"API request failed: {response.text}", status=response.status_code, body=response.text,
            )
        logger.info("Successfully retrieved OAuth token from Adobe Learning Manager")
        return response.json()

    def exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        """Authorization-code grant for a learner login callback."""
        if not self.client_id or not self.client_secret:
            logger.error("Missing ALM_CLIENT_ID or ALM_CLIENT_SECRET environment variables")
            raise AuthConfigError("Missing required environment variables: ALM_CLIENT_ID, ALM_CLIENT_SECRET")
        return self._token_request(TOKEN_URL, {
            "redirect_uri": redirect_uri,
            "code": code,
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        })

    def refresh_admin_token(self) -> Dict[str, Any]:
        """Mint an admin access token from the configured admin refresh token."""
        if not (self.admin_client_id and self.admin_client_secret and self.admin_refresh_token):
            raise AuthConfigError(
                "Missing required environment variables: "
                "ALM_ADMIN_CLIENT_ID, ALM_ADMIN_CLIENT_SECRET, ALM_ADMIN_REFRESH_TOKEN"
            )
        return self._token_request(REFRESH_URL, {
            "refresh_token": self.admin_refresh_token,
            "client_id": self.admin_client_id,
            "client_secret": self.admin_client_secret,
        })

    def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        if not refresh_token:
            raise AuthRequiredError("No refresh token available")
        return self._token_request(TOKEN_URL, {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
        })


class TokenStore:
    """In-memory holder for one learner's tokens"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.expires_at: Optional[float] = None
        self.user_info: Optional[Dict[str, Any]] = None

    def store(self, token_data: Dict[str, Any]):
        self.access_token = token_data["access_token"]
        self.expires_at = self._clock() + int(token_data.get("expires_in") or DEFAULT_EXPIRES_IN)
        if token_data.get("refresh_token"):
            self.refresh_token = token_data["refresh_token"]

    def is_authenticated(self) -> bool:
        if not self.access_token or self.expires_at is None:
            return False
        return self._clock() < self.expires_at

    def get_access_token(self) -> Optional[str]:
        return self.access_token if self.is_authenticated() else None

    def clear(self):
        self.access_token = None
        self.refresh_token = None
        self.expires_at = None
        self.user_info = None


class AuthenticatedSession:
    """Makes learner API calls, refreshing the token at most once per call"""

    def __init__(
        self,
        oauth: ALMOAuth,
        store: TokenStore,
        api_base: str = DEFAULT_API_BASE,
        client: Optional[httpx.Client] = None,
    ):
        self.oauth = oauth
        self.store = store
        self.api_base = api_base.rstrip("/")
        self.client = client or oauth.client

    def _refresh(self) -> str:
        try:
            token_data = self.oauth.refresh_access_token(self.store.refresh_token or "")
        except (ALMAPIError, httpx.HTTPError) as e:
            self.store.clear()
            raise AuthRequiredError(f"Token refresh failed: {e}") from e
        except AuthRequiredError:
            self.store.clear()
            raise
        self.store.store(token_data)
        return self.store.access_token

    def request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        token = self.store.get_access_token() or self._refresh()
        url = endpoint if endpoint.startswith("http") else f"{self.api_base}{endpoint}"

        headers = {"Authorization": f"oauth {token}", "Accept": JSON_API}
        headers.update(kwargs.pop("headers", None) or {})

        response = self.client.request(method, url, headers=headers, **kwargs)
        if response.status_code == 401:
            logger.info("Got 401 from %s, refreshing token once", url)
            headers["Authorization"] = f"oauth {self._refresh()}"
            response = self.client.request(method, url, headers=headers, **kwargs)
        return response

    def fetch_user_info(self) -> Dict[str, Any]:
        response = self.request("GET", "/user")
        if not response.is_success:
            raise ALMAPIError(f"Failed to fetch user info: {response.status_code}", status=response.status_code)
        self.store.user_info = response.json()
        return self.store.user_info
