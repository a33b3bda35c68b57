"""Salesforce OAuth 2.0 web-server flow with PKCE."""

import base64
import hashlib
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx

from .config import (
    SF_API_TIMEOUT,
    SF_CALLBACK_URL,
    SF_CLIENT_ID,
    SF_CLIENT_SECRET,
    SF_LOGIN_URL,
    SF_SANDBOX_LOGIN_URL,
)

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("production", "sandbox")
DEFAULT_TOKEN_LIFETIME_SECONDS = 7200


@dataclass
class SalesforceSession:
    access_token: str
    instance_url: str
    user_id: str = ""
    organization_id: str = ""
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # epoch seconds
    environment: str = "production"

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.time() > self.expires_at


@dataclass
class AuthorizationRequest:
    url: str
    state: str
    code_verifier: str
    environment: str


def generate_code_verifier() -> str:
    # 32 random bytes → 43 base64url chars, the PKCE minimum
    return secrets.token_urlsafe(32)


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    return secrets.token_hex(16)


def normalize_environment(env: Optional[str]) -> str:
    return "sandbox" if env == "sandbox" else "production"


def login_url(env: str) -> str:
    return SF_SANDBOX_LOGIN_URL if env == "sandbox" else SF_LOGIN_URL


def build_authorization_request(env: str = "production") -> AuthorizationRequest:
    """Create a fresh PKCE verifier/state pair and the URL to send the user to."""
    env = normalize_environment(env)
    verifier = generate_code_verifier()
    state = generate_state()
    params = {
        "response_type": "code",
        "client_id": SF_CLIENT_ID,
        "redirect_uri": SF_CALLBACK_URL,
        "scope": "api refresh_token",
        "state": state,
        "code_challenge": generate_code_challenge(verifier),
        "code_challenge_method": "S256",
    }
    url = f"{login_url(env)}/services/oauth2/authorize?{urlencode(params)}"
    logger.info("OAuth authorization URL generated for %s (state=%s)", env, state)
    return AuthorizationRequest(url=url, state=state, code_verifier=verifier, environment=env)


def _session_from_token_response(
    data: dict, env: str, refresh_token: Optional[str] = None
) -> SalesforceSession:
    # id looks like https://login.salesforce.com/id/<orgId>/<userId>
    id_parts = data.get("id", "").split("/")
    return SalesforceSession(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or refresh_token,
        instance_url=data["instance_url"],
        user_id=id_parts[-1] if id_parts else "",
        organization_id=id_parts[4] if len(id_parts) > 4 else "",
        expires_at=int(time.time())
        + int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS),
        environment=env,
    )


async def _post_token(env: str, form: dict, transport=None) -> dict:
    async with httpx.AsyncClient(timeout=SF_API_TIMEOUT, transport=transport) as client:
        resp = await client.post(
            f"{login_url(env)}/services/oauth2/token",
            data=form,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        resp.raise_for_status()
        return resp.json()


async def exchange_code_for_token(
    code: str,
    code_verifier: Optional[str] = None,
    env: str = "production",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SalesforceSession:
    env = normalize_environment(env)
    form = {
        "grant_type": "authorization_code",
        "code": code,
        "client_id": SF_CLIENT_ID,
        "redirect_uri": SF_CALLBACK_URL,
    }
    if SF_CLIENT_SECRET:
        form["client_secret"] = SF_CLIENT_SECRET
    if code_verifier:
        form["code_verifier"] = code_verifier

    logger.info(
        "Exchanging code for token (env=%s, pkce=%s)", env, bool(code_verifier)
    )
    data = await _post_token(env, form, transport)
    return _session_from_token_response(data, env)


async def refresh_access_token(
    refresh_token: str,
    env: str = "production",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SalesforceSession:
    """The refresh token is kept when Salesforce does not rotate it."""
    env = normalize_environment(env)
    form = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": SF_CLIENT_ID,
    }
    if SF_CLIENT_SECRET:
        form["client_secret"] = SF_CLIENT_SECRET
    data = await _post_token(env, form, transport)
    return _session_from_token_response(data, env, refresh_token=refresh_token)
