"""Session tokens for the Salesforce login, carried as signed JWT cookies."""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from cryptography.exceptions import InvalidTag
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import (
    JWT_ALGORITHM,
    JWT_SECRET,
    OAUTH_STATE_TTL_SECONDS,
    SESSION_COOKIE_NAME,
    SESSION_EXPIRATION_MINUTES,
)
from .encryption import decrypt_token, encrypt_token
from .oauth import SalesforceSession, normalize_environment
from .salesforce_client import SalesforceClient

security = HTTPBearer(auto_error=False)


def create_session_token(session: SalesforceSession) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=SESSION_EXPIRATION_MINUTES)
    payload = {
        "sub": session.user_id,
        "org": session.organization_id,
        "instance_url": session.instance_url,
        "access_token": encrypt_token(session.access_token),
        "refresh_token": encrypt_token(session.refresh_token)
        if session.refresh_token
        else None,
        "expires_at": session.expires_at,
        "env": session.environment,
        "exp": expire,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> Optional[SalesforceSession]:
    """Return the session, or ``None`` if the token is invalid or expired."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        refresh = payload.get("refresh_token")
        return SalesforceSession(
            access_token=decrypt_token(payload["access_token"]),
            refresh_token=decrypt_token(refresh) if refresh else None,
            instance_url=payload["instance_url"],
            user_id=payload.get("sub") or "",
            organization_id=payload.get("org") or "",
            expires_at=payload.get("expires_at"),
            environment=normalize_environment(payload.get("env")),
        )
    except (JWTError, InvalidTag, KeyError, ValueError, TypeError):
        return None


def create_oauth_state_token(state: str, code_verifier: str, env: str) -> str:
    """Per-login-attempt PKCE state, valid for ``OAUTH_STATE_TTL_SECONDS``."""
    payload = {
        "state": state,
        "verifier": encrypt_token(code_verifier),
        "env": env,
        "exp": int(time.time()) + OAUTH_STATE_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def read_oauth_state_token(token: Optional[str], state: Optional[str]) -> Optional[tuple[str, str]]:
    """Return ``(code_verifier, env)`` if *token* is valid and matches *state*."""
    if not token or not state:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        if payload.get("state") != state:
            return None
        return decrypt_token(payload["verifier"]), normalize_environment(payload.get("env"))
    except (JWTError, InvalidTag, KeyError, ValueError, TypeError):
        return None


def get_optional_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[SalesforceSession]:
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    return decode_session_token(token)


def get_current_session(
    session: Optional[SalesforceSession] = Depends(get_optional_session),
) -> SalesforceSession:
    if session is None or not session.access_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required"
        )
    return session


def get_record_provider(
    session: SalesforceSession = Depends(get_current_session),
) -> SalesforceClient:
    return SalesforceClient(
        instance_url=session.instance_url, access_token=session.access_token
    )
