"""Salesforce login (OAuth + PKCE), token refresh, status and logout."""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse

from ..auth import (
    create_oauth_state_token,
    create_session_token,
    get_optional_session,
    read_oauth_state_token,
)
from ..config import (
    COOKIE_SECURE,
    FRONTEND_URL,
    OAUTH_STATE_COOKIE_NAME,
    OAUTH_STATE_TTL_SECONDS,
    SESSION_COOKIE_NAME,
    SESSION_EXPIRATION_MINUTES,
)
from ..oauth import (
    SalesforceSession,
    build_authorization_request,
    exchange_code_for_token,
    refresh_access_token,
)
from ..schemas import AuthStatusOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response, session: SalesforceSession) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        create_session_token(session),
        max_age=SESSION_EXPIRATION_MINUTES * 60,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="none" if COOKIE_SECURE else "lax",
        path="/",
    )


def _frontend_redirect(query: str) -> RedirectResponse:
    response = RedirectResponse(f"{FRONTEND_URL}?{query}")
    response.delete_cookie(OAUTH_STATE_COOKIE_NAME, path="/auth")
    return response


@router.get("/login")
def login(env: str = "production"):
    auth_req = build_authorization_request(env)
    logger.info(f"Redirecting to Salesforce OAuth ({auth_req.environment})...")
    response = RedirectResponse(auth_req.url)
    response.set_cookie(
        OAUTH_STATE_COOKIE_NAME,
        create_oauth_state_token(
            auth_req.state, auth_req.code_verifier, auth_req.environment
        ),
        max_age=OAUTH_STATE_TTL_SECONDS,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax",
        path="/auth",
    )
    return response


@router.get("/callback")
async def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    if error:
        logger.error("OAuth error: %s %s", error, error_description or "")
        return _frontend_redirect(f"error={quote(error)}")
    if not code:
        return _frontend_redirect("error=no_code")

    pkce = read_oauth_state_token(request.cookies.get(OAUTH_STATE_COOKIE_NAME), state)
    if pkce is None:
        logger.warning("No valid PKCE state for callback (state=%s)", state)
        return _frontend_redirect("error=invalid_state")
    code_verifier, env = pkce

    try:
        session = await exchange_code_for_token(code, code_verifier, env)
    except Exception as e:
        logger.error("Token exchange error: %s", e)
        return _frontend_redirect("error=token_exchange_failed")

    logger.info("OAuth successful, user authenticated from %s", session.instance_url)
    response = _frontend_redirect("auth=success")
    _set_session_cookie(response, session)
    return response


@router.post("/refresh")
async def refresh(session: Optional[SalesforceSession] = Depends(get_optional_session)):
    if session is None or not session.refresh_token:
        raise HTTPException(status_code=401, detail="No refresh token available")
    try:
        new_session = await refresh_access_token(
            session.refresh_token, session.environment
        )
    except Exception as e:
        logger.error("Token refresh error: %s", e)
        raise HTTPException(status_code=401, detail="Token refresh failed")

    response = JSONResponse({"success": True})
    _set_session_cookie(response, new_session)
    return response


@router.get("/status", response_model=AuthStatusOut)
def auth_status(session: Optional[SalesforceSession] = Depends(get_optional_session)):
    if session is None:
        return JSONResponse({"authenticated": False}, status_code=401)
    return AuthStatusOut(
        authenticated=True,
        expired=session.expired,
        instance_url=session.instance_url,
        user_id=session.user_id,
        organization_id=session.organization_id,
    )


@router.post("/logout")
def logout():
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return response
