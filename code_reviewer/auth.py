"""Credential entry points: static token, OAuth sign-in and sign-out."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from code_reviewer.dependencies import Services, http_error, services_dependency
from code_reviewer.errors import ReviewerError
from code_reviewer.logger import get_logger, log_failure, log_success

router = APIRouter()

logger = get_logger()


class TokenRequest(BaseModel):
    token: str = Field(min_length=1)


class AnalyzerKeyRequest(BaseModel):
    api_key: str = Field(min_length=1)


def _session_payload(services: Services) -> Dict[str, Any]:
    credential = services.session.credentials.current()
    return {
        "authenticated": credential is not None,
        "method": credential.method if credential else None,
        "login": credential.login if credential else None,
        "analyzer_key_set": bool(services.session.analyzer_key),
    }


@router.get("/session", summary="Describe the current credential state")
async def get_session(services: Services = Depends(services_dependency)) -> Dict[str, Any]:
    credential = services.session.credentials.current()
    if credential is None or credential.method != "authorized_session" or services.oauth_client is None:
        return _session_payload(services)

    try:
        valid = await services.oauth_client.validate_token(credential.value)
    except ReviewerError as exc:
        log_failure(logger, "Could not validate GitHub OAuth token", exc)
        return _session_payload(services)

    if valid:
        return _session_payload(services)

    logger.warning(f"GitHub OAuth token for {credential.login or 'unknown user'} is no longer valid")
    services.session.sign_out()
    return {**_session_payload(services), "message": "GitHub session expired. Please sign in again."}


@router.post("/session/token", summary="Use a static GitHub token")
async def submit_token(
    payload: TokenRequest,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    try:
        services.session.credentials.use_static_token(payload.token)
    except ReviewerError as exc:
        raise http_error(exc) from exc
    return {"status": "ok", "message": "GitHub token saved successfully.", **_session_payload(services)}


@router.post("/session/analyzer-key", summary="Use a Gemini API key for this session")
async def submit_analyzer_key(
    payload: AnalyzerKeyRequest,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    services.session.set_analyzer_key(payload.api_key)
    return {"status": "ok", "message": "Google Gemini API key saved successfully."}


@router.delete("/session", summary="Sign out and discard all session state")
async def sign_out(services: Services = Depends(services_dependency)) -> Dict[str, Any]:
    credential = services.session.credentials.current()
    services.session.sign_out()

    # OAuth tokens are revoked upstream; a failed revoke does not block sign-out.
    if credential is not None and credential.method == "authorized_session" and services.oauth_client:
        try:
            await services.oauth_client.revoke_token(credential.value)
        except ReviewerError as exc:
            log_failure(logger, "Could not revoke GitHub OAuth token", exc)
    return {"status": "ok", "message": "GitHub authentication cleared."}


@router.get("/auth/github/login", summary="Start the GitHub OAuth handshake")
async def oauth_login(services: Services = Depends(services_dependency)) -> RedirectResponse:
    try:
        handshake = services.require_handshake()
    except ReviewerError as exc:
        raise http_error(exc) from exc
    return RedirectResponse(handshake.start(), status_code=status.HTTP_302_FOUND)


@router.get("/auth/github/callback", summary="Complete the GitHub OAuth handshake")
async def oauth_callback(
    request: Request,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    try:
        handshake = services.require_handshake()
        credential = await handshake.complete(str(request.url))
    except ReviewerError as exc:
        log_failure(logger, "GitHub OAuth sign-in failed", exc)
        raise http_error(exc) from exc

    login = credential.login or "unknown user"
    log_success(logger, f"Signed in as {login}")
    return {
        "status": "ok",
        "message": f"Successfully signed in as {login}",
        **_session_payload(services),
    }
