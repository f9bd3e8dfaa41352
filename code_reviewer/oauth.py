"""GitHub OAuth authorization-code handshake."""

from __future__ import annotations

import secrets
from typing import Any, Dict
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx

from code_reviewer.config import OAuthCredentials
from code_reviewer.credentials import Credential, CredentialProvider
from code_reviewer.errors import AuthError, GitHubAPIError, SecurityError
from code_reviewer.github_client import GitHubClient
from code_reviewer.logger import get_logger, log_failure, log_timing

logger = get_logger()


def generate_state() -> str:
    """Return a random opaque state value for CSRF protection."""
    return secrets.token_hex(16)


class GitHubOAuthClient:
    def __init__(
        self,
        credentials: OAuthCredentials,
        *,
        oauth_base_url: str = "https://github.com",
        github: GitHubClient,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._credentials = credentials
        self._oauth_base_url = oauth_base_url.rstrip("/")
        self._github = github
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self._credentials.client_id,
            "redirect_uri": self._credentials.redirect_uri,
            "scope": self._credentials.scope,
            "state": state,
            "allow_signup": "true",
        }
        return f"{self._oauth_base_url}/login/oauth/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str, state: str) -> Dict[str, Any]:
        try:
            response = await self._client.post(
                f"{self._oauth_base_url}/login/oauth/access_token",
                headers={"Accept": "application/json"},
                json={
                    "client_id": self._credentials.client_id,
                    "client_secret": self._credentials.client_secret,
                    "code": code,
                    "redirect_uri": self._credentials.redirect_uri,
                    "state": state,
                },
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"OAuth token exchange failed: {exc}", 0) from exc

        if response.status_code >= 400:
            raise AuthError(
                f"OAuth token exchange failed: {response.reason_phrase}",
                response.status_code,
                response.text,
            )
        try:
            token_data = response.json()
        except ValueError as exc:
            raise AuthError("OAuth token exchange returned invalid JSON.", response.status_code) from exc

        if token_data.get("error"):
            raise AuthError(
                f"OAuth error: {token_data.get('error_description') or token_data['error']}",
                response.status_code,
                token_data,
            )
        if not token_data.get("access_token"):
            raise AuthError("OAuth token exchange did not return an access token.", response.status_code, token_data)
        return token_data

    async def fetch_user(self, token: str) -> Dict[str, Any]:
        return await self._github.get_authenticated_user(token=token)

    async def validate_token(self, token: str) -> bool:
        """Return False when GitHub rejects the token; other failures propagate."""
        try:
            await self._github.get_authenticated_user(token=token)
        except AuthError:
            return False
        return True

    async def revoke_token(self, token: str) -> None:
        try:
            response = await self._client.request(
                "DELETE",
                f"{self._github.base_url}/applications/{self._credentials.client_id}/token",
                auth=(self._credentials.client_id, self._credentials.client_secret),
                headers={"Accept": "application/vnd.github+json"},
                json={"access_token": token},
            )
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"Failed to revoke token: {exc}", 0) from exc
        if response.status_code >= 400 and response.status_code != 404:
            raise GitHubAPIError(
                f"Failed to revoke token: {response.reason_phrase}",
                response.status_code,
                response.text,
            )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


class OAuthHandshake:
    """Tracks one pending authorization and completes it from the callback URL."""

    def __init__(self, oauth_client: GitHubOAuthClient, provider: CredentialProvider) -> None:
        self._oauth = oauth_client
        self._provider = provider
        self._pending_state: str | None = None

    @property
    def pending_state(self) -> str | None:
        return self._pending_state

    def start(self) -> str:
        self._pending_state = generate_state()
        return self._oauth.authorization_url(self._pending_state)

    async def complete(self, callback_url: str) -> Credential:
        query = parse_qs(urlsplit(callback_url).query)

        def _param(name: str) -> str | None:
            values = query.get(name)
            return values[0] if values else None

        expected_state, self._pending_state = self._pending_state, None

        if error := _param("error"):
            raise AuthError(f"OAuth authorization failed: {_param('error_description') or error}")

        code = _param("code")
        if not code:
            raise AuthError("No authorization code received from GitHub")

        returned_state = _param("state")
        if expected_state is None or returned_state is None or not secrets.compare_digest(
            expected_state, returned_state
        ):
            log_failure(logger, "OAuth state mismatch - possible security issue")
            raise SecurityError("OAuth state mismatch - possible security issue")

        with log_timing(logger, "oauth_token_exchange"):
            token_data = await self._oauth.exchange_code(code, expected_state)
        access_token = token_data["access_token"]

        with log_timing(logger, "fetch_oauth_user"):
            principal = await self._oauth.fetch_user(access_token)

        return self._provider.use_authorized_session(access_token, principal)
