"""Service wiring and FastAPI dependency factories."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request

from code_reviewer.config import Settings
from code_reviewer.errors import (
    AuthError,
    BatchConflictError,
    ConfigError,
    NotFoundError,
    ReviewerError,
    SecurityError,
    ValidationError,
)
from code_reviewer.gemini_client import GeminiClient
from code_reviewer.github_client import GitHubClient
from code_reviewer.logger import get_logger
from code_reviewer.oauth import GitHubOAuthClient, OAuthHandshake
from code_reviewer.services.batch_orchestrator import BatchOrchestrator
from code_reviewer.services.session import ReviewSession

logger = get_logger()


@dataclass
class Services:
    settings: Settings
    session: ReviewSession
    github: GitHubClient
    analyzer: GeminiClient
    orchestrator: BatchOrchestrator
    oauth_client: GitHubOAuthClient | None = None
    handshake: OAuthHandshake | None = None

    def require_handshake(self) -> OAuthHandshake:
        if self.handshake is None:
            # Raises ConfigError naming the missing variables.
            self.settings.require_oauth_credentials()
            raise ConfigError("GitHub OAuth is not configured.")
        return self.handshake

    async def aclose(self) -> None:
        await self.github.aclose()
        await self.analyzer.aclose()
        if self.oauth_client is not None:
            await self.oauth_client.aclose()


def build_services(
    settings: Settings,
    *,
    github: GitHubClient | None = None,
    analyzer: GeminiClient | None = None,
    oauth_client: GitHubOAuthClient | None = None,
) -> Services:
    github = github or GitHubClient(base_url=settings.normalized_github_api_base_url)
    analyzer = analyzer or GeminiClient(
        settings.gemini_api_key,
        model=settings.gemini_model,
        base_url=settings.normalized_gemini_api_base_url,
    )
    session = ReviewSession(default_analyzer_key=settings.gemini_api_key)
    orchestrator = BatchOrchestrator(
        github,
        analyzer,
        average_seconds_per_file=settings.average_seconds_per_file,
    )

    if oauth_client is None:
        try:
            oauth_credentials = settings.require_oauth_credentials()
        except ConfigError as exc:
            logger.info(f"OAuth sign-in disabled: {exc}")
        else:
            oauth_client = GitHubOAuthClient(
                oauth_credentials,
                oauth_base_url=settings.normalized_github_oauth_base_url,
                github=github,
            )
    handshake = OAuthHandshake(oauth_client, session.credentials) if oauth_client else None

    return Services(
        settings=settings,
        session=session,
        github=github,
        analyzer=analyzer,
        orchestrator=orchestrator,
        oauth_client=oauth_client,
        handshake=handshake,
    )


def services_dependency(request: Request) -> Services:
    """Return the services attached to the running application."""

    return request.app.state.services


def http_error(exc: ReviewerError) -> HTTPException:
    """Translate a domain error into the HTTP status surfaced to the user."""

    if isinstance(exc, AuthError):
        status_code = 401
    elif isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, BatchConflictError):
        status_code = 409
    elif isinstance(exc, (SecurityError, ValidationError)):
        status_code = 400
    elif isinstance(exc, ConfigError):
        status_code = 500
    else:
        status_code = 502
    return HTTPException(status_code=status_code, detail=str(exc))
