"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final, List

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from code_reviewer.errors import ConfigError

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DEFAULT_SUPPORTED_EXTENSIONS: Final[tuple[str, ...]] = (
    ".js", ".jsx", ".ts", ".tsx", ".py", ".java", ".cs", ".go", ".rb", ".php",
    ".html", ".css", ".json", ".yaml", ".yml", ".md", ".sh", ".swift", ".kt", ".rs",
)
DEFAULT_AVERAGE_SECONDS_PER_FILE: Final[float] = 20.0


@dataclass(frozen=True)
class OAuthCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str
    scope: str


class Settings(BaseModel):
    """Runtime settings loaded from environment variables."""

    github_api_base_url: AnyHttpUrl = "https://api.github.com"
    github_oauth_base_url: AnyHttpUrl = "https://github.com"
    github_client_id: str | None = None
    github_client_secret: str | None = None
    github_oauth_redirect_uri: str | None = None
    github_oauth_scope: str = "repo user:email"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_base_url: AnyHttpUrl = "https://generativelanguage.googleapis.com/v1beta"
    average_seconds_per_file: float = Field(default=DEFAULT_AVERAGE_SECONDS_PER_FILE, gt=0)
    supported_file_extensions: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_EXTENSIONS)
    )

    @property
    def normalized_github_api_base_url(self) -> str:
        """Return the GitHub API base URL without a trailing slash."""
        return str(self.github_api_base_url).rstrip("/")

    @property
    def normalized_github_oauth_base_url(self) -> str:
        return str(self.github_oauth_base_url).rstrip("/")

    @property
    def normalized_gemini_api_base_url(self) -> str:
        return str(self.gemini_api_base_url).rstrip("/")

    def require_oauth_credentials(self) -> OAuthCredentials:
        """Ensure GitHub OAuth app credentials are configured and return them."""

        missing = []
        if not self.github_client_id:
            missing.append("GITHUB_CLIENT_ID")
        if not self.github_client_secret:
            missing.append("GITHUB_CLIENT_SECRET")
        if not self.github_oauth_redirect_uri:
            missing.append("GITHUB_OAUTH_REDIRECT_URI")

        if missing:
            missing_vars = ", ".join(missing)
            raise ConfigError(
                "GitHub OAuth is not configured. Missing environment variables: "
                f"{missing_vars}."
            )

        return OAuthCredentials(
            client_id=self.github_client_id,
            client_secret=self.github_client_secret,
            redirect_uri=self.github_oauth_redirect_uri,
            scope=self.github_oauth_scope,
        )


def _parse_extensions(raw_value: str | None) -> List[str] | None:
    """Split a comma separated extension list, adding the leading dot if absent."""

    if raw_value is None or not raw_value.strip():
        return None
    extensions = []
    for item in raw_value.split(","):
        item = item.strip().lower()
        if not item:
            continue
        extensions.append(item if item.startswith(".") else f".{item}")
    return extensions or None


def _build_settings() -> Settings:
    values: dict[str, object] = {}

    env_map = {
        "github_api_base_url": "GITHUB_API_BASE_URL",
        "github_oauth_base_url": "GITHUB_OAUTH_BASE_URL",
        "github_client_id": "GITHUB_CLIENT_ID",
        "github_client_secret": "GITHUB_CLIENT_SECRET",
        "github_oauth_redirect_uri": "GITHUB_OAUTH_REDIRECT_URI",
        "github_oauth_scope": "GITHUB_OAUTH_SCOPE",
        "gemini_api_key": "GEMINI_API_KEY",
        "gemini_model": "GEMINI_MODEL",
        "gemini_api_base_url": "GEMINI_API_BASE_URL",
    }
    for field_name, env_name in env_map.items():
        raw = os.getenv(env_name)
        if raw:
            values[field_name] = raw

    average_raw = os.getenv("AVERAGE_SECONDS_PER_FILE")
    try:
        if average_raw and average_raw.strip():
            values["average_seconds_per_file"] = float(average_raw)
    except ValueError as exc:
        raise ConfigError("Invalid value for AVERAGE_SECONDS_PER_FILE. It must be a number.") from exc

    extensions = _parse_extensions(os.getenv("SUPPORTED_FILE_EXTENSIONS"))
    if extensions:
        values["supported_file_extensions"] = extensions

    try:
        return Settings(**values)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid application configuration: {exc}") from exc


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return _build_settings()


def get_settings() -> Settings:
    """Retrieve cached application settings."""
    return _cached_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for tests)."""
    _cached_settings.cache_clear()
