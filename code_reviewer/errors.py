"""Error taxonomy shared by the forge, analyzer and credential layers."""

from __future__ import annotations

from typing import Any


class ReviewerError(RuntimeError):
    """Base class for all code reviewer errors."""


class ConfigError(ReviewerError):
    """Raised when application configuration is invalid or incomplete."""


class SecurityError(ReviewerError):
    """Raised when an OAuth callback fails state verification."""


class DecodeError(ReviewerError):
    """Raised when file content is missing or is not decodable text."""


class AnalysisError(ReviewerError):
    """Raised when the analyzer rejects a request or returns malformed output."""


class GitHubAPIError(ReviewerError):
    """Raised when a GitHub API request fails."""

    def __init__(self, message: str, status_code: int, response_body: Any | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AuthError(GitHubAPIError):
    """Raised when a token is missing, rejected or revoked."""

    def __init__(self, message: str, status_code: int = 401, response_body: Any | None = None):
        super().__init__(message, status_code, response_body)


class NotFoundError(GitHubAPIError):
    """Raised when a repository, branch or file does not exist."""


class ValidationError(GitHubAPIError):
    """Raised when GitHub rejects a request payload."""


class IssueCreationError(ReviewerError):
    """Raised when an issue could not be created for a finding."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class BatchConflictError(ReviewerError):
    """Raised when a batch is started while another one is still running."""
