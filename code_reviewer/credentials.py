"""Session credential holder for GitHub access."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal

from code_reviewer.errors import AuthError
from code_reviewer.logger import get_logger

logger = get_logger()

CredentialMethod = Literal["static_token", "authorized_session"]


@dataclass(frozen=True)
class Credential:
    value: str
    method: CredentialMethod
    principal: Dict[str, Any] | None = None

    @property
    def login(self) -> str | None:
        if self.principal:
            return self.principal.get("login")
        return None

    def __repr__(self) -> str:
        return f"Credential(method={self.method!r}, login={self.login!r})"


class CredentialProvider:
    """Holds at most one credential; either method yields a bearer token."""

    def __init__(self) -> None:
        self._credential: Credential | None = None

    def current(self) -> Credential | None:
        return self._credential

    def current_token(self) -> str | None:
        return self._credential.value if self._credential else None

    @property
    def is_authenticated(self) -> bool:
        return self._credential is not None

    def use_static_token(self, token: str) -> Credential:
        token = (token or "").strip()
        if not token:
            raise AuthError("GitHub token must not be empty.")
        self._credential = Credential(value=token, method="static_token")
        logger.info("GitHub static token saved")
        return self._credential

    def use_authorized_session(self, token: str, principal: Dict[str, Any] | None = None) -> Credential:
        token = (token or "").strip()
        if not token:
            raise AuthError("GitHub authorization did not produce an access token.")
        self._credential = Credential(value=token, method="authorized_session", principal=principal)
        logger.info(f"Signed in to GitHub as {self._credential.login or 'unknown user'}")
        return self._credential

    def sign_out(self) -> Credential | None:
        previous, self._credential = self._credential, None
        if previous is not None:
            logger.info(f"GitHub credential cleared (method={previous.method})")
        return previous
