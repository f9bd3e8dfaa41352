"""Explicit per-user session context passed into the orchestrator."""

from __future__ import annotations

from typing import Iterable, List

from code_reviewer.credentials import CredentialProvider
from code_reviewer.errors import AuthError, BatchConflictError, ConfigError
from code_reviewer.github_client import GitHubClient, filter_supported_files
from code_reviewer.logger import get_logger, log_with_context
from code_reviewer.models.batch import AnalysisBatch
from code_reviewer.models.review import CandidateFile, Finding, RepoContext

logger = get_logger()


class ReviewSession:
    def __init__(
        self,
        credentials: CredentialProvider | None = None,
        *,
        default_analyzer_key: str | None = None,
    ) -> None:
        self.credentials = credentials or CredentialProvider()
        self._default_analyzer_key = default_analyzer_key
        self._analyzer_key_override: str | None = None
        self.repo_context: RepoContext | None = None
        self.candidate_files: List[CandidateFile] = []
        self.batch: AnalysisBatch | None = None

    def require_token(self) -> str:
        token = self.credentials.current_token()
        if not token:
            raise AuthError("GitHub authentication is not set.")
        return token

    def set_analyzer_key(self, api_key: str | None) -> None:
        self._analyzer_key_override = (api_key or "").strip() or None

    @property
    def analyzer_key(self) -> str | None:
        return self._analyzer_key_override or self._default_analyzer_key

    def require_analyzer_key(self) -> str:
        key = self.analyzer_key
        if not key:
            raise ConfigError("Gemini API key is not configured.")
        return key

    async def load_repository(
        self,
        github: GitHubClient,
        repo_context: RepoContext,
        extensions: Iterable[str],
    ) -> List[CandidateFile]:
        """List the branch's files and keep the reviewable ones."""

        token = self.require_token()
        self._ensure_idle()
        self.discard_batch()
        self.repo_context = repo_context
        self.candidate_files = []

        files = await github.list_files(repo_context, token=token)
        self.candidate_files = filter_supported_files(files, extensions)
        log_with_context(logger, repository=repo_context.full_name).info(
            f"Found {len(self.candidate_files)} code file(s) of {len(files)}"
        )
        return self.candidate_files

    def select(self, paths: Iterable[str]) -> List[CandidateFile]:
        """Resolve selected paths to candidate files, keeping the selection order."""

        by_path = {file.path: file for file in self.candidate_files}
        selected: List[CandidateFile] = []
        unknown: List[str] = []
        for path in paths:
            if path in by_path:
                selected.append(by_path[path])
            else:
                unknown.append(path)
        if unknown:
            raise ValueError(f"Files are not part of the loaded repository: {', '.join(unknown)}")
        return selected

    def _ensure_idle(self) -> None:
        if self.batch_running:
            raise BatchConflictError("An analysis batch is still running.")

    @property
    def batch_running(self) -> bool:
        return self.batch is not None and not self.batch.finished

    def attach_batch(self, batch: AnalysisBatch) -> None:
        self._ensure_idle()
        self.discard_batch()
        self.batch = batch

    def discard_batch(self) -> None:
        if self.batch is not None:
            self.batch.discarded = True
            self.batch = None

    def find_finding(self, finding_id: str) -> Finding | None:
        if self.batch is None:
            return None
        return self.batch.find_finding(finding_id)

    def sign_out(self) -> None:
        """Destroy the credential and every piece of state that depends on it."""

        self.credentials.sign_out()
        self.discard_batch()
        self.repo_context = None
        self.candidate_files = []
