"""Serial batch analysis of selected repository files."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Literal, Protocol, Sequence

from code_reviewer.errors import DecodeError, IssueCreationError, ReviewerError
from code_reviewer.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from code_reviewer.models.batch import AnalysisBatch
from code_reviewer.models.review import (
    BatchProgress,
    CandidateFile,
    Category,
    FileReport,
    FileStatus,
    Finding,
    IssueHandle,
    RepoContext,
    Severity,
)
from code_reviewer.services.issues import format_issue_body, format_issue_title, issue_labels
from code_reviewer.services.session import ReviewSession

logger = get_logger()

EMPTY_CONTENT_MESSAGE = "File content is empty or could not be fetched."
NO_FILES_MESSAGE = "No files selected for analysis."


class ContentSource(Protocol):
    async def fetch_content(
        self, repo: RepoContext, path: str, *, token: str, branch: str | None = None
    ) -> str: ...

    async def create_issue(
        self,
        repo: RepoContext,
        *,
        token: str,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
    ) -> IssueHandle: ...


class Analyzer(Protocol):
    async def analyze(
        self,
        content: str,
        file_path: str,
        sibling_paths: Sequence[str] | None = None,
        *,
        api_key: str | None = None,
    ) -> List[Finding]: ...


BatchEventKind = Literal["started", "file_updated", "completed", "discarded"]


@dataclass(frozen=True)
class BatchEvent:
    kind: BatchEventKind
    batch_id: str
    progress: BatchProgress
    report: FileReport | None = None
    message: str | None = None


@dataclass(frozen=True)
class BatchResult:
    total_files: int
    processed_files: int
    analyzed_files: int
    failed_files: int
    discarded: bool = False
    message: str | None = None


ProgressListener = Callable[[BatchEvent], None]


def estimate_seconds_remaining(
    total_files: int,
    completed_files: int,
    started_at: float,
    now: float,
    average_seconds_per_file: float,
) -> int | None:
    """Estimate the seconds left in a batch, or None when no estimate is meaningful."""

    if total_files <= 0 or completed_files >= total_files:
        return None
    if completed_files == 0:
        estimate = round(total_files * average_seconds_per_file)
    else:
        elapsed = now - started_at
        estimate = round((total_files - completed_files) * (elapsed / completed_files))
    return estimate if estimate > 0 else None


def analysis_failure_finding(file_path: str, message: str) -> Finding:
    return Finding(
        file_path=file_path,
        title="Analysis Failed",
        description=message,
        severity=Severity.CRITICAL,
        category=Category.OTHER,
    )


class BatchOrchestrator:
    """Drives fetch and analyze for each file in order, one file at a time."""

    def __init__(
        self,
        forge: ContentSource,
        analyzer: Analyzer,
        *,
        average_seconds_per_file: float = 20.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._forge = forge
        self._analyzer = analyzer
        self._average_seconds_per_file = average_seconds_per_file
        self._clock = clock
        self._listeners: List[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: BatchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # pragma: no cover
                logger.exception(f"Progress listener failed on {event.kind} event")

    def _event(self, kind: BatchEventKind, batch: AnalysisBatch, report: FileReport | None = None,
               message: str | None = None) -> BatchEvent:
        return BatchEvent(
            kind=kind,
            batch_id=batch.batch_id,
            progress=batch.progress(),
            report=report.snapshot() if report is not None else None,
            message=message,
        )

    def _refresh_estimate(self, batch: AnalysisBatch) -> None:
        batch.estimated_seconds_remaining = estimate_seconds_remaining(
            batch.total_files,
            batch.completed_files,
            batch.started_at,
            self._clock(),
            self._average_seconds_per_file,
        )

    def prepare_batch(
        self,
        session: ReviewSession,
        files: Iterable[CandidateFile],
        repo_context: RepoContext,
    ) -> AnalysisBatch | None:
        """Validate the selection and attach a pending batch to the session.

        Returns None for an empty selection. Raises ``BatchConflictError`` while
        another batch on the session is still running.
        """

        paths: List[str] = []
        seen: set[str] = set()
        for file in files:
            if file.path in seen:
                logger.warning(f"Ignoring duplicate selection of {file.path}")
                continue
            seen.add(file.path)
            paths.append(file.path)

        if not paths:
            logger.info(NO_FILES_MESSAGE)
            return None

        session.require_token()
        session.require_analyzer_key()

        batch = AnalysisBatch.create(repo_context, paths, started_at=self._clock())
        self._refresh_estimate(batch)
        session.attach_batch(batch)
        return batch

    async def start_batch(
        self,
        session: ReviewSession,
        files: Iterable[CandidateFile],
        repo_context: RepoContext,
        shared_context: Sequence[str] | None = None,
    ) -> BatchResult:
        """Analyze ``files`` serially and record one report per file on the session."""

        batch = self.prepare_batch(session, files, repo_context)
        if batch is None:
            return BatchResult(0, 0, 0, 0, message=NO_FILES_MESSAGE)
        return await self.run_batch(session, batch, shared_context)

    async def run_batch(
        self,
        session: ReviewSession,
        batch: AnalysisBatch,
        shared_context: Sequence[str] | None = None,
    ) -> BatchResult:
        """Drive a batch created by ``prepare_batch`` to a terminal state."""

        repo_context = batch.repo_context
        api_key = session.analyzer_key
        ctx_logger = log_with_context(logger, repository=repo_context.full_name, batch_id=batch.batch_id)
        ctx_logger.info(f"=== BATCH: Starting analysis of {batch.total_files} file(s) ===")
        self._emit(self._event("started", batch, message=f"Preparing to analyze {batch.total_files} files..."))

        paths = list(shared_context) if shared_context is not None else list(batch.reports)
        sibling_paths = paths if batch.total_files > 1 else None

        try:
            for index, report in enumerate(list(batch.reports.values()), start=1):
                if batch.discarded:
                    return self._discard(batch, ctx_logger)

                report.mark_analyzing()
                self._emit(self._event(
                    "file_updated", batch, report,
                    message=f"Analyzing {report.file_path} ({index} of {batch.total_files})...",
                ))

                await self._process_file(session, batch, report, sibling_paths, api_key)

                batch.completed_files += 1
                self._refresh_estimate(batch)
                self._emit(self._event("file_updated", batch, report))

            if batch.discarded:
                return self._discard(batch, ctx_logger)
        finally:
            batch.finished = True

        result = BatchResult(
            total_files=batch.total_files,
            processed_files=batch.completed_files,
            analyzed_files=batch.count(FileStatus.ANALYZED),
            failed_files=batch.count(FileStatus.FAILED),
            message=f"Analysis complete for {batch.completed_files} files.",
        )
        log_success(logger, f"{result.message} analyzed={result.analyzed_files}, failed={result.failed_files}",
                    repository=repo_context.full_name, batch_id=batch.batch_id)
        self._emit(self._event("completed", batch, message=result.message))
        return result

    def _discard(self, batch: AnalysisBatch, ctx_logger) -> BatchResult:
        ctx_logger.info(f"Batch discarded after {batch.completed_files} of {batch.total_files} file(s)")
        self._emit(self._event("discarded", batch, message="Batch discarded on sign-out."))
        return BatchResult(
            total_files=batch.total_files,
            processed_files=batch.completed_files,
            analyzed_files=batch.count(FileStatus.ANALYZED),
            failed_files=batch.count(FileStatus.FAILED),
            discarded=True,
            message="Batch discarded on sign-out.",
        )

    async def _process_file(
        self,
        session: ReviewSession,
        batch: AnalysisBatch,
        report: FileReport,
        sibling_paths: Sequence[str] | None,
        api_key: str | None,
    ) -> None:
        repo = batch.repo_context
        path = report.file_path
        ctx_logger = log_with_context(logger, repository=repo.full_name, file_path=path)

        try:
            token = session.require_token()
            with log_timing(ctx_logger, "fetch_content"):
                content = await self._forge.fetch_content(repo, path, token=token, branch=repo.branch)
            if not content:
                raise DecodeError(EMPTY_CONTENT_MESSAGE)
        except Exception as exc:
            log_failure(logger, f"Could not fetch {path}", exc, repository=repo.full_name, file_path=path)
            report.mark_failed(str(exc))
            return

        try:
            with log_timing(ctx_logger, "analyze_file"):
                findings = await self._analyzer.analyze(content, path, sibling_paths, api_key=api_key)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            log_failure(logger, f"Analysis failed for {path}", exc, repository=repo.full_name, file_path=path)
            report.mark_failed(message, [analysis_failure_finding(path, message)])
            return

        report.mark_analyzed(findings)
        ctx_logger.info(f"Analyzed {path}: {len(findings)} finding(s)")

    async def create_issue(self, session: ReviewSession, finding: Finding) -> IssueHandle:
        """Open a GitHub issue for one finding, independent of any running batch."""

        token = session.credentials.current_token()
        repo = session.repo_context
        if not token or repo is None:
            raise IssueCreationError(
                "Cannot create issue: Missing GitHub authentication or repository info."
            )

        ctx_logger = log_with_context(logger, repository=repo.full_name, file_path=finding.file_path)
        try:
            with log_timing(ctx_logger, "create_issue"):
                handle = await self._forge.create_issue(
                    repo,
                    token=token,
                    title=format_issue_title(finding),
                    body=format_issue_body(finding),
                    labels=issue_labels(finding),
                )
        except ReviewerError as exc:
            log_failure(logger, "Failed to create GitHub issue", exc, repository=repo.full_name)
            raise IssueCreationError(f"Failed to create GitHub issue: {exc}", exc) from exc

        log_success(logger, f"Created GitHub issue #{handle.number}: {handle.title}", repository=repo.full_name)
        return handle
