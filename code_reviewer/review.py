"""Repository loading, batch analysis and issue creation endpoints."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, Field

from code_reviewer.dependencies import Services, http_error, services_dependency
from code_reviewer.errors import ReviewerError
from code_reviewer.logger import get_logger, log_failure, log_with_context
from code_reviewer.models.batch import AnalysisBatch
from code_reviewer.models.review import FileReport, Finding, RepoContext
from code_reviewer.services.batch_orchestrator import NO_FILES_MESSAGE, BatchOrchestrator
from code_reviewer.services.session import ReviewSession

router = APIRouter()

logger = get_logger()


class RepositoryRequest(BaseModel):
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    branch: str = Field(default="main", min_length=1)


class BatchRequest(BaseModel):
    paths: List[str] = Field(default_factory=list)


class IssueRequest(BaseModel):
    finding_id: str = Field(min_length=1)


def _finding_payload(finding: Finding) -> Dict[str, Any]:
    return {
        "id": finding.id,
        "file_path": finding.file_path,
        "line_number": finding.line_number,
        "title": finding.title,
        "description": finding.description,
        "severity": finding.severity.value,
        "category": finding.category.value,
    }


def _report_payload(report: FileReport) -> Dict[str, Any]:
    return {
        "file_path": report.file_path,
        "status": report.status.value,
        "error_message": report.error_message,
        "findings": [_finding_payload(finding) for finding in report.findings],
    }


@router.post("/repository", summary="Load the reviewable files of a repository branch")
async def load_repository(
    payload: RepositoryRequest,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    repo_context = RepoContext(owner=payload.owner, repo_name=payload.repo, branch=payload.branch)
    try:
        files = await services.session.load_repository(
            services.github, repo_context, services.settings.supported_file_extensions
        )
    except ReviewerError as exc:
        log_failure(logger, "Failed to fetch repository files", exc, repository=repo_context.full_name)
        raise http_error(exc) from exc

    return {
        "repository": repo_context.full_name,
        "branch": repo_context.branch,
        "message": f"Found {len(files)} code files.",
        "files": [{"path": file.path, "content_id": file.content_id} for file in files],
    }


async def _run_batch(
    orchestrator: BatchOrchestrator,
    session: ReviewSession,
    batch: AnalysisBatch,
    shared_context: List[str],
) -> None:
    try:
        await orchestrator.run_batch(session, batch, shared_context)
    except Exception as exc:  # pragma: no cover
        log_failure(logger, "Unhandled exception while running batch", exc, repository=batch.repo_context.full_name)
        logger.exception("Full exception traceback:")


@router.post("/batches", summary="Start analyzing the selected files", status_code=status.HTTP_202_ACCEPTED)
async def start_batch(
    payload: BatchRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    session = services.session
    if not payload.paths:
        return {"status": "ignored", "message": NO_FILES_MESSAGE}
    if session.repo_context is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No repository has been loaded.")

    # The batch is attached before the response so a second request sees it running.
    try:
        files = session.select(payload.paths)
        batch = services.orchestrator.prepare_batch(session, files, session.repo_context)
    except ReviewerError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if batch is None:
        return {"status": "ignored", "message": NO_FILES_MESSAGE}

    log_with_context(logger, repository=batch.repo_context.full_name, batch_id=batch.batch_id).info(
        f"Scheduling analysis of {batch.total_files} file(s)"
    )
    background_tasks.add_task(_run_batch, services.orchestrator, session, batch, list(batch.reports))
    return {
        "status": "accepted",
        "batch_id": batch.batch_id,
        "message": f"Preparing to analyze {batch.total_files} files...",
    }


@router.get("/batches/current", summary="Return progress and reports of the current batch")
async def current_batch(services: Services = Depends(services_dependency)) -> Dict[str, Any]:
    batch = services.session.batch
    if batch is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No analysis batch in this session.")

    progress = batch.progress()
    return {
        "batch_id": batch.batch_id,
        "repository": batch.repo_context.full_name,
        "running": not batch.finished,
        "progress": {
            "total_files": progress.total_files,
            "completed_files": progress.completed_files,
            "started_at": progress.started_at,
            "estimated_seconds_remaining": progress.estimated_seconds_remaining,
            "percentage": progress.percentage,
        },
        "reports": [_report_payload(report) for report in batch.snapshots()],
    }


@router.post("/issues", summary="Create a GitHub issue from a finding", status_code=status.HTTP_201_CREATED)
async def create_issue(
    payload: IssueRequest,
    services: Services = Depends(services_dependency),
) -> Dict[str, Any]:
    finding = services.session.find_finding(payload.finding_id)
    if finding is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Finding not found.")

    try:
        handle = await services.orchestrator.create_issue(services.session, finding)
    except ReviewerError as exc:
        raise http_error(exc) from exc

    return {
        "number": handle.number,
        "title": handle.title,
        "url": handle.url,
        "message": f"Successfully created GitHub issue #{handle.number}: {handle.title}",
    }
