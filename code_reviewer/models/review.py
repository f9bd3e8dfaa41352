"""Shared data structures for batch review processing."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class Severity(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFORMATIONAL = "Informational"


class Category(str, Enum):
    PERFORMANCE = "Performance"
    SECURITY = "Security"
    INTEGRITY = "Integrity"
    SCALABILITY = "Scalability"
    MAINTAINABILITY = "Maintainability"
    BEST_PRACTICE = "BestPractice"
    OTHER = "Other"


class FileStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.ANALYZED, FileStatus.FAILED)


_ALLOWED_TRANSITIONS = {
    FileStatus.PENDING: {FileStatus.ANALYZING},
    FileStatus.ANALYZING: {FileStatus.ANALYZED, FileStatus.FAILED},
    FileStatus.ANALYZED: set(),
    FileStatus.FAILED: set(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a file report is moved backwards or skips a state."""


@dataclass(frozen=True, slots=True)
class RepoContext:
    owner: str
    repo_name: str
    branch: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo_name}"


@dataclass(frozen=True, slots=True)
class CandidateFile:
    path: str
    content_id: str


def new_finding_id() -> str:
    """Return an identifier unique for the lifetime of the process."""
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class Finding:
    file_path: str
    title: str
    description: str
    severity: Severity
    category: Category
    line_number: str | None = None
    id: str = field(default_factory=new_finding_id)


@dataclass(slots=True)
class FileReport:
    """Mutable per-file record owned by the batch orchestrator."""

    file_path: str
    status: FileStatus = FileStatus.PENDING
    findings: List[Finding] = field(default_factory=list)
    error_message: str | None = None

    def transition(self, new_status: FileStatus) -> None:
        if new_status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Cannot move '{self.file_path}' from {self.status.value} to {new_status.value}."
            )
        self.status = new_status

    def mark_analyzing(self) -> None:
        self.transition(FileStatus.ANALYZING)

    def mark_analyzed(self, findings: List[Finding]) -> None:
        self.transition(FileStatus.ANALYZED)
        self.findings = list(findings)

    def mark_failed(self, error_message: str, findings: List[Finding] | None = None) -> None:
        self.transition(FileStatus.FAILED)
        self.error_message = error_message
        self.findings = list(findings or [])

    def snapshot(self) -> "FileReport":
        """Return a copy safe to hand to readers outside the orchestrator."""
        return FileReport(
            file_path=self.file_path,
            status=self.status,
            findings=list(self.findings),
            error_message=self.error_message,
        )


@dataclass(frozen=True, slots=True)
class BatchProgress:
    total_files: int
    completed_files: int
    started_at: float
    estimated_seconds_remaining: int | None

    @property
    def percentage(self) -> float:
        if self.total_files <= 0:
            return 0.0
        return self.completed_files / self.total_files * 100


@dataclass(frozen=True, slots=True)
class IssueHandle:
    number: int
    title: str
    url: str | None = None
