"""State of one analysis batch."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from code_reviewer.models.review import BatchProgress, FileReport, FileStatus, Finding, RepoContext


@dataclass
class AnalysisBatch:
    repo_context: RepoContext
    started_at: float
    reports: Dict[str, FileReport] = field(default_factory=dict)
    completed_files: int = 0
    estimated_seconds_remaining: int | None = None
    finished: bool = False
    discarded: bool = False
    batch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @classmethod
    def create(cls, repo_context: RepoContext, paths: Iterable[str], *, started_at: float) -> "AnalysisBatch":
        batch = cls(repo_context=repo_context, started_at=started_at)
        for path in paths:
            batch.reports[path] = FileReport(file_path=path)
        return batch

    @property
    def total_files(self) -> int:
        return len(self.reports)

    def progress(self) -> BatchProgress:
        return BatchProgress(
            total_files=self.total_files,
            completed_files=self.completed_files,
            started_at=self.started_at,
            estimated_seconds_remaining=self.estimated_seconds_remaining,
        )

    def snapshots(self) -> List[FileReport]:
        return [report.snapshot() for report in self.reports.values()]

    def count(self, status: FileStatus) -> int:
        return sum(1 for report in self.reports.values() if report.status is status)

    def find_finding(self, finding_id: str) -> Finding | None:
        for report in self.reports.values():
            for finding in report.findings:
                if finding.id == finding_id:
                    return finding
        return None
