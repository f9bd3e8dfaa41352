"""Formatting of GitHub issues raised from review findings."""

from __future__ import annotations

from typing import List

from code_reviewer.models.review import Finding

ISSUE_FOOTER = "*This issue was auto-generated by Gemini Code Reviewer.*"


def format_issue_title(finding: Finding) -> str:
    return f"[CodeReview] {finding.title} ({finding.file_path})"


def format_issue_body(finding: Finding) -> str:
    parts = [
        f"**File:** `{finding.file_path}`",
        f"**Severity:** {finding.severity.value}\n**Category:** {finding.category.value}",
    ]
    line_number = (finding.line_number or "").strip()
    if line_number:
        parts.append(f"**Approx. Line:** {line_number}")
    parts.append(f"**Description:**\n{finding.description.strip()}")
    parts.append(ISSUE_FOOTER)
    return "\n\n".join(parts)


def issue_labels(finding: Finding) -> List[str]:
    return [finding.category.value, finding.severity.value]
