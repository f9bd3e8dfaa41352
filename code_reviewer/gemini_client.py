"""Client wrapper for reviewing a single file with the Gemini API."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Sequence

import httpx

from code_reviewer.errors import AnalysisError
from code_reviewer.logger import get_logger, log_with_context, log_timing
from code_reviewer.models.review import Category, Finding, Severity

logger = get_logger()

KEY_PROBLEM_MESSAGE = (
    "Failed to analyze code with Gemini. There might be an issue with the API key "
    "configuration (ensure GEMINI_API_KEY is set) or permissions with the Gemini API."
)
_KEY_PROBLEM_MARKERS = ("api key", "api_key", "permission denied", "authentication")

_FENCE_RE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class GeminiClient:
    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._owns_client = client is None

    @property
    def model(self) -> str:
        return self._model

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def analyze(
        self,
        content: str,
        file_path: str,
        sibling_paths: Sequence[str] | None = None,
        *,
        api_key: str | None = None,
    ) -> List[Finding]:
        """Review one file and return its findings, possibly none."""

        key = api_key or self._api_key
        if not key:
            raise AnalysisError(
                "Failed to analyze code with Gemini. Details: API key is not configured."
            )

        ctx_logger = log_with_context(logger, file_path=file_path, model=self._model)
        prompt = build_prompt(content, file_path, sibling_paths)
        ctx_logger.debug(f"Prompt built: {len(prompt)} characters")

        with log_timing(ctx_logger, "gemini_generate_content"):
            text = await self._generate(prompt, key)

        try:
            findings = parse_findings(text, file_path)
        except AnalysisError:
            ctx_logger.warning(f"Unparseable Gemini response ({len(text)} characters)")
            raise
        ctx_logger.info(f"Gemini analysis parsed: {len(findings)} finding(s)")
        return findings

    async def _generate(self, prompt: str, api_key: str) -> str:
        request_body = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            response = await self._client.post(
                f"/models/{self._model}:generateContent",
                json=request_body,
                headers={"x-goog-api-key": api_key},
            )
        except httpx.HTTPError as exc:
            raise AnalysisError(f"Failed to analyze code with Gemini. Details: {exc}") from exc

        _raise_for_status(response)
        try:
            payload = response.json()
        except ValueError as exc:
            raise AnalysisError("Gemini returned a response that is not JSON.") from exc

        if not isinstance(payload, dict):
            raise AnalysisError("Failed to analyze code with Gemini. Details: response is not a JSON object.")

        text = "".join(_extract_candidate_text(payload))
        if not text.strip():
            feedback = payload.get("promptFeedback")
            reason = (feedback.get("blockReason") if isinstance(feedback, dict) else None) or "empty response"
            raise AnalysisError(f"Failed to analyze code with Gemini. Details: {reason}")
        return text


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    detail: Any
    try:
        detail = response.json()
    except ValueError:
        detail = response.text

    message = ""
    error = detail.get("error") if isinstance(detail, dict) else detail
    if isinstance(error, dict):
        message = str(error.get("message") or "")
    elif isinstance(error, str):
        message = error

    lowered = message.lower()
    if response.status_code in (401, 403) or any(marker in lowered for marker in _KEY_PROBLEM_MARKERS):
        raise AnalysisError(KEY_PROBLEM_MESSAGE)
    raise AnalysisError(
        f"Failed to analyze code with Gemini. Details: status={response.status_code}, "
        f"detail={message or detail}"
    )


def _extract_candidate_text(payload: Dict[str, Any]) -> Iterable[str]:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list):
        return
    for candidate in candidates:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts if isinstance(parts, list) else []:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text:
                yield text
        # Only the first candidate is used.
        break


def build_prompt(content: str, file_path: str, sibling_paths: Sequence[str] | None = None) -> str:
    preamble = ""
    siblings = [path.strip() for path in sibling_paths or [] if path and path.strip()]
    if len(siblings) > 1:
        preamble = (
            f"You are reviewing the file '{file_path}'. This review is part of a batch analysis "
            f"that also includes these files: {', '.join(siblings)}. Consider potential interactions "
            f"or shared concerns among these files if relevant, but focus your specific findings "
            f"on '{file_path}'.\n\n"
        )

    instructions = (
        f"You are an expert code reviewer. Analyze the following code from the file \"{file_path}\" "
        "for potential issues.\n"
        "Focus on:\n"
        "1. **Performance Bottlenecks**: inefficient code, unnecessary computations, slow paths.\n"
        "2. **Code Integrity & Bugs**: logical errors, null dereferences, race conditions, resource leaks.\n"
        "3. **Security Vulnerabilities**: XSS, SQL injection, insecure credential handling, "
        "improper input validation.\n"
        "4. **Scalability Concerns**: design choices that hinder handling increased load or data.\n"
        "5. **Maintainability & Readability**: unclear or overly complex logic, inconsistent style.\n"
        "6. **Best Practices**: adherence to language-specific best practices and design patterns.\n\n"
        "For each issue found, return one object in a JSON array with this structure:\n"
        "{\n"
        "  \"lineNumber\": \"approximate_line_number_as_string_or_empty_string\",\n"
        "  \"issueTitle\": \"A concise title for the issue (max 15 words).\",\n"
        "  \"description\": \"A detailed explanation of the issue and its potential impact.\",\n"
        "  \"severity\": \"Critical | High | Medium | Low | Informational\",\n"
        "  \"category\": \"Performance | Security | Integrity | Scalability | Maintainability | "
        "BestPractice | Other\"\n"
        "}\n\n"
        "If no significant issues are found, return an empty array [].\n"
        "Only return the JSON array. Do not include any other explanatory text, markdown "
        "formatting for the JSON block, or any preamble."
    )

    return f"{preamble}{instructions}\n\nCode to review (from file: {file_path}):\n---\n{content}\n---\n"


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""

    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    if match and match.group(2):
        return match.group(2).strip()
    return stripped


def _coerce_enum(enum_cls, raw: Any, default):
    if isinstance(raw, str):
        value = raw.strip()
        for member in enum_cls:
            if member.value.lower() == value.lower():
                return member
    return default


def parse_findings(text: str, file_path: str) -> List[Finding]:
    """Parse a JSON array of findings returned by the analyzer."""

    raw_json = strip_code_fence(text)
    try:
        data = json.loads(raw_json)
    except json.JSONDecodeError as exc:
        raise AnalysisError(f"Failed to analyze code with Gemini. Details: malformed JSON ({exc.msg})") from exc

    if not isinstance(data, list):
        raise AnalysisError("Failed to analyze code with Gemini. Details: expected a JSON array of findings.")

    findings: List[Finding] = []
    for entry in data:
        if not isinstance(entry, dict):
            raise AnalysisError("Failed to analyze code with Gemini. Details: finding entries must be objects.")

        line_number = entry.get("lineNumber")
        line_number = str(line_number).strip() if line_number not in (None, "") else None
        findings.append(
            Finding(
                file_path=file_path,
                line_number=line_number or None,
                title=str(entry.get("issueTitle") or "Untitled issue").strip(),
                description=str(entry.get("description") or "").strip(),
                severity=_coerce_enum(Severity, entry.get("severity"), Severity.INFORMATIONAL),
                category=_coerce_enum(Category, entry.get("category"), Category.OTHER),
            )
        )
    return findings
