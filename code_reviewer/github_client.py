"""GitHub API client helpers."""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, Iterable, List
from urllib.parse import quote

import httpx

from code_reviewer.errors import (
    AuthError,
    DecodeError,
    GitHubAPIError,
    NotFoundError,
    ValidationError,
)
from code_reviewer.logger import get_logger, log_with_context, log_timing
from code_reviewer.models.review import CandidateFile, IssueHandle, RepoContext

logger = get_logger()

DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"


def _error_for_status(status_code: int) -> type[GitHubAPIError]:
    if status_code in (401, 403):
        return AuthError
    if status_code == 404:
        return NotFoundError
    if status_code == 422:
        return ValidationError
    return GitHubAPIError


def _error_detail(response: httpx.Response) -> Any | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class GitHubClient:
    """Token-per-call wrapper around the repository, contents and issues endpoints."""

    def __init__(
        self,
        *,
        base_url: str = "https://api.github.com",
        timeout: float = 15.0,
        user_agent: str = "Gemini-CodeReviewer/1.0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={
                "User-Agent": user_agent,
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
            },
        )
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    @staticmethod
    def _token_headers(token: str) -> Dict[str, str]:
        if not token:
            raise AuthError("GitHub authentication is not set.")
        return {
            "Authorization": f"Bearer {token}",
            "Accept": DEFAULT_ACCEPT_HEADER,
            "X-GitHub-Api-Version": DEFAULT_API_VERSION,
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        token: str,
        params: Dict[str, Any] | None = None,
        json: Any | None = None,
    ) -> httpx.Response:
        headers = self._token_headers(token)
        try:
            response = await self._client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"GitHub API request to {url} failed: {exc}", 0, None) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            message = detail.get("message") if isinstance(detail, dict) else None
            error_cls = _error_for_status(response.status_code)
            raise error_cls(
                f"GitHub API Error: {response.status_code} {message or response.reason_phrase}",
                response.status_code,
                detail,
            )
        return response

    async def get_branch_head(self, repo: RepoContext, *, token: str) -> str:
        response = await self._request(
            "GET",
            f"/repos/{repo.owner}/{repo.repo_name}/branches/{quote(repo.branch, safe='')}",
            token=token,
        )
        data = response.json()
        sha = (data.get("commit") or {}).get("sha")
        if not sha:
            raise GitHubAPIError(
                f"GitHub did not return a commit for branch '{repo.branch}'.",
                response.status_code,
                data,
            )
        return sha

    async def list_files(self, repo: RepoContext, *, token: str) -> List[CandidateFile]:
        """Return every blob on the branch head, directories excluded."""

        ctx_logger = log_with_context(logger, repository=repo.full_name, branch=repo.branch)
        with log_timing(ctx_logger, "list_files"):
            tree_sha = await self.get_branch_head(repo, token=token)
            response = await self._request(
                "GET",
                f"/repos/{repo.owner}/{repo.repo_name}/git/trees/{tree_sha}",
                token=token,
                params={"recursive": "1"},
            )
        data = response.json()
        tree = data.get("tree")
        if not isinstance(tree, list):
            raise GitHubAPIError(
                "Unexpected response while listing repository tree.",
                response.status_code,
                data,
            )
        if data.get("truncated"):
            ctx_logger.warning("GitHub truncated the repository tree; some files are not listed")

        files = [
            CandidateFile(path=item["path"], content_id=item.get("sha", ""))
            for item in tree
            if item.get("type") == "blob" and item.get("path")
        ]
        ctx_logger.info(f"Listed {len(files)} file(s) from {len(tree)} tree entries")
        return files

    async def fetch_content(
        self,
        repo: RepoContext,
        path: str,
        *,
        token: str,
        branch: str | None = None,
    ) -> str:
        ref = branch if branch is not None else repo.branch
        params = {"ref": ref} if ref else None
        response = await self._request(
            "GET",
            f"/repos/{repo.owner}/{repo.repo_name}/contents/{quote(path)}",
            token=token,
            params=params,
        )
        data = response.json()
        if not isinstance(data, dict) or data.get("encoding") != "base64" or not data.get("content"):
            raise DecodeError(f"File content not available or not base64 encoded for {path}")

        try:
            raw = base64.b64decode(data["content"])
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Failed to decode base64 content for {path}") from exc
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"File content for {path} is not UTF-8 text") from exc

    async def create_issue(
        self,
        repo: RepoContext,
        *,
        token: str,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
    ) -> IssueHandle:
        payload: Dict[str, Any] = {"title": title, "body": body}
        if labels:
            payload["labels"] = list(labels)
        response = await self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.repo_name}/issues",
            token=token,
            json=payload,
        )
        data = response.json()
        return IssueHandle(
            number=int(data["number"]),
            title=data.get("title") or title,
            url=data.get("html_url"),
        )

    async def get_authenticated_user(self, *, token: str) -> Dict[str, Any]:
        response = await self._request("GET", "/user", token=token)
        return response.json()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None


def filter_supported_files(files: Iterable[CandidateFile], extensions: Iterable[str]) -> List[CandidateFile]:
    """Keep files whose path ends with one of the supported extensions."""

    suffixes = tuple(ext.lower() for ext in extensions)
    return [file for file in files if file.path.lower().endswith(suffixes)]
