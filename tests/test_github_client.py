"""Tests for the GitHub forge client."""

from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from code_reviewer.errors import AuthError, DecodeError, GitHubAPIError, NotFoundError, ValidationError
from code_reviewer.github_client import GitHubClient, filter_supported_files
from code_reviewer.models.review import CandidateFile, RepoContext

REPO = RepoContext(owner="octo", repo_name="demo", branch="main")


def _client(handler) -> GitHubClient:
    transport = httpx.MockTransport(handler)
    return GitHubClient(client=httpx.AsyncClient(transport=transport, base_url="https://api.github.test"))


def _content_payload(raw: bytes) -> dict:
    return {"type": "file", "encoding": "base64", "content": base64.b64encode(raw).decode("ascii")}


class TestListFiles:
    def test_resolves_branch_and_keeps_blobs(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/repos/octo/demo/branches/main":
                return httpx.Response(200, json={"name": "main", "commit": {"sha": "abc123"}})
            if request.url.path == "/repos/octo/demo/git/trees/abc123":
                return httpx.Response(
                    200,
                    json={
                        "sha": "abc123",
                        "truncated": False,
                        "tree": [
                            {"path": "src", "type": "tree", "sha": "t1"},
                            {"path": "src/app.py", "type": "blob", "sha": "b1"},
                            {"path": "README.md", "type": "blob", "sha": "b2"},
                        ],
                    },
                )
            return httpx.Response(404, json={"message": "Not Found"})

        files = asyncio.run(_client(handler).list_files(REPO, token="ghp_x"))

        assert files == [
            CandidateFile(path="src/app.py", content_id="b1"),
            CandidateFile(path="README.md", content_id="b2"),
        ]
        assert seen[1].url.params["recursive"] == "1"
        assert all(request.headers["Authorization"] == "Bearer ghp_x" for request in seen)

    def test_missing_branch_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Branch not found"})

        with pytest.raises(NotFoundError) as excinfo:
            asyncio.run(_client(handler).list_files(REPO, token="ghp_x"))
        assert str(excinfo.value) == "GitHub API Error: 404 Branch not found"
        assert excinfo.value.status_code == 404

    def test_rejected_token_is_auth_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Bad credentials"})

        with pytest.raises(AuthError, match="Bad credentials"):
            asyncio.run(_client(handler).list_files(REPO, token="ghp_x"))

    def test_missing_token_fails_without_request(self) -> None:
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(AuthError):
            asyncio.run(_client(handler).list_files(REPO, token=""))
        assert calls == []


class TestFetchContent:
    def test_decodes_base64_text(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_content_payload("print('héllo')\n".encode("utf-8")))

        text = asyncio.run(_client(handler).fetch_content(REPO, "src/app.py", token="ghp_x", branch="dev"))

        assert text == "print('héllo')\n"
        assert seen[0].url.path == "/repos/octo/demo/contents/src/app.py"
        assert seen[0].url.params["ref"] == "dev"

    def test_defaults_to_repository_branch(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_content_payload(b"x = 1"))

        asyncio.run(_client(handler).fetch_content(REPO, "x.py", token="ghp_x"))
        assert seen[0].url.params["ref"] == "main"

    def test_binary_content_is_decode_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_content_payload(b"\xff\xfe\x00\x89PNG"))

        with pytest.raises(DecodeError):
            asyncio.run(_client(handler).fetch_content(REPO, "logo.png", token="ghp_x"))

    def test_missing_content_is_decode_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"type": "file", "encoding": "none", "content": ""})

        with pytest.raises(DecodeError, match="not available"):
            asyncio.run(_client(handler).fetch_content(REPO, "big.bin", token="ghp_x"))

    def test_missing_file_is_not_found(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "Not Found"})

        with pytest.raises(NotFoundError, match="404 Not Found"):
            asyncio.run(_client(handler).fetch_content(REPO, "gone.py", token="ghp_x"))


class TestCreateIssue:
    def test_posts_title_body_and_labels(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                201,
                json={"number": 7, "title": "[CodeReview] Bug (a.py)", "html_url": "https://github.com/octo/demo/issues/7"},
            )

        handle = asyncio.run(
            _client(handler).create_issue(
                REPO, token="ghp_x", title="[CodeReview] Bug (a.py)", body="body", labels=["Integrity", "High"]
            )
        )

        assert handle.number == 7
        assert handle.url == "https://github.com/octo/demo/issues/7"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/repos/octo/demo/issues"
        assert json.loads(seen[0].content) == {
            "title": "[CodeReview] Bug (a.py)",
            "body": "body",
            "labels": ["Integrity", "High"],
        }

    def test_rejected_payload_is_validation_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"message": "Validation Failed"})

        with pytest.raises(ValidationError, match="422 Validation Failed"):
            asyncio.run(_client(handler).create_issue(REPO, token="ghp_x", title="t", body="b"))

    def test_other_statuses_are_generic_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with pytest.raises(GitHubAPIError) as excinfo:
            asyncio.run(_client(handler).create_issue(REPO, token="ghp_x", title="t", body="b"))
        assert type(excinfo.value) is GitHubAPIError
        assert excinfo.value.response_body == "unavailable"


def test_filter_supported_files() -> None:
    files = [
        CandidateFile(path="src/app.py", content_id="1"),
        CandidateFile(path="docs/logo.png", content_id="2"),
        CandidateFile(path="web/Index.TSX", content_id="3"),
    ]
    kept = filter_supported_files(files, [".py", ".tsx"])
    assert [file.path for file in kept] == ["src/app.py", "web/Index.TSX"]
