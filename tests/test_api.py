"""End-to-end tests of the HTTP surface over mocked GitHub and Gemini hosts."""

from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from code_reviewer.config import OAuthCredentials, Settings
from code_reviewer.dependencies import build_services
from code_reviewer.gemini_client import GeminiClient
from code_reviewer.github_client import GitHubClient
from code_reviewer.main import create_app
from code_reviewer.models.batch import AnalysisBatch
from code_reviewer.oauth import GitHubOAuthClient

FILES = {
    "src/app.py": "def handler(request):\n    return eval(request.body)\n",
    "src/util.py": "",
}


class FakeHosts:
    """Answers GitHub REST, GitHub OAuth and Gemini requests."""

    def __init__(self) -> None:
        self.issue_payloads: list[dict] = []
        self.gemini_prompts: list[str] = []
        self.revoked_tokens: list[str] = []
        self.rejected_tokens: set[str] = set()

    def github(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gho_oauth", "token_type": "bearer"})
        if path == "/applications/cid/token" and request.method == "DELETE":
            self.revoked_tokens.append(json.loads(request.content)["access_token"])
            return httpx.Response(204)
        authorization = request.headers.get("Authorization", "")
        if authorization not in ("Bearer ghp_test", "Bearer gho_oauth") or authorization[7:] in self.rejected_tokens:
            return httpx.Response(401, json={"message": "Bad credentials"})
        if path == "/user":
            return httpx.Response(200, json={"login": "octocat"})
        if path == "/repos/octo/demo/branches/main":
            return httpx.Response(200, json={"commit": {"sha": "head"}})
        if path == "/repos/octo/demo/git/trees/head":
            tree = [{"path": name, "type": "blob", "sha": name} for name in FILES]
            tree.append({"path": "assets/logo.png", "type": "blob", "sha": "png"})
            return httpx.Response(200, json={"tree": tree, "truncated": False})
        if path.startswith("/repos/octo/demo/contents/"):
            name = path[len("/repos/octo/demo/contents/"):]
            text = FILES.get(name)
            if text is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if not text:
                return httpx.Response(200, json={"encoding": "none", "content": ""})
            encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
            return httpx.Response(200, json={"encoding": "base64", "content": encoded})
        if path == "/repos/octo/demo/issues" and request.method == "POST":
            payload = json.loads(request.content)
            self.issue_payloads.append(payload)
            return httpx.Response(
                201,
                json={"number": 17, "title": payload["title"], "html_url": "https://github.com/octo/demo/issues/17"},
            )
        return httpx.Response(404, json={"message": "Not Found"})

    def gemini(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.gemini_prompts.append(body["contents"][0]["parts"][0]["text"])
        findings = [
            {
                "lineNumber": "2",
                "issueTitle": "eval on request body",
                "description": "Arbitrary code execution.",
                "severity": "Critical",
                "category": "Security",
            }
        ]
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": json.dumps(findings)}]}}]})


@pytest.fixture
def hosts() -> FakeHosts:
    return FakeHosts()


def _build_client(hosts: FakeHosts, *, with_oauth: bool = False) -> TestClient:
    settings = Settings(gemini_api_key="gemini-key", average_seconds_per_file=5)
    github_transport = httpx.MockTransport(hosts.github)
    github = GitHubClient(client=httpx.AsyncClient(transport=github_transport, base_url="https://api.github.test"))
    analyzer = GeminiClient(
        settings.gemini_api_key,
        model="gemini-test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(hosts.gemini), base_url="https://gemini.test"),
    )
    oauth_client = None
    if with_oauth:
        oauth_client = GitHubOAuthClient(
            OAuthCredentials(
                client_id="cid",
                client_secret="secret",
                redirect_uri="http://testserver/auth/github/callback",
                scope="repo",
            ),
            oauth_base_url="https://github.test",
            github=github,
            client=httpx.AsyncClient(transport=github_transport),
        )
    services = build_services(settings, github=github, analyzer=analyzer, oauth_client=oauth_client)
    return TestClient(create_app(services=services))


def test_health(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["oauth_enabled"] is False


def test_review_flow(hosts: FakeHosts) -> None:
    client = _build_client(hosts)

    assert client.post("/session/token", json={"token": "ghp_test"}).status_code == 200

    response = client.post("/repository", json={"owner": "octo", "repo": "demo"})
    assert response.status_code == 200
    assert response.json()["message"] == "Found 2 code files."
    assert [file["path"] for file in response.json()["files"]] == ["src/app.py", "src/util.py"]

    response = client.post("/batches", json={"paths": ["src/app.py", "src/util.py"]})
    assert response.status_code == 202

    batch = client.get("/batches/current").json()
    assert batch["running"] is False
    assert batch["progress"]["completed_files"] == 2
    assert batch["progress"]["estimated_seconds_remaining"] is None
    reports = {report["file_path"]: report for report in batch["reports"]}
    assert reports["src/app.py"]["status"] == "analyzed"
    assert reports["src/util.py"]["status"] == "failed"
    assert reports["src/util.py"]["findings"] == []
    assert len(hosts.gemini_prompts) == 1
    assert "src/app.py, src/util.py" in hosts.gemini_prompts[0]

    finding = reports["src/app.py"]["findings"][0]
    response = client.post("/issues", json={"finding_id": finding["id"]})
    assert response.status_code == 201
    assert response.json()["number"] == 17
    assert hosts.issue_payloads[0]["title"] == "[CodeReview] eval on request body (src/app.py)"
    assert hosts.issue_payloads[0]["labels"] == ["Security", "Critical"]

    assert client.delete("/session").status_code == 200
    assert client.get("/batches/current").status_code == 404
    assert client.get("/session").json()["authenticated"] is False


def test_repository_requires_token(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    response = client.post("/repository", json={"owner": "octo", "repo": "demo"})
    assert response.status_code == 401


def test_rejected_token_is_unauthorized(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    client.post("/session/token", json={"token": "ghp_wrong"})
    response = client.post("/repository", json={"owner": "octo", "repo": "demo"})
    assert response.status_code == 401
    assert "Bad credentials" in response.json()["detail"]


def test_unknown_repository_is_not_found(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    client.post("/session/token", json={"token": "ghp_test"})
    response = client.post("/repository", json={"owner": "octo", "repo": "missing"})
    assert response.status_code == 404


def test_empty_selection_is_ignored(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    client.post("/session/token", json={"token": "ghp_test"})
    client.post("/repository", json={"owner": "octo", "repo": "demo"})

    response = client.post("/batches", json={"paths": []})
    assert response.json() == {"status": "ignored", "message": "No files selected for analysis."}
    assert client.get("/batches/current").status_code == 404


def test_unknown_selection_is_rejected(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    client.post("/session/token", json={"token": "ghp_test"})
    client.post("/repository", json={"owner": "octo", "repo": "demo"})

    response = client.post("/batches", json={"paths": ["assets/logo.png"]})
    assert response.status_code == 400


def test_unknown_finding(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    response = client.post("/issues", json={"finding_id": "nope"})
    assert response.status_code == 404


def test_oauth_not_configured(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    response = client.get("/auth/github/login", follow_redirects=False)
    assert response.status_code == 500
    assert "GITHUB_CLIENT_ID" in response.json()["detail"]


def test_oauth_sign_in(hosts: FakeHosts) -> None:
    client = _build_client(hosts, with_oauth=True)

    response = client.get("/auth/github/login", follow_redirects=False)
    assert response.status_code == 302
    state = parse_qs(urlsplit(response.headers["location"]).query)["state"][0]

    forged = client.get("/auth/github/callback", params={"code": "abc", "state": "forged"})
    assert forged.status_code == 400
    assert client.get("/session").json()["authenticated"] is False

    # The forged callback consumed the pending state.
    replay = client.get("/auth/github/callback", params={"code": "abc", "state": state})
    assert replay.status_code == 400

    response = client.get("/auth/github/login", follow_redirects=False)
    state = parse_qs(urlsplit(response.headers["location"]).query)["state"][0]
    response = client.get("/auth/github/callback", params={"code": "abc", "state": state})
    assert response.status_code == 200
    assert response.json()["login"] == "octocat"
    assert response.json()["method"] == "authorized_session"

    assert client.delete("/session").status_code == 200
    assert hosts.revoked_tokens == ["gho_oauth"]
    assert client.get("/session").json()["authenticated"] is False


def test_static_token_sign_out_does_not_revoke(hosts: FakeHosts) -> None:
    client = _build_client(hosts, with_oauth=True)
    client.post("/session/token", json={"token": "ghp_test"})

    assert client.delete("/session").status_code == 200
    assert hosts.revoked_tokens == []


def test_running_batch_blocks_new_work(hosts: FakeHosts) -> None:
    client = _build_client(hosts)
    client.post("/session/token", json={"token": "ghp_test"})
    client.post("/repository", json={"owner": "octo", "repo": "demo"})

    session = client.app.state.services.session
    running = AnalysisBatch.create(session.repo_context, ["src/app.py"], started_at=0.0)
    session.attach_batch(running)

    response = client.post("/batches", json={"paths": ["src/util.py"]})
    assert response.status_code == 409
    assert session.batch is running
    assert not running.discarded

    assert client.post("/repository", json={"owner": "octo", "repo": "demo"}).status_code == 409
    assert hosts.gemini_prompts == []


def _sign_in_with_oauth(client: TestClient) -> None:
    response = client.get("/auth/github/login", follow_redirects=False)
    state = parse_qs(urlsplit(response.headers["location"]).query)["state"][0]
    assert client.get("/auth/github/callback", params={"code": "abc", "state": state}).status_code == 200


def test_session_check_keeps_valid_oauth_token(hosts: FakeHosts) -> None:
    client = _build_client(hosts, with_oauth=True)
    _sign_in_with_oauth(client)

    body = client.get("/session").json()
    assert body["authenticated"] is True
    assert body["login"] == "octocat"


def test_session_check_signs_out_revoked_oauth_token(hosts: FakeHosts) -> None:
    client = _build_client(hosts, with_oauth=True)
    _sign_in_with_oauth(client)
    client.post("/repository", json={"owner": "octo", "repo": "demo"})
    hosts.rejected_tokens.add("gho_oauth")

    body = client.get("/session").json()

    assert body["authenticated"] is False
    assert body["message"] == "GitHub session expired. Please sign in again."
    assert client.app.state.services.session.repo_context is None
