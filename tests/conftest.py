from __future__ import annotations

import pytest

from code_reviewer.models.review import RepoContext
from code_reviewer.services.session import ReviewSession


@pytest.fixture
def repo_context() -> RepoContext:
    return RepoContext(owner="octo", repo_name="demo", branch="main")


@pytest.fixture
def session(repo_context: RepoContext) -> ReviewSession:
    review_session = ReviewSession(default_analyzer_key="gemini-key")
    review_session.credentials.use_static_token("ghp_test")
    review_session.repo_context = repo_context
    return review_session
