"""Pytest fixtures for testing"""

from typing import List

import pytest
from fastapi.testclient import TestClient

from sandbox_bank.api.main import create_app
from sandbox_bank.domain.challenges import CHALLENGE_LOGIN, CHALLENGE_PIN
from sandbox_bank.domain.models import ChallengeAnswer, JobStage
from sandbox_bank.fixtures import (
    DEFAULT_ACCESS_LOGIN,
    DEFAULT_ACCESS_PIN,
    DEFAULT_APPLICATION_ID,
    DEFAULT_PROVIDER_ID,
    DEFAULT_USER_ID,
    new_with_defaults,
)
from sandbox_bank.sandbox import Sandbox


def login_answers(store: bool = False) -> List[ChallengeAnswer]:
    """Correct login + PIN for the default provider"""
    return [
        ChallengeAnswer(id=CHALLENGE_LOGIN, value=DEFAULT_ACCESS_LOGIN, store=store),
        ChallengeAnswer(id=CHALLENGE_PIN, value=DEFAULT_ACCESS_PIN, store=store),
    ]


@pytest.fixture
def sandbox() -> Sandbox:
    """Fresh sandbox seeded with the default developer, app, user and provider"""
    return new_with_defaults()


@pytest.fixture
def linked_sandbox(sandbox: Sandbox) -> Sandbox:
    """Sandbox where the default user has linked the default provider"""
    job = sandbox.jobs.create_job(DEFAULT_USER_ID, DEFAULT_PROVIDER_ID, login_answers())
    assert job.stage == JobStage.IMPORTED
    return sandbox


@pytest.fixture
def account_id(linked_sandbox: Sandbox) -> int:
    user = linked_sandbox.identity.get_user(DEFAULT_USER_ID)
    return user.accesses[0].accounts[0].id


@pytest.fixture
def token(sandbox: Sandbox) -> str:
    return sandbox.identity.issue_token(DEFAULT_USER_ID)


@pytest.fixture
def auth_headers(token: str) -> dict:
    return {"X-Application-Id": DEFAULT_APPLICATION_ID, "X-Token": token}


@pytest.fixture
def client(sandbox: Sandbox, auth_headers: dict) -> TestClient:
    """Authenticated test client bound to the sandbox fixture"""
    client = TestClient(create_app(sandbox))
    client.headers.update(auth_headers)
    return client


@pytest.fixture
def anonymous_client(sandbox: Sandbox) -> TestClient:
    return TestClient(create_app(sandbox))


@pytest.fixture
def correct_answers() -> List[ChallengeAnswer]:
    return login_answers()
