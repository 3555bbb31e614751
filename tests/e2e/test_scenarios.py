"""
E2E scenarios driving the sandbox through its HTTP API.

Scenarios:
- linking a provider that asks for login, then PIN
- linking an unknown provider
- authorizing a transfer with PIN, auth method and TAN
- a transfer failing on a wrong TAN and refusing further steps
- two racing submissions carrying the same version
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

from sandbox_bank.domain.models import ChallengeAnswer, TransferType
from sandbox_bank.fixtures import DEFAULT_USER_ID, default_access_details
from sandbox_bank.sandbox import Sandbox

PROVIDER_ID = "P1"


@pytest.fixture
def provider(sandbox: Sandbox) -> str:
    """Provider P1: login "user", PIN "1234", auth method "901" answered by TAN "4321" """
    sandbox.catalog.add_access(default_access_details(sandbox, PROVIDER_ID))
    return PROVIDER_ID


@pytest.fixture
def account_id(client: TestClient, provider: str) -> int:
    answers = [{"id": "login", "value": "user"}, {"id": "pin", "value": "1234"}]
    uri = client.post("/v1/accesses", json={"provider_id": provider, "challenge_answers": answers}).json()["uri"]
    return client.get(f"/v1{uri}").json()["access"]["accounts"][0]["id"]


def _step(client: TestClient, transfer: dict, challenge_id: str, value: str) -> dict:
    response = client.post(
        f"/v1/transfers/{transfer['id']}",
        json={
            "intent": transfer["step"]["intent"],
            "version": transfer["version"],
            "type": transfer["type"],
            "challenge_answers": [{"id": challenge_id, "value": value}],
        },
    )
    assert response.status_code == 200
    return response.json()


def _new_transfer(client: TestClient, account_id: int) -> dict:
    response = client.post(
        "/v1/transfers",
        json={
            "from": account_id,
            "to": {"name": "Jane Doe", "iban": "DE02120300000000202051"},
            "amount": {"value": "19.99", "currency": "EUR"},
            "type": "regular",
        },
    )
    assert response.status_code == 201
    return response.json()


def test_link_provider_step_by_step(client: TestClient, provider: str):
    """
    Login first, PIN second
    Expected: challenge, challenge, then imported
    """
    uri = client.post("/v1/accesses", json={"provider_id": provider}).json()["uri"]
    data = client.get(f"/v1{uri}").json()
    assert data["stage"] == "challenge"
    assert data["finished"] is False

    data = client.put(f"/v1{uri}", json={"challenge_answers": [{"id": "login", "value": "user"}]}).json()
    assert data["stage"] == "challenge"
    assert [c["id"] for c in data["challenge"]["next_challenges"]] == ["pin"]

    data = client.put(f"/v1{uri}", json={"challenge_answers": [{"id": "pin", "value": "1234"}]}).json()
    assert data["stage"] == "imported"
    assert data["finished"] is True


def test_link_unknown_provider(client: TestClient):
    """
    Unknown provider
    Expected: finished immediately in stage problem
    """
    uri = client.post("/v1/accesses", json={"provider_id": "unknown-provider"}).json()["uri"]

    data = client.get(f"/v1{uri}").json()

    assert data["finished"] is True
    assert data["stage"] == "problem"
    assert data["errors"] == [{"code": "unknown_provider"}]


def test_transfer_succeeds(client: TestClient, account_id: int):
    """
    PIN 1234, auth method 901, TAN 4321
    Expected: succeeded
    """
    transfer = _new_transfer(client, account_id)
    assert transfer["step"]["intent"] == "provide_credentials"

    transfer = _step(client, transfer, "pin", "1234")
    assert transfer["step"]["intent"] == "select_auth_method"
    assert transfer["step"]["data"]["auth_methods"] == [{"id": "901"}]

    transfer = _step(client, transfer, "auth_method", "901")
    assert transfer["step"]["intent"] == "provide_challenge_answer"
    assert transfer["step"]["data"]["challenge_message"] == "enter 4321 as tan"

    transfer = _step(client, transfer, "tan", "4321")
    assert transfer["state"] == "succeeded"


def test_transfer_fails_on_wrong_tan(client: TestClient, account_id: int):
    """
    TAN 0000
    Expected: failed with fi_account_blocked, further steps unprocessable
    """
    transfer = _new_transfer(client, account_id)
    transfer = _step(client, transfer, "pin", "1234")
    transfer = _step(client, transfer, "auth_method", "901")

    transfer = _step(client, transfer, "tan", "0000")
    assert transfer["state"] == "failed"
    assert "fi_account_blocked" in [e["code"] for e in transfer["errors"]]

    transfer = _step(client, transfer, "tan", "4321")
    assert transfer["state"] == "failed"
    assert transfer["errors"][-1]["code"] == "state_failed_unprocessable"


def test_racing_submissions(sandbox: Sandbox, client: TestClient, account_id: int):
    """
    Two submissions with the same version at once
    Expected: exactly one accepted, the other gets versions_mismatch
    """
    transfer = _new_transfer(client, account_id)

    def submit(_):
        return sandbox.transfers.process_transfer(
            transfer["id"],
            TransferType.REGULAR,
            DEFAULT_USER_ID,
            transfer["step"]["intent"],
            transfer["version"],
            answers=[ChallengeAnswer("pin", "1234")],
        )

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(submit, range(2)))

    rejected = [t for t in results if any(e.code == "versions_mismatch" for e in t.errors)]
    assert len(rejected) == 1

    stored = sandbox.transfers.get_order(transfer["id"], TransferType.REGULAR).transfer
    assert stored.version == transfer["version"] + 1
    assert stored.step.intent.value == "select_auth_method"
