"""Unit tests for the transfer authorization engine"""

from concurrent.futures import ThreadPoolExecutor
from typing import List

import pytest

from sandbox_bank.domain.exceptions import ResourceNotFoundError
from sandbox_bank.domain.models import (
    ChallengeAnswer,
    MoneyAmount,
    OrderOp,
    RecurrenceRule,
    RepeatedTransaction,
    Transfer,
    TransferAddress,
    TransferIntent,
    TransferParams,
    TransferState,
    TransferType,
)
from sandbox_bank.fixtures import DEFAULT_PROVIDER_ID, DEFAULT_USERNAME, DEFAULT_USER_ID
from sandbox_bank.sandbox import Sandbox

RECIPIENT = TransferAddress(name="Jane Doe", iban="DE02120300000000202051")


def _params(account_id: int, answers: List[ChallengeAnswer] | None = None, **kwargs) -> TransferParams:
    return TransferParams(
        from_account=account_id,
        to=RECIPIENT,
        amount=MoneyAmount(value="10.00"),
        usage="Rent",
        challenge_answers=answers or [],
        **kwargs,
    )


def _submit(sandbox: Sandbox, transfer: Transfer, answers: List[ChallengeAnswer], **kwargs) -> Transfer:
    return sandbox.transfers.process_transfer(
        transfer.id,
        transfer.type,
        DEFAULT_USER_ID,
        transfer.step.intent.value,
        transfer.version,
        answers=answers,
        **kwargs,
    )


def _authorize(sandbox: Sandbox, transfer: Transfer, tan: str = "4321") -> Transfer:
    """Drive a freshly created transfer through PIN, auth method and TAN"""
    transfer = _submit(sandbox, transfer, [ChallengeAnswer("pin", "1234")])
    transfer = _submit(sandbox, transfer, [ChallengeAnswer("auth_method", "901")])
    return _submit(sandbox, transfer, [ChallengeAnswer("tan", tan)])


def test_new_transfer_asks_for_credentials(linked_sandbox: Sandbox, account_id: int):
    """Test creation runs the first round"""
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    transfer = order.transfer
    assert transfer.state == TransferState.ONGOING
    assert transfer.step.intent == TransferIntent.PROVIDE_CREDENTIALS
    assert transfer.version == 1
    assert transfer.errors == []
    assert linked_sandbox.transfers.get_order(transfer.id, TransferType.REGULAR).transfer == transfer


def test_full_authorization_settles_transaction(linked_sandbox: Sandbox, account_id: int):
    """Test PIN -> auth method -> TAN succeeds and books a transaction"""
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    transfer = _submit(linked_sandbox, order.transfer, [ChallengeAnswer("pin", "1234")])
    assert transfer.step.intent == TransferIntent.SELECT_AUTH_METHOD
    assert transfer.step.data.tan_type == "mobile"
    assert [m.id for m in transfer.step.data.auth_methods] == ["901"]
    assert transfer.version == 2

    transfer = _submit(linked_sandbox, transfer, [ChallengeAnswer("auth_method", "901")])
    assert transfer.step.intent == TransferIntent.PROVIDE_CHALLENGE_ANSWER
    assert transfer.step.data.challenge_message == "enter 4321 as tan"
    assert transfer.version == 3

    transfer = _submit(linked_sandbox, transfer, [ChallengeAnswer("tan", "4321")])
    assert transfer.state == TransferState.SUCCEEDED
    assert transfer.version == 4
    assert transfer.step.data is None
    assert transfer.settlement_date is not None

    booked = linked_sandbox.identity.get_user(DEFAULT_USER_ID).transactions[-1]
    assert booked.amount == MoneyAmount(value="10.00")
    assert booked.counterparty == RECIPIENT
    assert booked.account_id == account_id


def test_presupplied_pin_chains_to_auth_method(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(
        DEFAULT_USER_ID, _params(account_id, [ChallengeAnswer("pin", "1234")])
    )

    assert order.transfer.step.intent == TransferIntent.SELECT_AUTH_METHOD
    assert order.transfer.version == 1


def test_presupplied_wrong_pin_stays_on_credentials(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(
        DEFAULT_USER_ID, _params(account_id, [ChallengeAnswer("pin", "0000")])
    )

    assert order.transfer.step.intent == TransferIntent.PROVIDE_CREDENTIALS
    assert [e.code for e in order.transfer.errors] == ["fi_invalid_loginname_pin"]


def test_stored_pin_is_used(linked_sandbox: Sandbox, account_id: int):
    """Test remembered answers count as pre-supplied credentials"""
    linked_sandbox.identity.update_stored_answers(
        DEFAULT_USER_ID, DEFAULT_PROVIDER_ID, [ChallengeAnswer("pin", "1234", store=True)]
    )

    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    assert order.transfer.step.intent == TransferIntent.SELECT_AUTH_METHOD


def test_wrong_pin_can_be_retried(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    transfer = _submit(linked_sandbox, order.transfer, [ChallengeAnswer("pin", "0000")])
    assert transfer.state == TransferState.ONGOING
    assert transfer.step.intent == TransferIntent.PROVIDE_CREDENTIALS
    assert [e.code for e in transfer.errors] == ["fi_invalid_loginname_pin"]
    assert transfer.version == 2

    transfer = _submit(linked_sandbox, transfer, [ChallengeAnswer("pin", "1234")])
    assert transfer.step.intent == TransferIntent.SELECT_AUTH_METHOD
    assert transfer.errors == []
    assert transfer.version == 3


def test_unknown_auth_method_fails(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))
    transfer = _submit(linked_sandbox, order.transfer, [ChallengeAnswer("pin", "1234")])

    transfer = _submit(linked_sandbox, transfer, [ChallengeAnswer("auth_method", "999")])

    assert transfer.state == TransferState.FAILED
    assert [e.code for e in transfer.errors] == ["fi_account_blocked"]


def test_wrong_tan_fails_and_locks_transfer(linked_sandbox: Sandbox, account_id: int):
    """Test a failed transfer rejects further submissions without changing"""
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))
    transactions_before = len(linked_sandbox.identity.get_user(DEFAULT_USER_ID).transactions)

    failed = _authorize(linked_sandbox, order.transfer, tan="0000")
    assert failed.state == TransferState.FAILED
    assert "fi_account_blocked" in [e.code for e in failed.errors]

    rejected = _submit(linked_sandbox, failed, [ChallengeAnswer("tan", "4321")])
    assert [e.code for e in rejected.errors] == ["fi_account_blocked", "state_failed_unprocessable"]

    stored = linked_sandbox.transfers.get_order(failed.id, TransferType.REGULAR).transfer
    assert stored == failed
    assert len(linked_sandbox.identity.get_user(DEFAULT_USER_ID).transactions) == transactions_before


def test_succeeded_transfer_is_unprocessable(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))
    succeeded = _authorize(linked_sandbox, order.transfer)

    rejected = _submit(linked_sandbox, succeeded, [])

    assert rejected.errors[-1].code == "state_succeeded_unprocessable"


def test_stale_version_is_rejected(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    rejected = linked_sandbox.transfers.process_transfer(
        order.id,
        TransferType.REGULAR,
        DEFAULT_USER_ID,
        "provide_credentials",
        0,
        answers=[ChallengeAnswer("pin", "1234")],
    )

    assert [e.code for e in rejected.errors] == ["versions_mismatch"]
    stored = linked_sandbox.transfers.get_order(order.id, TransferType.REGULAR).transfer
    assert stored == order.transfer


def test_wrong_intent_is_rejected(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    rejected = linked_sandbox.transfers.process_transfer(
        order.id,
        TransferType.REGULAR,
        DEFAULT_USER_ID,
        "select_auth_method",
        order.transfer.version,
        answers=[ChallengeAnswer("auth_method", "901")],
    )

    assert [e.code for e in rejected.errors] == ["intents_mismatch"]
    assert rejected.step == order.transfer.step
    assert rejected.version == order.transfer.version


def test_concurrent_submissions_with_same_version(linked_sandbox: Sandbox, account_id: int):
    """Test only one of two racing submissions is accepted"""
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(_submit, linked_sandbox, order.transfer, [ChallengeAnswer("pin", "1234")])
            for _ in range(2)
        ]
        results = [f.result() for f in futures]

    codes = sorted(tuple(e.code for e in t.errors) for t in results)
    assert codes == [(), ("versions_mismatch",)]
    stored = linked_sandbox.transfers.get_order(order.id, TransferType.REGULAR).transfer
    assert stored.version == 2
    assert stored.step.intent == TransferIntent.SELECT_AUTH_METHOD


def test_unknown_transfer_leaves_no_lock_behind(linked_sandbox: Sandbox):
    for i in range(100):
        with pytest.raises(ResourceNotFoundError):
            linked_sandbox.transfers.process_transfer(
                f"bogus{i}", TransferType.REGULAR, DEFAULT_USER_ID, "provide_credentials", 1
            )

    assert linked_sandbox.store.transfers._entity_locks == {}
    assert len(linked_sandbox.store.transfers) == 0


def test_confirm_similar_step(linked_sandbox: Sandbox, account_id: int):
    linked_sandbox.set_confirm_similar(True)
    order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(account_id))
    assert order.transfer.step.intent == TransferIntent.CONFIRM_SIMILAR_TRANSFER

    transfer = _submit(linked_sandbox, order.transfer, [], confirm=True)

    assert transfer.step.intent == TransferIntent.PROVIDE_CREDENTIALS
    assert transfer.version == 2


def test_unknown_provider_fails_at_creation(linked_sandbox: Sandbox, account_id: int):
    order = linked_sandbox.transfers.create_transfer(DEFAULT_USER_ID, "unknown-provider", _params(account_id))

    assert order.transfer.state == TransferState.FAILED
    assert [e.code for e in order.transfer.errors] == ["resource_not_found"]
    assert order.transfer.version == 0


def test_unlinked_account_is_not_found(linked_sandbox: Sandbox):
    with pytest.raises(ResourceNotFoundError):
        linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, _params(424242))


class TestRecurringTransfers:
    """Test recurring orders and their effect on repeated transactions"""

    @pytest.fixture
    def repeated(self, linked_sandbox: Sandbox, account_id: int) -> RepeatedTransaction:
        user = linked_sandbox.identity.get_user(DEFAULT_USER_ID)
        rtx = RepeatedTransaction(
            id=linked_sandbox.store.ids.next(),
            access_id=user.accesses[0].id,
            account_id=account_id,
            amount=MoneyAmount(value="50.00"),
            counterparty=RECIPIENT,
            schedule=RecurrenceRule(start="2026-01-01"),
            usage="Gym",
        )
        linked_sandbox.identity.assign_repeated_transactions(DEFAULT_USERNAME, [rtx])
        return rtx

    def test_create_adds_repeated_transaction(self, linked_sandbox: Sandbox, account_id: int):
        params = _params(account_id, type=TransferType.RECURRING, schedule=RecurrenceRule(start="2026-11-01"))
        order = linked_sandbox.transfers.create_transfer_from_account(DEFAULT_USER_ID, params)

        transfer = _authorize(linked_sandbox, order.transfer)

        assert transfer.state == TransferState.SUCCEEDED
        assert linked_sandbox.store.recurring_transfers.get(transfer.id) is not None
        assert linked_sandbox.store.transfers.get(transfer.id) is None
        created = linked_sandbox.identity.get_user(DEFAULT_USER_ID).repeated_transactions[-1]
        assert created.schedule == RecurrenceRule(start="2026-11-01")

    def test_update_amends_target(self, linked_sandbox: Sandbox, repeated: RepeatedTransaction):
        params = TransferParams(from_account=0, amount=MoneyAmount(value="75.00"))
        order = linked_sandbox.transfers.create_repeated_transaction_order(
            DEFAULT_USER_ID, repeated.id, params, OrderOp.UPDATE
        )
        assert order.transfer.type == TransferType.RECURRING
        assert order.transfer.from_account == repeated.account_id
        assert order.transfer.usage == "Gym"

        _authorize(linked_sandbox, order.transfer)

        (amended,) = linked_sandbox.identity.get_user(DEFAULT_USER_ID).repeated_transactions
        assert amended.id == repeated.id
        assert amended.amount == MoneyAmount(value="75.00")
        assert amended.schedule == repeated.schedule

    def test_delete_removes_target_once_authorized(self, linked_sandbox: Sandbox, repeated: RepeatedTransaction):
        order = linked_sandbox.transfers.create_repeated_transaction_order(
            DEFAULT_USER_ID, repeated.id, TransferParams(from_account=0), OrderOp.DELETE
        )
        assert linked_sandbox.identity.get_user(DEFAULT_USER_ID).repeated_transactions == [repeated]

        _authorize(linked_sandbox, order.transfer)

        assert linked_sandbox.identity.get_user(DEFAULT_USER_ID).repeated_transactions == []

    def test_failed_delete_keeps_target(self, linked_sandbox: Sandbox, repeated: RepeatedTransaction):
        order = linked_sandbox.transfers.create_repeated_transaction_order(
            DEFAULT_USER_ID, repeated.id, TransferParams(from_account=0), OrderOp.DELETE
        )

        _authorize(linked_sandbox, order.transfer, tan="0000")

        assert linked_sandbox.identity.get_user(DEFAULT_USER_ID).repeated_transactions == [repeated]

    def test_caller_params_untouched(self, linked_sandbox: Sandbox, repeated: RepeatedTransaction):
        params = TransferParams(from_account=0, amount=MoneyAmount(value="75.00"))

        order = linked_sandbox.transfers.create_repeated_transaction_order(
            DEFAULT_USER_ID, repeated.id, params, OrderOp.UPDATE
        )

        assert order.transfer.from_account == repeated.account_id
        assert params == TransferParams(from_account=0, amount=MoneyAmount(value="75.00"))
        assert params.type == TransferType.REGULAR
        assert params.usage == ""

    def test_unknown_repeated_transaction(self, linked_sandbox: Sandbox):
        with pytest.raises(ResourceNotFoundError):
            linked_sandbox.transfers.create_repeated_transaction_order(
                DEFAULT_USER_ID, 999999, TransferParams(from_account=0), OrderOp.DELETE
            )
