"""Transfer engine - authorizes one-off and recurring transfers intent by intent"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from sandbox_bank.domain.catalog import AccessCatalog
from sandbox_bank.domain.challenges import (
    CHALLENGE_AUTH_METHOD,
    CHALLENGE_PIN,
    CHALLENGE_TAN,
    combine_answers,
    is_answered,
    values_for,
)
from sandbox_bank.domain.exceptions import AuthenticationError, ResourceNotFoundError
from sandbox_bank.domain.identity import IdentityStore
from sandbox_bank.domain.models import (
    TAN_TYPE_MOBILE,
    AuthMethod,
    ChallengeAnswer,
    MoneyAmount,
    OrderOp,
    Problem,
    RepeatedTransaction,
    Transaction,
    Transfer,
    TransferIntent,
    TransferOrder,
    TransferParams,
    TransferState,
    TransferStep,
    TransferStepData,
    TransferType,
)
from sandbox_bank.domain.problems import (
    FI_ACCOUNT_BLOCKED,
    FI_INVALID_LOGINNAME_PIN,
    INTENTS_MISMATCH,
    RESOURCE_NOT_FOUND,
    VERSIONS_MISMATCH,
    state_unprocessable,
)
from sandbox_bank.infrastructure.observability.logging import (
    log_transfer_progress,
    log_transfer_rejected,
)
from sandbox_bank.infrastructure.observability.metrics import (
    record_transfer_rejection,
    record_transfer_transition,
)
from sandbox_bank.infrastructure.store.memory import Store
from sandbox_bank.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class TransferEvent(str, Enum):
    """Outcome of evaluating the answers against the current intent"""

    SIMILAR_CHECK_REQUIRED = "similar_check_required"
    CREDENTIALS_REQUESTED = "credentials_requested"
    CREDENTIALS_PRESUPPLIED = "credentials_presupplied"
    SIMILAR_CONFIRMED = "similar_confirmed"
    PIN_ACCEPTED = "pin_accepted"
    PIN_REJECTED = "pin_rejected"
    AUTH_METHOD_SELECTED = "auth_method_selected"
    AUTH_METHOD_REJECTED = "auth_method_rejected"
    TAN_ACCEPTED = "tan_accepted"
    TAN_REJECTED = "tan_rejected"


@dataclass(frozen=True)
class Transition:
    next_intent: TransferIntent
    next_state: TransferState = TransferState.ONGOING
    clear_errors: bool = False
    problem: Optional[str] = None
    # Evaluate the next intent within the same round-trip
    chain: bool = False


TRANSITIONS: Dict[Tuple[TransferIntent, TransferEvent], Transition] = {
    (TransferIntent.INIT, TransferEvent.SIMILAR_CHECK_REQUIRED): Transition(
        TransferIntent.CONFIRM_SIMILAR_TRANSFER,
    ),
    (TransferIntent.INIT, TransferEvent.CREDENTIALS_REQUESTED): Transition(
        TransferIntent.PROVIDE_CREDENTIALS,
    ),
    (TransferIntent.INIT, TransferEvent.CREDENTIALS_PRESUPPLIED): Transition(
        TransferIntent.PROVIDE_CREDENTIALS, chain=True,
    ),
    (TransferIntent.CONFIRM_SIMILAR_TRANSFER, TransferEvent.SIMILAR_CONFIRMED): Transition(
        TransferIntent.PROVIDE_CREDENTIALS, clear_errors=True,
    ),
    (TransferIntent.PROVIDE_CREDENTIALS, TransferEvent.PIN_ACCEPTED): Transition(
        TransferIntent.SELECT_AUTH_METHOD, clear_errors=True,
    ),
    (TransferIntent.PROVIDE_CREDENTIALS, TransferEvent.PIN_REJECTED): Transition(
        TransferIntent.PROVIDE_CREDENTIALS, problem=FI_INVALID_LOGINNAME_PIN,
    ),
    (TransferIntent.SELECT_AUTH_METHOD, TransferEvent.AUTH_METHOD_SELECTED): Transition(
        TransferIntent.PROVIDE_CHALLENGE_ANSWER, clear_errors=True,
    ),
    (TransferIntent.SELECT_AUTH_METHOD, TransferEvent.AUTH_METHOD_REJECTED): Transition(
        TransferIntent.SELECT_AUTH_METHOD, TransferState.FAILED, problem=FI_ACCOUNT_BLOCKED,
    ),
    (TransferIntent.PROVIDE_CHALLENGE_ANSWER, TransferEvent.TAN_ACCEPTED): Transition(
        TransferIntent.PROVIDE_CHALLENGE_ANSWER, TransferState.SUCCEEDED, clear_errors=True,
    ),
    (TransferIntent.PROVIDE_CHALLENGE_ANSWER, TransferEvent.TAN_REJECTED): Transition(
        TransferIntent.PROVIDE_CHALLENGE_ANSWER, TransferState.FAILED, problem=FI_ACCOUNT_BLOCKED,
    ),
}

Evaluation = Tuple[TransferEvent, Optional[TransferStepData]]


class TransferEngine:
    """
    Transfer authorization state machine.

    Intent sequence:
        transfer_init -> [confirm_similar_transfer] -> provide_credentials
        -> select_auth_method -> provide_challenge_answer -> succeeded

    Only provide_credentials may be retried. A bad auth method or TAN fails the
    order terminally. Every accepted round increments the order's version.
    """

    def __init__(
        self,
        store: Store,
        catalog: AccessCatalog,
        identity: IdentityStore,
        confirm_similar: bool = False,
    ):
        self.store = store
        self.catalog = catalog
        self.identity = identity
        self.confirm_similar = confirm_similar
        self._evaluators: Dict[TransferIntent, Callable[[TransferOrder, List[ChallengeAnswer]], Evaluation]] = {
            TransferIntent.INIT: self._evaluate_init,
            TransferIntent.CONFIRM_SIMILAR_TRANSFER: self._evaluate_confirm_similar,
            TransferIntent.PROVIDE_CREDENTIALS: self._evaluate_credentials,
            TransferIntent.SELECT_AUTH_METHOD: self._evaluate_auth_method,
            TransferIntent.PROVIDE_CHALLENGE_ANSWER: self._evaluate_challenge_answer,
        }

    # Creation

    def create_transfer(
        self,
        user_id: str,
        provider_id: str,
        params: TransferParams,
        operation: OrderOp = OrderOp.CREATE,
        repeated_transaction_id: int | None = None,
    ) -> TransferOrder:
        """
        Open a transfer order against a provider and run its first round.

        An unknown provider yields an order that is already failed with
        resource_not_found.
        """
        transfer = Transfer(
            id=self.store.ids.next_str(),
            type=params.type,
            from_account=params.from_account,
            to=params.to,
            amount=params.amount,
            schedule=params.schedule,
            usage=params.usage,
        )
        order = TransferOrder(
            user_id=user_id,
            transfer=transfer,
            operation=operation,
            confirm_similar=self.confirm_similar,
            repeated_transaction_id=repeated_transaction_id,
        )

        table = self.store.transfer_table(params.type)
        with table.locked(order.id):
            details = self.catalog.get(provider_id)
            if details is None:
                transfer.state = TransferState.FAILED
                transfer.errors.append(Problem(code=RESOURCE_NOT_FOUND))
                record_transfer_transition(transfer.type.value, None, transfer.state.value)
                logger.warning(
                    "Transfer opened against unknown provider",
                    extra={"transfer_id": transfer.id, "provider_id": provider_id},
                )
            else:
                order.access_details = details
                transfer.state = TransferState.ONGOING
                transfer.step = TransferStep(intent=TransferIntent.INIT)
                self.progress_transfer(order, False, params.challenge_answers)
            table.set(order.id, order)

        return order

    def create_transfer_from_account(self, user_id: str, params: TransferParams) -> TransferOrder:
        """
        Open an order debiting one of the user's accounts.

        Raises:
            ResourceNotFoundError: The source account is not linked for this user
        """
        user = self.identity.require_user(user_id)
        access = user.find_account(params.from_account)
        if access is None:
            raise ResourceNotFoundError(f"account {params.from_account} not found")
        return self.create_transfer(user_id, access.provider_id, params)

    def create_repeated_transaction_order(
        self,
        user_id: str,
        repeated_transaction_id: int,
        params: TransferParams,
        operation: OrderOp,
    ) -> TransferOrder:
        """
        Open a recurring-transfer order that amends or cancels a repeated transaction.

        The source account always comes from the repeated transaction. For updates,
        fields the caller leaves empty keep their current values; for deletes all
        of them do.

        Raises:
            ResourceNotFoundError: Unknown repeated transaction or unlinked account
        """
        user = self.identity.require_user(user_id)
        rtx = next((r for r in user.repeated_transactions if r.id == repeated_transaction_id), None)
        if rtx is None:
            raise ResourceNotFoundError(f"repeated transaction {repeated_transaction_id} not found")
        access = user.find_account(rtx.account_id)
        if access is None:
            raise ResourceNotFoundError(f"account {rtx.account_id} not found")

        if operation == OrderOp.DELETE:
            amount, to, schedule, usage = rtx.amount, rtx.counterparty, rtx.schedule, rtx.usage
        else:
            amount = params.amount or rtx.amount
            to = params.to if (params.to.name or params.to.iban) else rtx.counterparty
            schedule = params.schedule or rtx.schedule
            usage = params.usage or rtx.usage
        params = replace(
            params,
            type=TransferType.RECURRING,
            from_account=rtx.account_id,
            amount=amount,
            to=to,
            schedule=schedule,
            usage=usage,
        )

        return self.create_transfer(
            user_id,
            access.provider_id,
            params,
            operation=operation,
            repeated_transaction_id=rtx.id,
        )

    # Processing

    def get_order(self, transfer_id: str, transfer_type: TransferType, user_id: str | None = None) -> TransferOrder:
        """
        Raises:
            ResourceNotFoundError: Unknown transfer ID for this type
            AuthenticationError: Order belongs to another user
        """
        order = self.store.transfer_table(transfer_type).get(transfer_id)
        if order is None:
            raise ResourceNotFoundError(f"transfer {transfer_id} not found")
        if user_id is not None and order.user_id != user_id:
            raise AuthenticationError("authentication_failed")
        return order

    def process_transfer(
        self,
        transfer_id: str,
        transfer_type: TransferType,
        user_id: str,
        intent: str | None,
        version: int,
        confirm: bool = False,
        answers: List[ChallengeAnswer] | None = None,
    ) -> Transfer:
        """
        Advance an order by one submission.

        The order's lock is held from the checks through write-back, so of two
        submissions carrying the same version only the first is accepted.
        Rejections leave the stored order untouched; the returned representation
        carries the rejection code appended to its errors.
        """
        table = self.store.transfer_table(transfer_type)
        self.get_order(transfer_id, transfer_type, user_id)
        with table.locked(transfer_id):
            order = self.get_order(transfer_id, transfer_type, user_id)

            code = self._rejection(order, intent, version)
            if code is not None:
                record_transfer_rejection(code)
                log_transfer_rejected(order.id, code, order.transfer.version, _intent_value(order.transfer.step.intent))
                order.transfer.errors.append(Problem(code=code))
                return order.transfer

            self.progress_transfer(order, confirm, answers or [])
            table.set(order.id, order)
            return order.transfer

    def _rejection(self, order: TransferOrder, intent: str | None, version: int) -> Optional[str]:
        transfer = order.transfer
        if version != transfer.version:
            return VERSIONS_MISMATCH
        if intent != _intent_value(transfer.step.intent):
            return INTENTS_MISMATCH
        if transfer.state != TransferState.ONGOING:
            return state_unprocessable(transfer.state)
        return None

    def progress_transfer(self, order: TransferOrder, confirm: bool, answers: List[ChallengeAnswer]) -> None:
        """
        Run one authorization round on an order in place.

        Submitted answers are combined with the user's remembered answers for
        the provider, then the current intent is evaluated against the
        transition table. Chained transitions are evaluated in the same round.
        """
        transfer = order.transfer
        details = order.access_details
        if details is None or transfer.state != TransferState.ONGOING or transfer.step.intent is None:
            return

        combined = combine_answers(answers, self.identity.stored_answers(order.user_id, details.provider_id))
        from_intent = transfer.step.intent

        while True:
            event, data = self._evaluators[transfer.step.intent](order, combined)
            transition = TRANSITIONS[(transfer.step.intent, event)]
            self._apply(transfer, transition, data)
            if not transition.chain:
                break

        transfer.version += 1

        if transfer.state == TransferState.SUCCEEDED:
            self._settle(order)

        record_transfer_transition(transfer.type.value, _intent_value(transfer.step.intent), transfer.state.value)
        log_transfer_progress(
            transfer.id,
            order.user_id,
            from_intent.value,
            _intent_value(transfer.step.intent),
            transfer.state.value,
            transfer.version,
            confirm,
        )

    @staticmethod
    def _apply(transfer: Transfer, transition: Transition, data: Optional[TransferStepData]) -> None:
        if transition.clear_errors:
            transfer.errors = []
        if transition.problem:
            transfer.errors.append(Problem(code=transition.problem))
        transfer.state = transition.next_state
        ongoing = transition.next_state == TransferState.ONGOING
        transfer.step = TransferStep(intent=transition.next_intent, data=data if ongoing else None)

    # Evaluators: one per intent, each returns the event and the step data to publish

    def _evaluate_init(self, order: TransferOrder, answers: List[ChallengeAnswer]) -> Evaluation:
        if order.confirm_similar:
            return TransferEvent.SIMILAR_CHECK_REQUIRED, None
        if answers:
            return TransferEvent.CREDENTIALS_PRESUPPLIED, None
        return TransferEvent.CREDENTIALS_REQUESTED, None

    def _evaluate_confirm_similar(self, order: TransferOrder, answers: List[ChallengeAnswer]) -> Evaluation:
        return TransferEvent.SIMILAR_CONFIRMED, None

    def _evaluate_credentials(self, order: TransferOrder, answers: List[ChallengeAnswer]) -> Evaluation:
        expected = order.access_details.challenge_map.get(CHALLENGE_PIN)
        if expected is None or not is_answered(answers, CHALLENGE_PIN, expected):
            return TransferEvent.PIN_REJECTED, None

        data = TransferStepData(
            tan_type=TAN_TYPE_MOBILE,
            auth_methods=[AuthMethod(id=ta.method) for ta in order.access_details.transfer_auths],
        )
        return TransferEvent.PIN_ACCEPTED, data

    def _evaluate_auth_method(self, order: TransferOrder, answers: List[ChallengeAnswer]) -> Evaluation:
        for value in values_for(answers, CHALLENGE_AUTH_METHOD):
            for auth in order.access_details.transfer_auths:
                if auth.method == value:
                    order.selected_auth_method = auth.method
                    return TransferEvent.AUTH_METHOD_SELECTED, TransferStepData(challenge_message=auth.message)
        return TransferEvent.AUTH_METHOD_REJECTED, None

    def _evaluate_challenge_answer(self, order: TransferOrder, answers: List[ChallengeAnswer]) -> Evaluation:
        auth = next(
            (ta for ta in order.access_details.transfer_auths if ta.method == order.selected_auth_method),
            None,
        )
        if auth is not None and is_answered(answers, CHALLENGE_TAN, auth.answer):
            return TransferEvent.TAN_ACCEPTED, None
        return TransferEvent.TAN_REJECTED, None

    # Settlement

    def _settle(self, order: TransferOrder) -> None:
        """Stamp settlement dates and apply the order's effect to the user's records"""
        transfer = order.transfer
        now = utcnow()
        transfer.entry_date = now
        transfer.settlement_date = now

        access_id = order.access_details.access.id
        amount = transfer.amount or MoneyAmount(value="0.00")

        with self.store.users.locked(order.user_id):
            user = self.identity.get_user(order.user_id)
            if user is None:
                return

            if transfer.type == TransferType.REGULAR:
                user.transactions.append(
                    Transaction(
                        id=self.store.ids.next(),
                        access_id=access_id,
                        account_id=transfer.from_account,
                        amount=amount,
                        counterparty=transfer.to,
                        usage=transfer.usage,
                        entry_date=now,
                    )
                )
            elif order.operation == OrderOp.CREATE:
                user.repeated_transactions.append(
                    RepeatedTransaction(
                        id=self.store.ids.next(),
                        access_id=access_id,
                        account_id=transfer.from_account,
                        amount=amount,
                        counterparty=transfer.to,
                        schedule=transfer.schedule,
                        usage=transfer.usage,
                    )
                )
            elif order.operation == OrderOp.UPDATE:
                for rtx in user.repeated_transactions:
                    if rtx.id == order.repeated_transaction_id:
                        rtx.amount = amount
                        rtx.counterparty = transfer.to
                        rtx.schedule = transfer.schedule
                        rtx.usage = transfer.usage
            elif order.operation == OrderOp.DELETE:
                user.repeated_transactions = [
                    r for r in user.repeated_transactions if r.id != order.repeated_transaction_id
                ]

            self.identity.set_user(user)


def _intent_value(intent: Optional[TransferIntent]) -> Optional[str]:
    return intent.value if intent is not None else None
