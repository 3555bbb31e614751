"""Pydantic schemas for API request/response validation, plus domain-to-wire mapping"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sandbox_bank.domain.jobs import JobStatus
from sandbox_bank.domain.models import (
    Access,
    Account,
    ChallengeAnswer,
    MoneyAmount,
    Problem,
    RecurrenceRule,
    RepeatedTransaction,
    Transaction,
    Transfer,
    TransferAddress,
    TransferParams,
    TransferType,
)


class ChallengeAnswerSchema(BaseModel):
    """Single challenge answer; store=true remembers it for the provider"""

    id: str = Field(..., min_length=1)
    value: str = ""
    store: bool = False

    def to_domain(self) -> ChallengeAnswer:
        return ChallengeAnswer(id=self.id, value=self.value, store=self.store)


def answers_to_domain(answers: List[ChallengeAnswerSchema]) -> List[ChallengeAnswer]:
    return [a.to_domain() for a in answers]


class ProblemSchema(BaseModel):
    code: str
    payload: Optional[Dict[str, str]] = None


class MoneyAmountSchema(BaseModel):
    value: str
    currency: str = "EUR"


class TransferAddressSchema(BaseModel):
    name: str = ""
    iban: str = ""


class RecurrenceRuleSchema(BaseModel):
    start: str
    frequency: str = "monthly"
    interval: int = 1
    until: Optional[str] = None


# Accesses & jobs


class AddAccessRequest(BaseModel):
    """Request body for POST /v1/accesses"""

    provider_id: str = Field(..., min_length=1)
    challenge_answers: List[ChallengeAnswerSchema] = Field(default_factory=list)


class ChallengeAnswersRequest(BaseModel):
    """Request body for PUT /v1/jobs/{id} and POST /v1/accesses/{id}"""

    challenge_answers: List[ChallengeAnswerSchema] = Field(default_factory=list)


class JobResponse(BaseModel):
    """Response for calls that start a job"""

    uri: str


class ChallengeFieldSchema(BaseModel):
    id: str
    previous: Optional[str] = None


class ChallengeSchema(BaseModel):
    next_challenges: List[ChallengeFieldSchema]


class JobAccountSchema(BaseModel):
    id: int
    name: str
    number: str
    iban: str


class JobAccessSchema(BaseModel):
    id: int
    provider_id: str
    name: str
    accounts: List[JobAccountSchema]


class JobStatusResponse(BaseModel):
    """Response for GET/PUT /v1/jobs/{id}"""

    finished: bool
    stage: str
    uri: str
    challenge: Optional[ChallengeSchema] = None
    errors: Optional[List[ProblemSchema]] = None
    access: Optional[JobAccessSchema] = None


class AccountSchema(BaseModel):
    id: int
    provider_id: str
    access_id: int
    name: str
    type: str
    number: str
    iban: str
    currency: str
    balance: str
    enabled: bool


class AccessSchema(BaseModel):
    id: int
    provider_id: str
    name: str
    enabled: bool
    accounts: List[AccountSchema]


class DeletedAccessResponse(BaseModel):
    deleted_access_id: int


# Transactions


class TransactionSchema(BaseModel):
    id: int
    access_id: int
    account_id: int
    amount: MoneyAmountSchema
    counterparty: TransferAddressSchema
    usage: str = ""
    entry_date: Optional[datetime] = None


class RepeatedTransactionSchema(BaseModel):
    id: int
    access_id: int
    account_id: int
    amount: MoneyAmountSchema
    counterparty: TransferAddressSchema
    schedule: Optional[RecurrenceRuleSchema] = None
    usage: str = ""


# Transfers


class CreateTransferRequest(BaseModel):
    """Request body for POST /v1/transfers"""

    model_config = ConfigDict(populate_by_name=True)

    from_account: int = Field(..., alias="from")
    to: TransferAddressSchema = Field(default_factory=TransferAddressSchema)
    amount: Optional[MoneyAmountSchema] = None
    schedule: Optional[RecurrenceRuleSchema] = None
    usage: str = ""
    type: TransferType = TransferType.REGULAR
    challenge_answers: List[ChallengeAnswerSchema] = Field(default_factory=list)

    def to_domain(self) -> TransferParams:
        return TransferParams(
            from_account=self.from_account,
            type=self.type,
            to=TransferAddress(**self.to.model_dump()),
            amount=MoneyAmount(**self.amount.model_dump()) if self.amount else None,
            schedule=RecurrenceRule(**self.schedule.model_dump()) if self.schedule else None,
            usage=self.usage,
            challenge_answers=answers_to_domain(self.challenge_answers),
        )


class RepeatedTransactionOrderRequest(BaseModel):
    """Request body for PUT/DELETE /v1/repeated_transactions/{id}"""

    to: Optional[TransferAddressSchema] = None
    amount: Optional[MoneyAmountSchema] = None
    schedule: Optional[RecurrenceRuleSchema] = None
    usage: str = ""
    challenge_answers: List[ChallengeAnswerSchema] = Field(default_factory=list)

    def to_domain(self) -> TransferParams:
        # Source account is taken from the repeated transaction
        return TransferParams(
            from_account=0,
            type=TransferType.RECURRING,
            to=TransferAddress(**self.to.model_dump()) if self.to else TransferAddress(),
            amount=MoneyAmount(**self.amount.model_dump()) if self.amount else None,
            schedule=RecurrenceRule(**self.schedule.model_dump()) if self.schedule else None,
            usage=self.usage,
            challenge_answers=answers_to_domain(self.challenge_answers),
        )


class ProcessTransferRequest(BaseModel):
    """Request body for POST /v1/transfers/{id}"""

    intent: Optional[str] = None
    version: int = 0
    type: TransferType = TransferType.REGULAR
    confirm: bool = False
    challenge_answers: List[ChallengeAnswerSchema] = Field(default_factory=list)


class AuthMethodSchema(BaseModel):
    id: str


class TransferStepDataSchema(BaseModel):
    tan_type: Optional[str] = None
    auth_methods: Optional[List[AuthMethodSchema]] = None
    challenge_message: Optional[str] = None


class TransferStepSchema(BaseModel):
    intent: Optional[str] = None
    data: Optional[TransferStepDataSchema] = None


class TransferResponse(BaseModel):
    """Full transfer representation"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    state: str
    version: int
    step: TransferStepSchema
    errors: List[ProblemSchema] = Field(default_factory=list)
    from_account: int = Field(..., alias="from")
    to: TransferAddressSchema
    amount: Optional[MoneyAmountSchema] = None
    schedule: Optional[RecurrenceRuleSchema] = None
    usage: str = ""
    entry_date: Optional[datetime] = None
    settlement_date: Optional[datetime] = None


# Mapping functions


def problem_schema(problem: Problem) -> ProblemSchema:
    return ProblemSchema(code=problem.code, payload=dict(problem.payload) or None)


def account_schema(account: Account) -> AccountSchema:
    return AccountSchema(
        id=account.id,
        provider_id=account.provider_id,
        access_id=account.access_id,
        name=account.name,
        type=account.type,
        number=account.number,
        iban=account.iban,
        currency=account.currency,
        balance=account.balance,
        enabled=account.enabled,
    )


def access_schema(access: Access) -> AccessSchema:
    return AccessSchema(
        id=access.id,
        provider_id=access.provider_id,
        name=access.name,
        enabled=access.enabled,
        accounts=[account_schema(a) for a in access.accounts],
    )


def job_status_response(status: JobStatus) -> JobStatusResponse:
    response = JobStatusResponse(
        finished=status.finished,
        stage=status.stage.value,
        uri=status.uri,
    )
    if status.challenges:
        response.challenge = ChallengeSchema(
            next_challenges=[ChallengeFieldSchema(id=c.id, previous=c.previous) for c in status.challenges]
        )
    if status.problems:
        response.errors = [problem_schema(p) for p in status.problems]
    if status.access is not None:
        response.access = JobAccessSchema(
            id=status.access.id,
            provider_id=status.access.provider_id,
            name=status.access.name,
            accounts=[
                JobAccountSchema(id=a.id, name=a.name, number=a.number, iban=a.iban)
                for a in status.access.accounts
            ],
        )
    return response


def transfer_response(transfer: Transfer) -> TransferResponse:
    step = TransferStepSchema(intent=transfer.step.intent.value if transfer.step.intent else None)
    data = transfer.step.data
    if data is not None:
        step.data = TransferStepDataSchema(
            tan_type=data.tan_type,
            auth_methods=[AuthMethodSchema(id=m.id) for m in data.auth_methods] or None,
            challenge_message=data.challenge_message,
        )

    return TransferResponse(
        id=transfer.id,
        type=transfer.type.value,
        state=transfer.state.value,
        version=transfer.version,
        step=step,
        errors=[problem_schema(p) for p in transfer.errors],
        from_account=transfer.from_account,
        to=TransferAddressSchema(name=transfer.to.name, iban=transfer.to.iban),
        amount=MoneyAmountSchema(value=transfer.amount.value, currency=transfer.amount.currency)
        if transfer.amount
        else None,
        schedule=_recurrence_rule_schema(transfer.schedule),
        usage=transfer.usage,
        entry_date=transfer.entry_date,
        settlement_date=transfer.settlement_date,
    )


def _recurrence_rule_schema(rule: Optional[RecurrenceRule]) -> Optional[RecurrenceRuleSchema]:
    if rule is None:
        return None
    return RecurrenceRuleSchema(start=rule.start, frequency=rule.frequency, interval=rule.interval, until=rule.until)


def transaction_schema(transaction: Transaction) -> TransactionSchema:
    return TransactionSchema(
        id=transaction.id,
        access_id=transaction.access_id,
        account_id=transaction.account_id,
        amount=MoneyAmountSchema(value=transaction.amount.value, currency=transaction.amount.currency),
        counterparty=TransferAddressSchema(name=transaction.counterparty.name, iban=transaction.counterparty.iban),
        usage=transaction.usage,
        entry_date=transaction.entry_date,
    )


def repeated_transaction_schema(rtx: RepeatedTransaction) -> RepeatedTransactionSchema:
    return RepeatedTransactionSchema(
        id=rtx.id,
        access_id=rtx.access_id,
        account_id=rtx.account_id,
        amount=MoneyAmountSchema(value=rtx.amount.value, currency=rtx.amount.currency),
        counterparty=TransferAddressSchema(name=rtx.counterparty.name, iban=rtx.counterparty.iban),
        schedule=_recurrence_rule_schema(rtx.schedule),
        usage=rtx.usage,
    )
