"""Domain models - pure Python dataclasses representing sandbox entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class JobStage(str, Enum):
    """Authorization stage of an access-linking job"""

    UNAUTHENTICATED = "unauthenticated"
    CHALLENGE = "challenge"
    IMPORTED = "imported"
    PROBLEM = "problem"


class JobAction(str, Enum):
    CREATE = "create"
    REFRESH = "refresh"


class TransferIntent(str, Enum):
    """Step identifier within a transfer's authorization sequence"""

    INIT = "transfer_init"
    CONFIRM_SIMILAR_TRANSFER = "confirm_similar_transfer"
    PROVIDE_CREDENTIALS = "provide_credentials"
    SELECT_AUTH_METHOD = "select_auth_method"
    PROVIDE_CHALLENGE_ANSWER = "provide_challenge_answer"


class TransferState(str, Enum):
    ONGOING = "ongoing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TransferType(str, Enum):
    REGULAR = "regular"
    RECURRING = "recurring"


class OrderOp(str, Enum):
    """What a transfer order does to the user's records once it succeeds"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


TAN_TYPE_MOBILE = "mobile"


@dataclass
class ChallengeAnswer:
    """Answer to one named challenge; store=True asks for it to be remembered"""

    id: str
    value: str
    store: bool = False


@dataclass
class Problem:
    """Structured error/diagnostic attached to a job or transfer"""

    code: str
    payload: Dict[str, str] = field(default_factory=dict)


@dataclass
class MoneyAmount:
    value: str
    currency: str = "EUR"


@dataclass
class TransferAddress:
    name: str = ""
    iban: str = ""


@dataclass
class RecurrenceRule:
    start: str
    frequency: str = "monthly"
    interval: int = 1
    until: Optional[str] = None


@dataclass
class Account:
    """Bank account released to the user when an access is imported"""

    id: int
    provider_id: str
    access_id: int
    name: str
    type: str = "bank"
    number: str = ""
    iban: str = ""
    currency: str = "EUR"
    balance: str = "0.00"
    enabled: bool = True


@dataclass
class Access:
    """Linked bank connection, identified by provider"""

    id: int
    provider_id: str
    name: str
    enabled: bool = True
    accounts: List[Account] = field(default_factory=list)


@dataclass
class Transaction:
    id: int
    access_id: int
    account_id: int
    amount: MoneyAmount
    counterparty: TransferAddress = field(default_factory=TransferAddress)
    usage: str = ""
    entry_date: Optional[datetime] = None


@dataclass
class RepeatedTransaction:
    id: int
    access_id: int
    account_id: int
    amount: MoneyAmount
    counterparty: TransferAddress = field(default_factory=TransferAddress)
    schedule: Optional[RecurrenceRule] = None
    usage: str = ""


@dataclass
class TransferAuth:
    """One authentication method offered during transfer authorization"""

    method: str
    message: str
    answer: str


@dataclass
class AccessDetails:
    """Administrator-configured ground truth for one provider"""

    access: Access
    challenge_map: Dict[str, str] = field(default_factory=dict)
    transactions: List[Transaction] = field(default_factory=list)
    scheduled_transactions: List[Transaction] = field(default_factory=list)
    repeated_transactions: List[RepeatedTransaction] = field(default_factory=list)
    transfer_auths: List[TransferAuth] = field(default_factory=list)
    stage_problems: Dict[JobStage, List[Problem]] = field(default_factory=dict)

    @property
    def provider_id(self) -> str:
        return self.access.provider_id


@dataclass
class Developer:
    id: str


@dataclass
class Application:
    id: str
    developer_id: str


@dataclass
class User:
    id: str
    username: str
    password: str
    application_id: str
    accesses: List[Access] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    scheduled_transactions: List[Transaction] = field(default_factory=list)
    repeated_transactions: List[RepeatedTransaction] = field(default_factory=list)
    # Remembered challenge answers indexed by provider ID
    stored_answers: Dict[str, List[ChallengeAnswer]] = field(default_factory=dict)

    def find_account(self, account_id: int) -> Optional[Access]:
        """Return the access owning the given account, if any"""
        for access in self.accesses:
            for account in access.accounts:
                if account.id == account_id:
                    return access
        return None


@dataclass
class Job:
    """One access-linking or access-refresh attempt"""

    id: str
    user_id: str
    provider_id: str
    action: JobAction = JobAction.CREATE
    stage: JobStage = JobStage.UNAUTHENTICATED
    supplied_answers: List[ChallengeAnswer] = field(default_factory=list)
    access_details: Optional[AccessDetails] = None
    finished: bool = False
    needs_answers: bool = False
    problems: List[Problem] = field(default_factory=list)

    @property
    def uri(self) -> str:
        return f"/jobs/{self.id}"


@dataclass
class AuthMethod:
    id: str


@dataclass
class TransferStepData:
    tan_type: Optional[str] = None
    auth_methods: List[AuthMethod] = field(default_factory=list)
    challenge_message: Optional[str] = None


@dataclass
class TransferStep:
    intent: Optional[TransferIntent] = None
    data: Optional[TransferStepData] = None


@dataclass
class TransferParams:
    """Client-supplied parameters for a new transfer order"""

    from_account: int
    type: TransferType = TransferType.REGULAR
    to: TransferAddress = field(default_factory=TransferAddress)
    amount: Optional[MoneyAmount] = None
    schedule: Optional[RecurrenceRule] = None
    usage: str = ""
    challenge_answers: List[ChallengeAnswer] = field(default_factory=list)


@dataclass
class Transfer:
    id: str
    type: TransferType = TransferType.REGULAR
    state: TransferState = TransferState.ONGOING
    version: int = 0
    step: TransferStep = field(default_factory=TransferStep)
    errors: List[Problem] = field(default_factory=list)
    from_account: int = 0
    to: TransferAddress = field(default_factory=TransferAddress)
    amount: Optional[MoneyAmount] = None
    schedule: Optional[RecurrenceRule] = None
    usage: str = ""
    entry_date: Optional[datetime] = None
    settlement_date: Optional[datetime] = None


@dataclass
class TransferOrder:
    """One transfer or recurring-transfer authorization"""

    user_id: str
    transfer: Transfer
    operation: OrderOp = OrderOp.CREATE
    access_details: Optional[AccessDetails] = None
    confirm_similar: bool = False
    repeated_transaction_id: Optional[int] = None
    selected_auth_method: Optional[str] = None

    @property
    def id(self) -> str:
        return self.transfer.id

    @property
    def type(self) -> TransferType:
        return self.transfer.type
