"""Default developer, application, user and provider seeded into a fresh sandbox"""

from sandbox_bank.domain.challenges import CHALLENGE_LOGIN, CHALLENGE_PIN
from sandbox_bank.domain.models import AccessDetails, MoneyAmount, Transaction, TransferAddress, TransferAuth
from sandbox_bank.sandbox import Sandbox

DEFAULT_DEVELOPER_ID = "default-dev"
DEFAULT_APPLICATION_ID = "default-app"
DEFAULT_USER_ID = "default-user"
DEFAULT_USERNAME = "username@example.com"
DEFAULT_PASSWORD = "password"
DEFAULT_PROVIDER_ID = "def-provider-id"
DEFAULT_ACCESS_LOGIN = "user"
DEFAULT_ACCESS_PIN = "1234"
DEFAULT_AUTH_METHOD = "901"
DEFAULT_AUTH_MESSAGE = "enter 4321 as tan"
DEFAULT_AUTH_ANSWER = "4321"


def default_access_details(sandbox: Sandbox, provider_id: str = DEFAULT_PROVIDER_ID) -> AccessDetails:
    """Provider requiring login + PIN, offering one TAN method, with one booked transaction"""
    access = sandbox.catalog.make_access(provider_id, "default access")
    account = access.accounts[0]
    return AccessDetails(
        access=access,
        challenge_map={
            CHALLENGE_LOGIN: DEFAULT_ACCESS_LOGIN,
            CHALLENGE_PIN: DEFAULT_ACCESS_PIN,
        },
        transactions=[
            Transaction(
                id=sandbox.store.ids.next(),
                access_id=access.id,
                account_id=account.id,
                amount=MoneyAmount(value="-42.00"),
                counterparty=TransferAddress(name="Supermarket", iban="DE89370400440532013000"),
                usage="Groceries",
            )
        ],
        transfer_auths=[
            TransferAuth(
                method=DEFAULT_AUTH_METHOD,
                message=DEFAULT_AUTH_MESSAGE,
                answer=DEFAULT_AUTH_ANSWER,
            )
        ],
    )


def seed_defaults(sandbox: Sandbox) -> Sandbox:
    sandbox.identity.add_developer(DEFAULT_DEVELOPER_ID)
    sandbox.identity.add_application(DEFAULT_APPLICATION_ID, DEFAULT_DEVELOPER_ID)
    sandbox.identity.add_user(
        DEFAULT_USERNAME,
        DEFAULT_PASSWORD,
        DEFAULT_APPLICATION_ID,
        user_id=DEFAULT_USER_ID,
    )
    sandbox.catalog.add_access(default_access_details(sandbox))
    return sandbox


def new_with_defaults(confirm_similar: bool = False) -> Sandbox:
    """Fresh sandbox with the default developer, application, user and provider"""
    return seed_defaults(Sandbox(confirm_similar=confirm_similar))
