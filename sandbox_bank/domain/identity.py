"""Identity & credential store: developers, applications, users, tokens, stored answers"""

import logging
from typing import List, Optional

from sandbox_bank.domain.challenges import merge_stored_answers
from sandbox_bank.domain.exceptions import AuthenticationError, UnknownUserError
from sandbox_bank.domain.models import (
    Access,
    AccessDetails,
    Application,
    ChallengeAnswer,
    Developer,
    RepeatedTransaction,
    Transaction,
    User,
)
from sandbox_bank.infrastructure.store.memory import Store

logger = logging.getLogger(__name__)


class IdentityStore:
    """Repository for users and their sessions"""

    def __init__(self, store: Store):
        self.store = store

    def add_developer(self, developer_id: str) -> Developer:
        developer = Developer(id=developer_id)
        self.store.developers.set(developer.id, developer)
        return developer

    def add_application(self, application_id: str, developer_id: str) -> Application:
        app = Application(id=application_id, developer_id=developer_id)
        self.store.applications.set(app.id, app)
        return app

    def add_user(
        self,
        username: str,
        password: str,
        application_id: str,
        user_id: Optional[str] = None,
    ) -> User:
        """Create a user bound to an application"""
        user = User(
            id=user_id or self.store.ids.next_str(),
            username=username,
            password=password,
            application_id=application_id,
        )
        self.set_user(user)
        return user

    def set_user(self, user: User) -> None:
        self.store.users.set(user.id, user)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.store.users.get(user_id)

    def require_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise UnknownUserError(f"unknown user: {user_id}")
        return user

    def get_user_by_name(self, username: str) -> Optional[User]:
        for user in self.store.users.values():
            if user.username == username:
                return user
        return None

    def _require_user_by_name(self, username: str) -> User:
        user = self.get_user_by_name(username)
        if user is None:
            raise UnknownUserError(f"unknown user: {username}")
        return user

    # Sessions

    def issue_token(self, user_id: str) -> str:
        self.require_user(user_id)
        token = self.store.ids.next_str()
        self.store.tokens.set(token, user_id)
        return token

    def revoke_token(self, token: str) -> None:
        self.store.tokens.delete(token)

    def resolve(self, application_id: str | None, token: str | None) -> User:
        """
        Map an application ID and session token to a user.

        Raises:
            AuthenticationError: With the wire code describing which part failed
        """
        if not application_id or self.store.applications.get(application_id) is None:
            raise AuthenticationError("authentication_app_id_invalid")

        user_id = self.store.tokens.get(token) if token else None
        user = self.get_user(user_id) if user_id else None
        if user is None or user.application_id != application_id:
            raise AuthenticationError("authentication_failed")
        return user

    # Stored answers

    def stored_answers(self, user_id: str, provider_id: str) -> List[ChallengeAnswer]:
        user = self.get_user(user_id)
        if user is None:
            return []
        return list(user.stored_answers.get(provider_id, []))

    def update_stored_answers(self, user_id: str, provider_id: str, answers: List[ChallengeAnswer]) -> None:
        """Remember answers flagged store=True, one per challenge ID, last write wins"""
        if not any(a.store for a in answers):
            return
        with self.store.users.locked(user_id):
            user = self.get_user(user_id)
            if user is None:
                return
            user.stored_answers[provider_id] = merge_stored_answers(
                user.stored_answers.get(provider_id, []), answers
            )
            self.set_user(user)
        logger.debug(
            "Stored challenge answers updated",
            extra={"user_id": user_id, "provider_id": provider_id},
        )

    # Records

    def import_access(self, user_id: str, details: AccessDetails) -> None:
        """Release a provider's fixture access, accounts and transactions to a user"""
        with self.store.users.locked(user_id):
            user = self.get_user(user_id)
            if user is None:
                return
            user.accesses.append(details.access)
            user.transactions.extend(details.transactions)
            user.scheduled_transactions.extend(details.scheduled_transactions)
            user.repeated_transactions.extend(details.repeated_transactions)
            self.set_user(user)

    def find_access(self, user_id: str, access_id: int) -> Optional[Access]:
        user = self.get_user(user_id)
        if user is None:
            return None
        return next((a for a in user.accesses if a.id == access_id), None)

    def delete_access(self, user_id: str, access_id: int) -> bool:
        """Remove an access and every transaction booked against it"""
        with self.store.users.locked(user_id):
            user = self.get_user(user_id)
            if user is None or not any(a.id == access_id for a in user.accesses):
                return False
            user.accesses = [a for a in user.accesses if a.id != access_id]
            user.transactions = [t for t in user.transactions if t.access_id != access_id]
            user.scheduled_transactions = [t for t in user.scheduled_transactions if t.access_id != access_id]
            user.repeated_transactions = [t for t in user.repeated_transactions if t.access_id != access_id]
            self.set_user(user)
        return True

    def assign_access(self, username: str, access: Access) -> None:
        """Attach a known access to a user without running a job"""
        user = self._require_user_by_name(username)
        with self.store.users.locked(user.id):
            user = self.require_user(user.id)
            user.accesses.append(access)
            self.set_user(user)

    def assign_transactions(self, username: str, transactions: List[Transaction]) -> None:
        """Overwrite a user's booked transactions"""
        user = self._require_user_by_name(username)
        with self.store.users.locked(user.id):
            user = self.require_user(user.id)
            user.transactions = list(transactions)
            self.set_user(user)

    def assign_repeated_transactions(self, username: str, transactions: List[RepeatedTransaction]) -> None:
        """Overwrite a user's repeated transactions"""
        user = self._require_user_by_name(username)
        with self.store.users.locked(user.id):
            user = self.require_user(user.id)
            user.repeated_transactions = list(transactions)
            self.set_user(user)
