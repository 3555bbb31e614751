"""Access catalog: administrator-supplied provider templates"""

import logging
from typing import Optional

from sandbox_bank.domain.models import Access, AccessDetails, Account
from sandbox_bank.infrastructure.store.memory import Store

logger = logging.getLogger(__name__)


class AccessCatalog:
    """Repository of AccessDetails indexed by provider ID"""

    def __init__(self, store: Store):
        self.store = store

    def add_access(self, details: AccessDetails) -> None:
        """Register (or replace) the ground truth for a provider"""
        self.store.accesses.set(details.provider_id, details)
        logger.info(
            "Access configured",
            extra={
                "provider_id": details.provider_id,
                "challenges": sorted(details.challenge_map),
                "transfer_auths": [ta.method for ta in details.transfer_auths],
            },
        )

    def get(self, provider_id: str) -> Optional[AccessDetails]:
        return self.store.accesses.get(provider_id)

    def make_access(self, provider_id: str, name: str) -> Access:
        """
        Build an access with a single fixture bank account.

        Access and account IDs come from the shared ID sequence.
        """
        access_id = self.store.ids.next()
        return Access(
            id=access_id,
            provider_id=provider_id,
            name=name,
            accounts=[
                Account(
                    id=self.store.ids.next(),
                    provider_id=provider_id,
                    access_id=access_id,
                    name="Account 1",
                    number="704357300",
                    iban="DE75524206009411376450",
                    currency="EUR",
                    balance="971.20",
                )
            ],
        )
