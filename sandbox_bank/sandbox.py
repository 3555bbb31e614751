"""Sandbox facade wiring the store, catalog, identity store and both engines"""

from typing import TextIO

from sandbox_bank.domain.catalog import AccessCatalog
from sandbox_bank.domain.identity import IdentityStore
from sandbox_bank.domain.jobs import JobEngine
from sandbox_bank.domain.transfers import TransferEngine
from sandbox_bank.infrastructure.store import snapshot
from sandbox_bank.infrastructure.store.memory import Store


class Sandbox:
    """
    One emulated banking platform.

    Everything shares a single Store so that snapshots capture the whole
    state and engines see users and accesses created through the admin API.
    """

    def __init__(self, store: Store | None = None, confirm_similar: bool = False):
        self.store = store or Store()
        self.catalog = AccessCatalog(self.store)
        self.identity = IdentityStore(self.store)
        self.jobs = JobEngine(self.store, self.catalog, self.identity)
        self.transfers = TransferEngine(self.store, self.catalog, self.identity, confirm_similar=confirm_similar)

    def set_confirm_similar(self, value: bool) -> None:
        """Make subsequently created transfers ask for similar-transfer confirmation"""
        self.transfers.confirm_similar = value

    def write_state(self, stream: TextIO) -> None:
        snapshot.write_state(self.store, stream)

    def read_state(self, stream: TextIO) -> None:
        snapshot.read_state(self.store, stream)
