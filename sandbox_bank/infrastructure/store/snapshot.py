"""Whole-store snapshot export/import as an ordered stream of JSON documents"""

import logging
from pathlib import Path
from typing import Any, Dict, List, TextIO, Tuple

from pydantic import TypeAdapter, ValidationError

from sandbox_bank.domain.exceptions import SnapshotError
from sandbox_bank.domain.models import (
    AccessDetails,
    Application,
    Developer,
    Job,
    TransferOrder,
    User,
)
from sandbox_bank.infrastructure.store.memory import Store

logger = logging.getLogger(__name__)

# Document order is part of the format
SECTIONS: List[Tuple[str, TypeAdapter]] = [
    ("developers", TypeAdapter(Dict[str, Developer])),
    ("applications", TypeAdapter(Dict[str, Application])),
    ("users", TypeAdapter(Dict[str, User])),
    ("tokens", TypeAdapter(Dict[str, str])),
    ("jobs", TypeAdapter(Dict[str, Job])),
    ("accesses", TypeAdapter(Dict[str, AccessDetails])),
    ("transfers", TypeAdapter(Dict[str, TransferOrder])),
    ("recurring_transfers", TypeAdapter(Dict[str, TransferOrder])),
]


def write_state(store: Store, stream: TextIO) -> None:
    """Write every table to stream, one JSON document per line"""
    for name, adapter in SECTIONS:
        table = getattr(store, name)
        stream.write(adapter.dump_json(table.snapshot()).decode("utf-8"))
        stream.write("\n")


def read_state(store: Store, stream: TextIO) -> None:
    """
    Replace the store's contents with the documents read from stream.

    All documents are decoded before any table is touched, so a malformed
    snapshot leaves the store as it was. The ID sequence is advanced past
    every ID found.

    Raises:
        SnapshotError: Missing or invalid document
    """
    documents = [line for line in stream.read().splitlines() if line.strip()]
    if len(documents) != len(SECTIONS):
        raise SnapshotError(f"expected {len(SECTIONS)} documents, got {len(documents)}")

    decoded: Dict[str, Dict[str, Any]] = {}
    for (name, adapter), document in zip(SECTIONS, documents):
        try:
            decoded[name] = adapter.validate_json(document)
        except ValidationError as e:
            raise SnapshotError(f"invalid {name} document: {e}") from e

    for name, rows in decoded.items():
        getattr(store, name).replace(rows)
    store.ids.advance_past(_highest_id(decoded))

    logger.info(
        "Snapshot imported",
        extra={name: len(rows) for name, rows in decoded.items()},
    )


def save_snapshot(store: Store, path: str | Path) -> None:
    with Path(path).open("w", encoding="utf-8") as f:
        write_state(store, f)


def load_snapshot(store: Store, path: str | Path) -> bool:
    """Import a snapshot file if it exists; returns whether anything was read"""
    path = Path(path)
    if not path.exists():
        return False
    with path.open("r", encoding="utf-8") as f:
        read_state(store, f)
    return True


def _highest_id(decoded: Dict[str, Dict[str, Any]]) -> int:
    seen = [0]
    for name in ("users", "tokens", "jobs", "transfers", "recurring_transfers"):
        seen.extend(_parse_hex(key) for key in decoded[name])

    accesses = [details.access for details in decoded["accesses"].values()]
    for user in decoded["users"].values():
        accesses.extend(user.accesses)
        seen.extend(t.id for t in user.transactions)
        seen.extend(t.id for t in user.scheduled_transactions)
        seen.extend(t.id for t in user.repeated_transactions)
    for access in accesses:
        seen.append(access.id)
        seen.extend(account.id for account in access.accounts)

    return max(seen)


def _parse_hex(value: str) -> int:
    try:
        return int(value, 16)
    except ValueError:
        return 0
