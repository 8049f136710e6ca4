"""Persistence contract for boxes and their ledger.

The engine only needs a handful of opaque operations; how a store lays
them out is its own business. Every implementation keeps boxes as
documents and turns them into ``Box`` objects through
``box_from_document``, so legacy field normalization happens at this
boundary and nowhere else.

Saves are optimistic: ``save_box`` only succeeds when the stored version
still equals the version the box was loaded with, then bumps it.
``save_box_with_entries`` stores a box together with the ledger entries
its change produced, so the ledger never misses a balance change.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from savings.exceptions import ConcurrentModification
from savings.models import (
    Box,
    BoxTransaction,
    box_from_document,
    box_to_document,
    transaction_from_document,
    transaction_to_document,
)


class BoxRepository(ABC):
    """Abstract store for boxes and the append-only box ledger."""

    @abstractmethod
    async def find_box(self, box_id: str) -> Box | None:
        """Load a box by id, or None if it does not exist."""
        ...

    @abstractmethod
    async def list_boxes(self, family_id: str) -> list[Box]:
        """Load every box of a family, oldest first."""
        ...

    @abstractmethod
    async def save_box(self, box: Box) -> None:
        """Insert or update a box.

        Raises:
            ConcurrentModification: The stored version moved on since load.
        """
        ...

    @abstractmethod
    async def save_box_with_entries(self, box: Box, entries: Sequence[BoxTransaction]) -> None:
        """Save a box and append its new ledger entries as one unit.

        Either the box and every entry are stored, or nothing is.

        Raises:
            ConcurrentModification: The stored version moved on since load.
        """
        ...

    @abstractmethod
    async def delete_box(self, box_id: str) -> None:
        ...

    @abstractmethod
    async def append_ledger_entry(self, entry: BoxTransaction) -> None:
        ...

    @abstractmethod
    async def list_ledger_entries(self, box_id: str) -> list[BoxTransaction]:
        """Ledger entries of a box in insertion order."""
        ...

    @abstractmethod
    async def delete_ledger_entries_for_box(self, box_id: str) -> int:
        """Remove every ledger entry of a box. Returns how many were removed."""
        ...


class InMemoryBoxRepository(BoxRepository):
    """Process-local repository holding documents in dicts.

    Used as the default backend and in tests.
    """

    def __init__(self) -> None:
        self._boxes: dict[str, dict[str, Any]] = {}
        self._ledger: list[dict[str, Any]] = []
        self._lock = asyncio.Lock()

    async def find_box(self, box_id: str) -> Box | None:
        async with self._lock:
            doc = self._boxes.get(box_id)
            return box_from_document(doc) if doc is not None else None

    async def list_boxes(self, family_id: str) -> list[Box]:
        async with self._lock:
            boxes = [box_from_document(doc) for doc in self._boxes.values() if doc.get("familyId") == family_id]
        return sorted(boxes, key=lambda b: b.created_at)

    async def save_box(self, box: Box) -> None:
        await self.save_box_with_entries(box, [])

    async def save_box_with_entries(self, box: Box, entries: Sequence[BoxTransaction]) -> None:
        async with self._lock:
            stored = self._boxes.get(box.id)
            stored_version = int(stored.get("version", 0)) if stored is not None else 0
            if stored_version != box.version:
                raise ConcurrentModification(
                    f"Box {box.id} changed since it was loaded "
                    f"(expected version {box.version}, found {stored_version})"
                )
            documents = [transaction_to_document(entry) for entry in entries]
            self._check_new_entry_ids(documents)
            box_document = box_to_document(box)
            box_document["version"] = box.version + 1

            box.version += 1
            self._boxes[box.id] = box_document
            self._ledger.extend(documents)

    async def delete_box(self, box_id: str) -> None:
        async with self._lock:
            self._boxes.pop(box_id, None)

    async def append_ledger_entry(self, entry: BoxTransaction) -> None:
        async with self._lock:
            document = transaction_to_document(entry)
            self._check_new_entry_ids([document])
            self._ledger.append(document)

    def _check_new_entry_ids(self, documents: list[dict[str, Any]]) -> None:
        ids = [doc["id"] for doc in documents]
        existing = {doc["id"] for doc in self._ledger}
        if len(set(ids)) != len(ids) or existing.intersection(ids):
            raise ValueError(f"Duplicate ledger entry id in {ids}")

    async def list_ledger_entries(self, box_id: str) -> list[BoxTransaction]:
        async with self._lock:
            return [transaction_from_document(doc) for doc in self._ledger if doc["boxId"] == box_id]

    async def delete_ledger_entries_for_box(self, box_id: str) -> int:
        async with self._lock:
            before = len(self._ledger)
            self._ledger = [doc for doc in self._ledger if doc["boxId"] != box_id]
            return before - len(self._ledger)
