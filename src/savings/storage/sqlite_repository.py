"""SQLite-backed BoxRepository.

Boxes are stored as JSON documents (the same camelCase shape the
in-memory store keeps), with id, family and version lifted into columns
for lookups and the optimistic version check. The version check is a
conditional UPDATE, so it holds across processes sharing the file.

CRITICAL: Monetary values are stored as strings inside the documents and
restored as Decimal on read.
"""

import json
from collections.abc import Sequence

import aiosqlite

from savings.exceptions import ConcurrentModification
from savings.logging import get_logger
from savings.models import (
    Box,
    BoxTransaction,
    box_from_document,
    box_to_document,
    transaction_from_document,
    transaction_to_document,
)
from savings.storage.database import SavingsDatabase
from savings.storage.repository import BoxRepository

logger = get_logger(__name__)


class SqliteBoxRepository(BoxRepository):
    """Async SQLite store for boxes and the box ledger.

    Usage:
        async with SavingsDatabase("data/savings.db") as database:
            repository = SqliteBoxRepository(database)
            box = await repository.find_box(box_id)
    """

    def __init__(self, database: SavingsDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Boxes
    # ──────────────────────────────────────────────

    async def find_box(self, box_id: str) -> Box | None:
        cursor = await self._database.db.execute(
            "SELECT document, version FROM boxes WHERE id = ?", (box_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._to_box(row[0], row[1])

    async def list_boxes(self, family_id: str) -> list[Box]:
        cursor = await self._database.db.execute(
            "SELECT document, version FROM boxes WHERE family_id = ? ORDER BY created_at",
            (family_id,),
        )
        rows = await cursor.fetchall()
        return [self._to_box(document, version) for document, version in rows]

    async def save_box(self, box: Box) -> None:
        await self.save_box_with_entries(box, [])

    async def save_box_with_entries(self, box: Box, entries: Sequence[BoxTransaction]) -> None:
        """Write the box and its entries in one transaction with a single commit."""
        expected = box.version
        box.version = expected + 1
        db = self._database.db

        try:
            cursor = await self._write_box(box, expected)
            if cursor.rowcount != 1:
                raise ConcurrentModification(
                    f"Box {box.id} changed since it was loaded (expected version {expected})"
                )
            for entry in entries:
                await self._insert_entry(entry)
        except Exception:
            await db.rollback()
            box.version = expected
            raise
        await db.commit()

    async def _write_box(self, box: Box, expected: int) -> aiosqlite.Cursor:
        document = json.dumps(box_to_document(box))
        if expected == 0:
            return await self._database.db.execute(
                "INSERT OR IGNORE INTO boxes (id, family_id, version, created_at, document) "
                "VALUES (?, ?, ?, ?, ?)",
                (box.id, box.family_id, box.version, box.created_at.isoformat(), document),
            )
        return await self._database.db.execute(
            "UPDATE boxes SET document = ?, version = ? WHERE id = ? AND version = ?",
            (document, box.version, box.id, expected),
        )

    async def delete_box(self, box_id: str) -> None:
        await self._database.db.execute("DELETE FROM boxes WHERE id = ?", (box_id,))
        await self._database.db.commit()

    # ──────────────────────────────────────────────
    # Ledger
    # ──────────────────────────────────────────────

    async def append_ledger_entry(self, entry: BoxTransaction) -> None:
        try:
            await self._insert_entry(entry)
        except Exception:
            await self._database.db.rollback()
            raise
        await self._database.db.commit()

    async def _insert_entry(self, entry: BoxTransaction) -> None:
        await self._database.db.execute(
            "INSERT INTO box_transactions (id, box_id, document) VALUES (?, ?, ?)",
            (entry.id, entry.box_id, json.dumps(transaction_to_document(entry))),
        )

    async def list_ledger_entries(self, box_id: str) -> list[BoxTransaction]:
        cursor = await self._database.db.execute(
            "SELECT document FROM box_transactions WHERE box_id = ? ORDER BY seq",
            (box_id,),
        )
        rows = await cursor.fetchall()
        return [transaction_from_document(json.loads(row[0])) for row in rows]

    async def delete_ledger_entries_for_box(self, box_id: str) -> int:
        cursor = await self._database.db.execute(
            "DELETE FROM box_transactions WHERE box_id = ?", (box_id,)
        )
        await self._database.db.commit()
        deleted = cursor.rowcount
        logger.debug("deleted_ledger_entries", box_id=box_id, deleted=deleted)
        return deleted

    @staticmethod
    def _to_box(document: str, version: int) -> Box:
        doc = json.loads(document)
        doc["version"] = version
        return box_from_document(doc)
