"""SQLiteGateway — durable, single-file document store using aiosqlite."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

try:
    import aiosqlite
except ImportError as exc:
    raise ImportError(
        "SQLiteGateway requires the 'aiosqlite' package. "
        "Install it with: pip install aiosqlite"
    ) from exc

from acl_docstore.exceptions import GatewayError, TransactionConflictError
from acl_docstore.gateways.base import Document, DocumentGateway, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_DB_PATH = "acl_docstore.db"

# ``data`` is NULL for a deleted document; the row is kept so its version
# keeps increasing across delete/re-create.
_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT    NOT NULL,
    id         TEXT    NOT NULL,
    data       TEXT,
    version    INTEGER NOT NULL,
    PRIMARY KEY (collection, id)
)
"""

_SELECT = "SELECT data, version FROM documents WHERE collection = ? AND id = ?"

_UPSERT = """
INSERT INTO documents (collection, id, data, version) VALUES (?, ?, ?, 1)
ON CONFLICT (collection, id)
DO UPDATE SET data = excluded.data, version = documents.version + 1
"""

_DELETE = """
UPDATE documents SET data = NULL, version = version + 1
WHERE collection = ? AND id = ? AND data IS NOT NULL
"""


def _decode(data: str | None) -> Document | None:
    if data is None:
        return None
    document: Document = json.loads(data)
    return document


class _SQLiteTransaction(Transaction):
    def __init__(self, gateway: SQLiteGateway) -> None:
        self._gateway = gateway
        self.reads: dict[str, int] = {}
        self.writes: dict[str, Document | None] = {}

    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        if self.writes:
            raise GatewayError("get_all", "reads must happen before writes in a transaction")
        docs: list[Document | None] = []
        for id in ids:
            data, version = await self._gateway._fetch(id)
            self.reads.setdefault(id, version)
            docs.append(_decode(data))
        return docs

    def set(self, id: str, document: Document) -> None:
        self.writes[id] = dict(document)

    def delete(self, id: str) -> None:
        self.writes[id] = None


class SQLiteGateway(DocumentGateway):
    """Persistent gateway backed by a single SQLite file.

    Parameters:
        db_path:      Path to the SQLite database file.  Falls back to the
                      ``ACL_DOCSTORE_DB`` env var, then ``acl_docstore.db``.
                      Use ``":memory:"`` for an in-memory database.
        collection:   Name partitioning this gateway's documents from other
                      collections in the same file.
        max_attempts: How many times a conflicting transaction is run
                      before :class:`TransactionConflictError` is raised.
    """

    def __init__(
        self,
        db_path: str | None = None,
        *,
        collection: str = "acl",
        max_attempts: int = 5,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._db_path = db_path or os.getenv("ACL_DOCSTORE_DB", DEFAULT_DB_PATH)
        self._collection = collection
        self._max_attempts = max_attempts
        self._db: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()
        # Serializes every statement on the shared connection, so no read or
        # autocommit write ever runs inside another coroutine's open transaction.
        self._lock = asyncio.Lock()
        self._commits: set[asyncio.Task[bool]] = set()

    async def _connect(self) -> aiosqlite.Connection:
        async with self._connect_lock:
            if self._db is None:
                # Autocommit mode: the only transactions are the explicit
                # BEGIN IMMEDIATE blocks in _apply.
                db = await aiosqlite.connect(self._db_path, isolation_level=None)
                await db.execute(_CREATE_TABLE)
                self._db = db
        return self._db

    async def close(self) -> None:
        """Wait for in-flight commits, then close the connection."""
        if self._commits:
            await asyncio.gather(*self._commits, return_exceptions=True)
        if self._db:
            await self._db.close()
            self._db = None

    async def _select(self, db: aiosqlite.Connection, id: str) -> tuple[str | None, int]:
        cursor = await db.execute(_SELECT, (self._collection, id))
        row = await cursor.fetchone()
        if row is None:
            return None, 0
        return row[0], row[1]

    async def _fetch(self, id: str) -> tuple[str | None, int]:
        db = await self._connect()
        async with self._lock:
            return await self._select(db, id)

    # ── DocumentGateway protocol ─────────────────────────────

    async def get_document(self, id: str) -> Document | None:
        data, _ = await self._fetch(id)
        return _decode(data)

    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        return [await self.get_document(id) for id in ids]

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            tx = _SQLiteTransaction(self)
            result = await fn(tx)
            if await self._commit(tx):
                return result
            logger.debug("Transaction conflict on attempt %d/%d", attempt, self._max_attempts)
        logger.warning("Transaction aborted after %d conflicting attempts", self._max_attempts)
        raise TransactionConflictError(self._max_attempts)

    async def set_document(self, id: str, document: Document) -> None:
        db = await self._connect()
        async with self._lock:
            await db.execute(_UPSERT, (self._collection, id, json.dumps(document)))

    async def delete_document(self, id: str) -> None:
        db = await self._connect()
        async with self._lock:
            await db.execute(_DELETE, (self._collection, id))

    async def clear(self) -> None:
        db = await self._connect()
        async with self._lock:
            await db.execute(
                "UPDATE documents SET data = NULL, version = version + 1 "
                "WHERE collection = ? AND data IS NOT NULL",
                (self._collection,),
            )

    # ── internals ────────────────────────────────────────────

    async def _commit(self, tx: _SQLiteTransaction) -> bool:
        """Run :meth:`_apply` to completion even if the caller is cancelled.

        Once submitted, a commit either applies every write or none of them;
        cancelling the caller only stops it from waiting for the outcome.
        """
        task = asyncio.ensure_future(self._apply(tx))
        self._commits.add(task)
        task.add_done_callback(self._commits.discard)
        return await asyncio.shield(task)

    async def _apply(self, tx: _SQLiteTransaction) -> bool:
        """Apply *tx* if none of its reads went stale.  Returns ``False`` on conflict."""
        db = await self._connect()
        async with self._lock:
            try:
                await db.execute("BEGIN IMMEDIATE")
                for id, version in tx.reads.items():
                    _, current = await self._select(db, id)
                    if current != version:
                        await db.execute("ROLLBACK")
                        return False
                for id, document in tx.writes.items():
                    if document is None:
                        await db.execute(_DELETE, (self._collection, id))
                    else:
                        await db.execute(_UPSERT, (self._collection, id, json.dumps(document)))
                await db.execute("COMMIT")
            except BaseException:
                if db.in_transaction:
                    await db.execute("ROLLBACK")
                raise
        return True
