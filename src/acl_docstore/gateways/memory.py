"""InMemoryGateway — zero-config, dict-backed document store for development and testing."""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from acl_docstore.exceptions import GatewayError, TransactionConflictError
from acl_docstore.gateways.base import Document, DocumentGateway, Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _MemoryTransaction(Transaction):
    def __init__(self, gateway: InMemoryGateway) -> None:
        self._gateway = gateway
        self.reads: dict[str, int] = {}
        self.writes: dict[str, Document | None] = {}

    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        if self.writes:
            raise GatewayError("get_all", "reads must happen before writes in a transaction")
        docs: list[Document | None] = []
        for id in ids:
            self.reads.setdefault(id, self._gateway._versions.get(id, 0))
            docs.append(copy.deepcopy(self._gateway._docs.get(id)))
        return docs

    def set(self, id: str, document: Document) -> None:
        self.writes[id] = copy.deepcopy(document)

    def delete(self, id: str) -> None:
        self.writes[id] = None


class InMemoryGateway(DocumentGateway):
    """In-memory gateway using plain dicts.  Data is lost on process exit.

    Every write bumps a per-id version that outlives deletion, which is what
    transactions validate their reads against.

    Parameters:
        max_attempts: How many times a conflicting transaction is run
                      before :class:`TransactionConflictError` is raised.
    """

    def __init__(self, max_attempts: int = 5) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._docs: dict[str, Document] = {}
        self._versions: dict[str, int] = {}

    # ── DocumentGateway protocol ─────────────────────────────

    async def get_document(self, id: str) -> Document | None:
        return copy.deepcopy(self._docs.get(id))

    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        return [copy.deepcopy(self._docs.get(id)) for id in ids]

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            tx = _MemoryTransaction(self)
            result = await fn(tx)
            # No await between validation and apply, so the pair is atomic
            # with respect to other coroutines.
            if self._validate(tx):
                self._apply(tx)
                return result
            logger.debug("Transaction conflict on attempt %d/%d", attempt, self._max_attempts)
        logger.warning("Transaction aborted after %d conflicting attempts", self._max_attempts)
        raise TransactionConflictError(self._max_attempts)

    async def set_document(self, id: str, document: Document) -> None:
        self._write(id, copy.deepcopy(document))

    async def delete_document(self, id: str) -> None:
        self._write(id, None)

    async def clear(self) -> None:
        for id in list(self._docs):
            self._write(id, None)

    # ── internals ────────────────────────────────────────────

    def _validate(self, tx: _MemoryTransaction) -> bool:
        return all(self._versions.get(id, 0) == version for id, version in tx.reads.items())

    def _apply(self, tx: _MemoryTransaction) -> None:
        for id, document in tx.writes.items():
            self._write(id, document)

    def _write(self, id: str, document: Document | None) -> None:
        if document is None:
            if self._docs.pop(id, None) is None:
                return
        else:
            self._docs[id] = document
        self._versions[id] = self._versions.get(id, 0) + 1
