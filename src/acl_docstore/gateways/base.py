"""Gateway protocol — the transactional document store the backend runs on."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from acl_docstore.documents import Document

T = TypeVar("T")


class Transaction(ABC):
    """Handle passed to the function given to :meth:`DocumentGateway.run_transaction`.

    Reads record the version of every document they return; writes are only
    staged and applied by the gateway when the function returns.  All reads
    must happen before the first staged write.
    """

    @abstractmethod
    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        """Snapshot-read *ids*, returning ``None`` for missing documents."""
        ...

    @abstractmethod
    def set(self, id: str, document: Document) -> None:
        """Stage a create-or-overwrite of *id*."""
        ...

    @abstractmethod
    def delete(self, id: str) -> None:
        """Stage a delete of *id*.  No-op at commit if it does not exist."""
        ...


class DocumentGateway(ABC):
    """Abstract base for document stores.

    Documents are flat ``dict[str, Any]`` blobs addressed by string id.
    """

    @abstractmethod
    async def get_document(self, id: str) -> Document | None:
        """Return the stored document, or ``None`` if not found."""
        ...

    @abstractmethod
    async def get_all(self, ids: Sequence[str]) -> list[Document | None]:
        """Return the documents for *ids* in input order (``None`` for missing)."""
        ...

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """Run *fn* and commit its staged writes atomically.

        If a document *fn* read was modified before commit, *fn* is run
        again on a fresh transaction.  Raises
        :class:`~acl_docstore.exceptions.TransactionConflictError` once the
        gateway's attempt budget is spent.  Any exception raised by *fn*
        propagates and nothing is written.
        """
        ...

    @abstractmethod
    async def set_document(self, id: str, document: Document) -> None:
        """Create or overwrite a document outside any transaction."""
        ...

    @abstractmethod
    async def delete_document(self, id: str) -> None:
        """Delete a document outside any transaction."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete every document."""
        ...

    async def close(self) -> None:
        """Release resources held by the gateway."""
        return None
