"""AclBackend — the bucketed set store on top of a document gateway."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from acl_docstore import documents, ids
from acl_docstore.batch import (
    Batch,
    Operation,
    OperationType,
    fold_operations,
    plan_writes,
    touched_ids,
)
from acl_docstore.exceptions import CleanNotAllowedError, ReservedMemberError

if TYPE_CHECKING:
    from acl_docstore.gateways.base import DocumentGateway, Transaction
    from acl_docstore.ids import Key

logger = logging.getLogger(__name__)


def _as_list(values: Key | Iterable[Key]) -> list[Key]:
    if isinstance(values, (str, int)):
        return [values]
    return list(values)


def _flags(members: str | Iterable[str], present: bool) -> dict[str, bool]:
    data: dict[str, bool] = {}
    for member in _as_list(members):
        member = str(member)
        if member == documents.BUCKET_FIELD:
            raise ReservedMemberError(member)
        data[member] = present
    return data


class AclBackend:
    """Stores sets of members under ``(bucket, key)`` and updates them in batches.

    Mutations are accumulated into a :class:`~acl_docstore.batch.Batch` and
    applied all-or-nothing by :meth:`commit`::

        batch = backend.begin()
        backend.add(batch, "roles", "alice", ["admin", "editor"])
        backend.remove(batch, "roles", "bob", "editor")
        backend.delete(batch, "users", ["carol", "dave"])
        await backend.commit(batch)

    Reads (:meth:`get`, :meth:`union`, :meth:`unions`) go straight to the
    gateway and are not transactional.

    Parameters:
        gateway:     Transactional document store to persist into.
        allow_clean: Whether :meth:`clean` may wipe the gateway.  Off by
                     default; turn it on for test fixtures only.
    """

    def __init__(self, gateway: DocumentGateway, *, allow_clean: bool = False) -> None:
        self._gateway = gateway
        self._allow_clean = allow_clean

    def _id(self, bucket: str, key: Key) -> str:
        return ids.encode(ids.validate_bucket(bucket), key)

    def _ids(self, bucket: str, keys: Iterable[Key]) -> list[str]:
        return [self._id(bucket, key) for key in keys]

    # ── batch accumulation ───────────────────────────────────

    def begin(self) -> Batch:
        """Return a new, empty batch."""
        return Batch()

    begin_batch = begin

    def add(self, batch: Batch, bucket: str, key: Key, members: str | Iterable[str]) -> None:
        """Queue adding *members* to the set at ``(bucket, key)``."""
        op = Operation(OperationType.UPDATE, self._id(bucket, key), _flags(members, True))
        batch.append(op)

    def remove(self, batch: Batch, bucket: str, key: Key, members: str | Iterable[str]) -> None:
        """Queue removing *members* from the set at ``(bucket, key)``."""
        op = Operation(OperationType.UPDATE, self._id(bucket, key), _flags(members, False))
        batch.append(op)

    def delete(self, batch: Batch, bucket: str, keys: Key | Iterable[Key]) -> None:
        """Queue deleting the whole set of every key in *keys*."""
        for key in _as_list(keys):
            batch.append(Operation(OperationType.DELETE, self._id(bucket, key)))

    delete_keys = delete

    # ── commit ───────────────────────────────────────────────

    async def commit(self, batch: Batch) -> None:
        """Apply every operation of *batch* in one atomic transaction.

        The transaction reads the current document of every touched id,
        folds the operations over them in batch order, and then deletes
        each id that was deleted or left without members and overwrites
        the rest.  If anything fails, including a gateway conflict that
        outlasts the gateway's retries, nothing is written.
        """
        ops = batch.consume()
        if not ops:
            return

        async def apply(tx: Transaction) -> None:
            storage_ids = touched_ids(ops)
            snapshot = dict(zip(storage_ids, await tx.get_all(storage_ids), strict=True))
            writes = plan_writes(fold_operations(ops, snapshot))
            for write in writes:
                if write.document is None:
                    tx.delete(write.id)
                else:
                    tx.set(write.id, write.document)
            logger.debug(
                "Committing %d operation(s): %d set, %d deleted",
                len(ops),
                sum(1 for w in writes if not w.is_delete),
                sum(1 for w in writes if w.is_delete),
            )

        await self._gateway.run_transaction(apply)

    end = commit

    # ── queries ──────────────────────────────────────────────

    async def get(self, bucket: str, key: Key) -> set[str]:
        """Return the members stored at ``(bucket, key)``."""
        document = await self._gateway.get_document(self._id(bucket, key))
        return documents.to_members(document)

    async def union(self, bucket: str, keys: Key | Iterable[Key]) -> set[str]:
        """Return the union of the sets of *keys* within *bucket*."""
        result: set[str] = set()
        for document in await self._gateway.get_all(self._ids(bucket, _as_list(keys))):
            result |= documents.to_members(document)
        return result

    async def unions(
        self,
        buckets: str | Iterable[str],
        keys: Key | Iterable[Key],
    ) -> dict[str, set[str]]:
        """Return, per bucket, the union of the sets of *keys* in that bucket.

        Every requested bucket is present in the result, mapped to an empty
        set when none of its keys exist.
        """
        bucket_list = [str(bucket) for bucket in _as_list(buckets)]
        key_list = _as_list(keys)
        storage_ids = [sid for bucket in bucket_list for sid in self._ids(bucket, key_list)]
        result: dict[str, set[str]] = {bucket: set() for bucket in bucket_list}
        fetched = await self._gateway.get_all(storage_ids)
        for storage_id, document in zip(storage_ids, fetched, strict=True):
            if document is not None:
                result[ids.decode_bucket(storage_id)] |= documents.to_members(document)
        return result

    # ── maintenance ──────────────────────────────────────────

    async def clean(self) -> None:
        """Delete every stored set.  Requires ``allow_clean=True``."""
        if not self._allow_clean:
            raise CleanNotAllowedError(
                "clean() is disabled; construct the backend with allow_clean=True to enable it"
            )
        logger.warning("Clearing all documents from %s", type(self._gateway).__name__)
        await self._gateway.clear()
