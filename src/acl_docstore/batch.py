"""Operation batches and the fold that turns them into document writes.

Nothing in this module performs I/O.  :class:`~acl_docstore.backend.AclBackend`
feeds it the documents read inside a transaction and stages the writes it
returns.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from acl_docstore import documents, ids
from acl_docstore.exceptions import (
    BatchConsumedError,
    InvalidOperationError,
    UpdateAfterDeleteError,
)


class OperationType(Enum):
    """Kinds of pending mutation."""

    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Operation:
    """One pending mutation addressed by storage id.

    Attributes:
        type: ``UPDATE`` merges *data* into the stored flags, ``DELETE``
              removes the document.
        id:   Storage id (see :mod:`acl_docstore.ids`).
        data: Member -> flag mapping for updates; ``True`` means "ensure
              present", ``False`` means "ensure absent".
    """

    type: OperationType
    id: str
    data: Mapping[str, bool] | None = None


class Batch:
    """Ordered, append-only list of operations committed together.

    A batch is consumed by a single commit and cannot be committed again.
    """

    def __init__(self) -> None:
        self._ops: list[Operation] = []
        self._consumed = False

    def append(self, op: Operation) -> None:
        if self._consumed:
            raise BatchConsumedError("Cannot append to a committed batch")
        self._ops.append(op)

    def consume(self) -> list[Operation]:
        """Mark the batch committed and return its operations."""
        if self._consumed:
            raise BatchConsumedError("Batch has already been committed")
        self._consumed = True
        return list(self._ops)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._ops)

    def __len__(self) -> int:
        return len(self._ops)

    def __repr__(self) -> str:
        return f"Batch(ops={len(self._ops)}, consumed={self._consumed})"


@dataclass
class WorkingEntry:
    """Transaction-scoped state of one storage id while folding a batch."""

    deleted: bool = False
    flags: dict[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class Write:
    """Final action for one storage id; ``document is None`` means delete."""

    id: str
    document: documents.Document | None

    @property
    def is_delete(self) -> bool:
        return self.document is None


def touched_ids(ops: Sequence[Operation]) -> list[str]:
    """Distinct storage ids referenced by *ops*, in first-occurrence order."""
    return list(dict.fromkeys(op.id for op in ops))


def fold_operations(
    ops: Sequence[Operation],
    snapshot: Mapping[str, documents.Document | None],
) -> dict[str, WorkingEntry]:
    """Apply *ops* in order on top of the documents in *snapshot*.

    Raises:
        UpdateAfterDeleteError: an update targets an id deleted earlier in
            the same batch.
        InvalidOperationError: an operation has an unknown type.
    """
    working = {
        storage_id: WorkingEntry(flags=documents.to_flags(snapshot.get(storage_id)))
        for storage_id in touched_ids(ops)
    }
    for op in ops:
        entry = working[op.id]
        if op.type is OperationType.UPDATE:
            if entry.deleted:
                raise UpdateAfterDeleteError(op.id)
            entry.flags.update(op.data or {})
        elif op.type is OperationType.DELETE:
            entry.deleted = True
        else:
            raise InvalidOperationError(f"Unknown operation type: {op.type!r}")
    return working


def plan_writes(working: Mapping[str, WorkingEntry]) -> list[Write]:
    """Prune absent members and decide delete-vs-set for every id."""
    writes: list[Write] = []
    for storage_id, entry in working.items():
        present = {name: True for name, flag in entry.flags.items() if flag is True}
        if entry.deleted or not present:
            writes.append(Write(storage_id, None))
        else:
            bucket = ids.decode_bucket(storage_id)
            writes.append(Write(storage_id, documents.to_document(present, bucket)))
    return writes
