"""acl_docstore — bucketed member sets stored in a transactional document database.

Mutations are collected into a batch and committed atomically; reads return
plain ``set[str]`` values.
"""

from acl_docstore.backend import AclBackend
from acl_docstore.batch import Batch, Operation, OperationType
from acl_docstore.documents import BUCKET_FIELD
from acl_docstore.exceptions import (
    AclStoreError,
    BatchConsumedError,
    CleanNotAllowedError,
    GatewayError,
    InvalidBucketError,
    InvalidOperationError,
    MalformedIdError,
    ReservedMemberError,
    TransactionConflictError,
    UpdateAfterDeleteError,
)

__all__ = [
    "BUCKET_FIELD",
    "AclBackend",
    "AclStoreError",
    "Batch",
    "BatchConsumedError",
    "CleanNotAllowedError",
    "GatewayError",
    "InvalidBucketError",
    "InvalidOperationError",
    "MalformedIdError",
    "Operation",
    "OperationType",
    "ReservedMemberError",
    "TransactionConflictError",
    "UpdateAfterDeleteError",
]
