"""Custom exceptions for the acl_docstore package."""

from __future__ import annotations


class AclStoreError(Exception):
    """Base exception for all ACL store errors."""


class InvalidBucketError(AclStoreError, ValueError):
    """Raised when a bucket name cannot be encoded into an unambiguous id."""

    def __init__(self, bucket: str, message: str) -> None:
        self.bucket = bucket
        super().__init__(f"Invalid bucket {bucket!r}: {message}")


class MalformedIdError(AclStoreError, ValueError):
    """Raised when a storage id does not contain the bucket separator."""

    def __init__(self, storage_id: str) -> None:
        self.storage_id = storage_id
        super().__init__(f"Malformed storage id {storage_id!r}: missing bucket separator")


class ReservedMemberError(AclStoreError, ValueError):
    """Raised when a member name collides with the reserved bucket attribute."""

    def __init__(self, member: str) -> None:
        self.member = member
        super().__init__(f"Member name {member!r} is reserved")


class InvalidOperationError(AclStoreError):
    """Raised when a batch contains an operation that cannot be applied."""


class UpdateAfterDeleteError(InvalidOperationError):
    """Raised when a batch updates an id it already deleted."""

    def __init__(self, storage_id: str) -> None:
        self.storage_id = storage_id
        super().__init__(f"Update of {storage_id!r} after it was deleted in the same batch")


class BatchConsumedError(AclStoreError):
    """Raised when a batch is committed more than once."""


class CleanNotAllowedError(AclStoreError):
    """Raised when ``clean`` is called on a backend built without ``allow_clean``."""


class GatewayError(AclStoreError):
    """Raised when a document gateway operation fails."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        msg = f"Gateway error during '{operation}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransactionConflictError(GatewayError):
    """Raised when a transaction keeps conflicting with concurrent writes."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            "run_transaction",
            f"documents changed concurrently, gave up after {attempts} attempt(s)",
        )
