"""Storage id codec — ``(bucket, key)`` pairs to single document ids and back."""

from __future__ import annotations

from acl_docstore.exceptions import InvalidBucketError, MalformedIdError

SEPARATOR = "."

Key = str | int


def encode(bucket: str, key: Key) -> str:
    """Join *bucket* and the string form of *key* into a storage id."""
    return f"{bucket}{SEPARATOR}{key}"


def decode_bucket(storage_id: str) -> str:
    """Return the bucket part of *storage_id*.

    Only the bucket is recoverable: keys may contain the separator, buckets
    may not (see :func:`validate_bucket`).
    """
    bucket, sep, _ = storage_id.partition(SEPARATOR)
    if not sep:
        raise MalformedIdError(storage_id)
    return bucket


def validate_bucket(bucket: str) -> str:
    if not bucket:
        raise InvalidBucketError(bucket, "must not be empty")
    if SEPARATOR in bucket:
        raise InvalidBucketError(bucket, f"must not contain {SEPARATOR!r}")
    return bucket
