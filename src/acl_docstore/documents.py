"""Translation between stored documents and member sets.

A stored document maps each member name to ``True`` and carries one reserved
attribute, :data:`BUCKET_FIELD`, holding the owning bucket.  The reserved
attribute is handled here and nowhere else.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

BUCKET_FIELD = "@@bucket"

Document = dict[str, Any]


def to_members(document: Mapping[str, Any] | None) -> set[str]:
    """Return the member set a document represents (empty for a missing one)."""
    if document is None:
        return set()
    return {name for name in document if name != BUCKET_FIELD}


def to_flags(document: Mapping[str, Any] | None) -> dict[str, bool]:
    """Return the member -> presence flags of a document.

    Only a stored value of exactly ``True`` counts as present.
    """
    if document is None:
        return {}
    return {name: value is True for name, value in document.items() if name != BUCKET_FIELD}


def to_document(flags: Mapping[str, bool], bucket: str) -> Document:
    """Build the document to store for *flags*, dropping absent members."""
    document: Document = {name: True for name, present in flags.items() if present}
    document[BUCKET_FIELD] = bucket
    return document
