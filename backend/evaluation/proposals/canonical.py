"""
Canonical JSON — key-order independent representation of JSON-like values.

Objects get their keys sorted, arrays keep their order (element order is
meaningful for proposals).
"""
import hashlib
import json
from typing import Any, Optional

from evaluation.proposals.types import MISSING


def canonicalize(value: Any) -> Any:
    """
    Return the canonical form of a JSON-like value.

    Two values holding the same keys and values canonicalize to equal
    results regardless of key insertion order.
    """
    if value is None or value is MISSING:
        return None

    if isinstance(value, dict):
        return {str(k): canonicalize(value[k]) for k in sorted(value, key=str)}

    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]

    return value


def to_canonical_json(value: Any, indent: Optional[int] = None) -> str:
    """Deterministic JSON string of the canonical form."""
    return json.dumps(canonicalize(value), indent=indent, ensure_ascii=False, default=str)


def hash_canonical(value: Any) -> str:
    """MD5 hex digest of the canonical JSON."""
    return hashlib.md5(to_canonical_json(value).encode("utf-8")).hexdigest()
