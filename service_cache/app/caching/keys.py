"""
Deterministic cache key derivation.

Inputs are reduced to canonical JSON before hashing. Mappings with only
string keys stay JSON objects; mappings with any other key become a sorted
list of ``[key, value]`` pairs so ``{1: "a"}`` and ``{"1": "a"}`` differ.
Values JSON cannot represent are rendered with ``str()``, so two distinct
objects with the same ``str()`` share a key.
"""

import hashlib
import json
from typing import Any


def _rendered(item: Any) -> str:
    return json.dumps(item, sort_keys=True, default=str)


def _canonical(obj: Any) -> Any:
    # Sets have no order; sort their canonical renderings so equal sets hash equally
    if isinstance(obj, (set, frozenset)):
        return sorted((_canonical(item) for item in obj), key=_rendered)
    if isinstance(obj, dict):
        if all(isinstance(key, str) for key in obj):
            return {key: _canonical(value) for key, value in obj.items()}
        pairs = [[_canonical(key), _canonical(value)] for key, value in obj.items()]
        return sorted(pairs, key=_rendered)
    if isinstance(obj, (list, tuple)):
        return [_canonical(item) for item in obj]
    return obj


def object_hash(obj: Any) -> str:
    """Stable SHA-1 of an arbitrary structure, independent of mapping order."""
    rendered = json.dumps(
        _canonical(obj),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha1(rendered.encode("utf-8")).hexdigest()


def make_key(namespace: str, obj: Any) -> str:
    """Namespaced storage key, e.g. ``default:cache:<sha1>``."""
    return f"{namespace}:cache:{object_hash(obj)}"
