"""
Memoization cache and value fingerprints.

A MemoCache is injected into each memoizable Morph (or created for it).
Keys are (morph name, input fingerprint, context fingerprint); values are
prior outputs. Because only pure morphs are ever cached, eviction and
staleness can only cost time, never change a result.

Fingerprints are SHA-256 digests of a canonical JSON encoding, so two
structurally-equal values fingerprint identically regardless of dict
ordering or object identity.
"""

import dataclasses
import hashlib
import inspect
import json
import threading
from collections import OrderedDict
from collections.abc import Mapping
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Sequence, Set, Tuple

import pyarrow as pa

from ..morph_exceptions import CacheError, UnfingerprintableError


# =============================================================================
# Fingerprints
# =============================================================================

MISSING = {"__missing__": True}


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _type_name(value: Any) -> str:
    cls = type(value)
    return f"{cls.__module__}.{cls.__qualname__}"


def _canonical(value: Any, _active: Optional[Set[int]] = None) -> Any:
    """
    Reduce a value to JSON-encodable primitives with a stable layout.

    Container types are tagged so that, e.g., a tuple and a list with the
    same items do not collide. Raises UnfingerprintableError for values
    whose only identity is their address (functions, bare object(),
    slotted objects) and for reference cycles.
    """
    if isinstance(value, Enum):
        return {"__enum__": f"{_type_name(value)}.{value.name}"}

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, (datetime, date, time)):
        return {"__datetime__": _type_name(value), "iso": value.isoformat()}

    if isinstance(value, (bytes, bytearray)):
        return {"__bytes__": _type_name(value), "hex": bytes(value).hex()}

    # Arrow tables arrive from tabular collaborators; hash schema + rows
    if isinstance(value, (pa.Table, pa.RecordBatch)):
        return {
            "__arrow__": value.schema.to_string(),
            "rows": _canonical(value.to_pylist()),
        }

    if _active is None:
        _active = set()
    if id(value) in _active:
        raise UnfingerprintableError(f"reference cycle through {_type_name(value)}")
    _active.add(id(value))
    try:
        return _canonical_container(value, _active)
    finally:
        _active.discard(id(value))


def _canonical_container(value: Any, active: Set[int]) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return {"__dataclass__": _type_name(value), "fields": _canonical(fields, active)}

    if isinstance(value, Mapping):
        items = [[_dumps(_canonical(k, active)), _canonical(v, active)] for k, v in value.items()]
        items.sort(key=lambda kv: kv[0])
        return {"__map__": _type_name(value), "items": items}

    if isinstance(value, (set, frozenset)):
        members = sorted(_dumps(_canonical(v, active)) for v in value)
        return {"__set__": _type_name(value), "items": members}

    if type(value) is list:
        return [_canonical(v, active) for v in value]

    if isinstance(value, (list, tuple)):
        return {"__seq__": _type_name(value), "items": [_canonical(v, active) for v in value]}

    if callable(value) or inspect.ismodule(value) or not hasattr(value, "__dict__"):
        raise UnfingerprintableError(f"no stable fingerprint for {_type_name(value)}")

    # Plain objects: type plus instance state
    return {"__object__": _type_name(value), "state": _canonical(vars(value), active)}


def fingerprint(value: Any) -> str:
    """
    Stable digest of a value's type and structure.

    Raises:
        UnfingerprintableError: value has no stable fingerprint
    """
    encoded = _dumps(_canonical(value)).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def resolve_path(context: Any, dotted_key: str) -> Any:
    """Resolve 'a.b.c' through mappings and attributes."""
    current = context
    for part in dotted_key.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif hasattr(current, part):
            current = getattr(current, part)
        else:
            return MISSING
    return current


def context_fingerprint(context: Any, keys: Optional[Sequence[str]] = None) -> str:
    """
    Fingerprint the parts of a context a morph depends on.

    Args:
        context: Any context object (mapping, dataclass, plain object, None)
        keys: Dotted field paths to project; None fingerprints the whole context

    Returns:
        Hex digest
    """
    if keys is None:
        return fingerprint(context)
    return fingerprint({key: resolve_path(context, key) for key in keys})


# =============================================================================
# Cache
# =============================================================================

class CacheKey(NamedTuple):
    """Memoization key. Always carries the morph name."""
    morph_name: str
    input_fingerprint: str
    context_fingerprint: str


class MemoCache:
    """
    Thread-safe memoization store for pure, memoizable morphs.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a cache.
    ::: This is-in-process Main-Process.
    ::: This is stateful.

    max_entries=0 means unbounded; otherwise the least recently used entry
    is evicted once the bound is exceeded.
    """

    def __init__(self, max_entries: int = 0, name: str = "memo"):
        if not isinstance(max_entries, int) or isinstance(max_entries, bool) or max_entries < 0:
            raise CacheError(f"max_entries must be a non-negative int, got {max_entries!r}")
        self.name = name
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def lookup(self, key: CacheKey) -> Tuple[bool, Any]:
        """Return (found, value). Counts a hit or a miss."""
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self._hits += 1
                return True, self._entries[key]
            self._misses += 1
            return False, None

    def store(self, key: CacheKey, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            if self.max_entries and len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._evictions += 1

    def invalidate(self, morph_name: str) -> int:
        """Drop every entry for one morph name. Returns the number removed."""
        with self._lock:
            doomed = [k for k in self._entries if k.morph_name == morph_name]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = self._misses = self._evictions = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "max_entries": self.max_entries,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    def __repr__(self) -> str:
        return f"MemoCache(name={self.name!r}, entries={len(self)}, max_entries={self.max_entries})"
