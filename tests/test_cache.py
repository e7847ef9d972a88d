"""
Tests for fingerprints and the memoization cache.
"""

import threading
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum, IntEnum

import pyarrow as pa
import pytest

from morphic import CacheError, UnfingerprintableError
from morphic.dsl import CacheKey, MemoCache, context_fingerprint, fingerprint


class Mode(Enum):
    EDIT = "edit"
    VIEW = "view"


@dataclass
class Options:
    enabled: bool
    level: int = 1


class Level(IntEnum):
    LOW = 1


class Box:
    def __init__(self, n):
        self.n = n


class Slotted:
    __slots__ = ("n",)

    def __init__(self):
        self.n = 1


# =============================================================================
# Fingerprint Tests
# =============================================================================

class TestFingerprint:

    def test_dict_order_irrelevant(self):
        assert fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})

    def test_structural_difference(self):
        assert fingerprint({"a": 1}) != fingerprint({"a": 2})
        assert fingerprint([1, 2]) != fingerprint([2, 1])

    def test_int_and_string_differ(self):
        assert fingerprint(1) != fingerprint("1")
        assert fingerprint({1: "x"}) != fingerprint({"1": "x"})

    def test_sets_sorted(self):
        assert fingerprint({3, 1, 2}) == fingerprint({1, 2, 3})

    def test_tuple_and_list_differ(self):
        assert fingerprint((1, 2)) != fingerprint([1, 2])
        assert fingerprint({"k": (1, 2)}) != fingerprint({"k": [1, 2]})

    def test_set_and_frozenset_differ(self):
        assert fingerprint({1, 2}) != fingerprint(frozenset({1, 2}))

    def test_int_enum_differs_from_int(self):
        assert fingerprint(Level.LOW) != fingerprint(1)

    def test_enum_dataclass_datetime(self):
        assert fingerprint(Mode.EDIT) != fingerprint(Mode.VIEW)
        assert fingerprint(Options(True)) == fingerprint(Options(True))
        assert fingerprint(Options(True)) != fingerprint(Options(False))
        assert fingerprint(date(2024, 1, 1)) != fingerprint(datetime(2024, 1, 1))

    def test_bytes(self):
        assert fingerprint(b"ab") == fingerprint(b"ab")
        assert fingerprint(b"ab") != fingerprint(bytearray(b"ab"))

    def test_plain_object_by_type_and_state(self):
        assert fingerprint(Box(1)) == fingerprint(Box(1))
        assert fingerprint(Box(1)) != fingerprint(Box(2))
        assert fingerprint(Box(1)) != fingerprint({"n": 1})

    def test_identity_only_values_rejected(self):
        with pytest.raises(UnfingerprintableError):
            fingerprint(object())
        with pytest.raises(UnfingerprintableError):
            fingerprint(lambda: None)
        with pytest.raises(UnfingerprintableError):
            fingerprint(Slotted())

    def test_reference_cycle_rejected(self):
        loop = []
        loop.append(loop)
        with pytest.raises(UnfingerprintableError, match="cycle"):
            fingerprint(loop)

    def test_shared_reference_is_not_a_cycle(self):
        shared = [1]
        assert fingerprint([shared, shared]) == fingerprint([[1], [1]])

    def test_arrow_table(self):
        t1 = pa.table({"id": [1, 2], "name": ["a", "b"]})
        t2 = pa.table({"id": [1, 2], "name": ["a", "b"]})
        t3 = pa.table({"id": [1, 3], "name": ["a", "b"]})
        assert fingerprint(t1) == fingerprint(t2)
        assert fingerprint(t1) != fingerprint(t3)

    def test_arrow_schema_matters(self):
        ints = pa.table({"x": pa.array([1], type=pa.int64())})
        small = pa.table({"x": pa.array([1], type=pa.int32())})
        assert fingerprint(ints) != fingerprint(small)

    def test_arrow_record_batch(self):
        batch = pa.RecordBatch.from_pylist([{"id": 1}])
        assert fingerprint(batch) == fingerprint(pa.RecordBatch.from_pylist([{"id": 1}]))

    def test_context_fingerprint_whole(self):
        assert context_fingerprint({"a": 1}) == fingerprint({"a": 1})
        assert context_fingerprint(None) == fingerprint(None)

    def test_context_fingerprint_projection(self):
        keys = ["options.level"]
        a = {"options": {"level": 2}, "request": "x"}
        b = {"options": {"level": 2}, "request": "y"}
        c = {"options": {"level": 3}, "request": "x"}
        assert context_fingerprint(a, keys) == context_fingerprint(b, keys)
        assert context_fingerprint(a, keys) != context_fingerprint(c, keys)

    def test_context_fingerprint_attributes(self):
        assert context_fingerprint(Options(True, 2), ["level"]) == context_fingerprint({"level": 2}, ["level"])

    def test_missing_key_distinct_from_none(self):
        assert context_fingerprint({}, ["a"]) != context_fingerprint({"a": None}, ["a"])


# =============================================================================
# MemoCache Tests
# =============================================================================

class TestMemoCache:

    def _key(self, name="M", value=1):
        return CacheKey(name, fingerprint(value), fingerprint(None))

    def test_lookup_miss_then_hit(self):
        cache = MemoCache()
        key = self._key()
        assert cache.lookup(key) == (False, None)
        cache.store(key, "out")
        assert cache.lookup(key) == (True, "out")
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_none_value_is_a_hit(self):
        cache = MemoCache()
        key = self._key()
        cache.store(key, None)
        assert cache.lookup(key) == (True, None)

    def test_lru_eviction(self):
        cache = MemoCache(max_entries=2)
        k1, k2, k3 = self._key(value=1), self._key(value=2), self._key(value=3)
        cache.store(k1, 1)
        cache.store(k2, 2)
        cache.lookup(k1)
        cache.store(k3, 3)
        assert k1 in cache
        assert k2 not in cache
        assert k3 in cache
        assert cache.stats()["evictions"] == 1

    def test_invalid_max_entries(self):
        with pytest.raises(CacheError):
            MemoCache(max_entries=-1)
        with pytest.raises(CacheError):
            MemoCache(max_entries=True)
        with pytest.raises(CacheError):
            MemoCache(max_entries=1.5)

    def test_invalidate_by_morph_name(self):
        cache = MemoCache()
        cache.store(self._key("A", 1), 1)
        cache.store(self._key("A", 2), 2)
        cache.store(self._key("B", 1), 3)
        assert cache.invalidate("A") == 2
        assert len(cache) == 1

    def test_clear_resets_stats(self):
        cache = MemoCache()
        cache.store(self._key(), 1)
        cache.lookup(self._key())
        cache.clear()
        assert cache.stats() == {"entries": 0, "hits": 0, "misses": 0, "evictions": 0, "max_entries": 0}

    def test_concurrent_stores(self):
        cache = MemoCache(max_entries=50)

        def worker(offset):
            for i in range(200):
                cache.store(self._key(value=offset * 1000 + i), i)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 50
        assert cache.stats()["evictions"] == 750

    def test_default_bound_from_settings(self, monkeypatch):
        from morphic.dsl import create_morph
        from morphic.services import reset_settings
        monkeypatch.setenv("MORPHIC_CACHE_MAX_ENTRIES", "3")
        reset_settings()
        m = create_morph("M", lambda v, ctx: v, memoizable=True)
        assert m.cache.max_entries == 3

    def test_repr(self):
        assert repr(MemoCache(name="x")) == "MemoCache(name='x', entries=0, max_entries=0)"
