"""Tests for BoundedCache."""

import unittest

from spanpipe.core.errors import InvalidCapacityError
from spanpipe.core.lru_cache import BoundedCache

_MISSING = object()


class TestBoundedCacheConstruction(unittest.TestCase):
    def test_capacity(self):
        self.assertEqual(BoundedCache(3).capacity, 3)

    def test_invalid_capacity(self):
        for capacity in (0, -1, 1.5, "3", True, None):
            with self.subTest(capacity=capacity):
                with self.assertRaises(InvalidCapacityError) as ctx:
                    BoundedCache(capacity)  # type: ignore[arg-type]
                self.assertEqual(ctx.exception.capacity, capacity)

    def test_invalid_capacity_is_value_error(self):
        with self.assertRaises(ValueError):
            BoundedCache(0)


class TestBoundedCacheLRU(unittest.TestCase):
    """Recency ordering and eviction."""

    def test_evicts_least_recently_used_after_capacity_plus_one(self):
        for capacity in (1, 2, 5, 50):
            with self.subTest(capacity=capacity):
                cache: BoundedCache[int, str] = BoundedCache(capacity)
                for i in range(capacity + 1):
                    cache.set(i, f"value-{i}")

                self.assertIs(cache.get(0, _MISSING), _MISSING)
                for i in range(1, capacity + 1):
                    self.assertEqual(cache.get(i), f"value-{i}")
                self.assertEqual(len(cache), capacity)

    def test_get_promotes(self):
        cache = BoundedCache(2)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.get("a")
        cache.set("c", 3)

        self.assertIn("a", cache)
        self.assertNotIn("b", cache)
        self.assertEqual(cache.keys(), ["a", "c"])

    def test_overwrite_promotes_without_growing(self):
        cache = BoundedCache(2)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.set("a", 10)
        cache.set("c", 3)

        self.assertEqual(cache.get("a"), 10)
        self.assertNotIn("b", cache)
        self.assertEqual(len(cache), 2)

    def test_contains_does_not_promote(self):
        cache = BoundedCache(2)
        cache.set("a", 1)
        cache.set("b", 2)

        self.assertIn("a", cache)
        cache.set("c", 3)

        self.assertNotIn("a", cache)

    def test_miss_has_no_side_effects(self):
        cache = BoundedCache(2)
        cache.set("a", 1)
        cache.set("b", 2)

        self.assertIsNone(cache.get("zzz"))

        self.assertEqual(cache.keys(), ["a", "b"])
        self.assertEqual(len(cache), 2)

    def test_stored_none_is_distinguishable_from_miss(self):
        cache = BoundedCache(2)
        cache.set("empty", None)
        cache.set("blank", "")

        self.assertIsNone(cache.get("empty", _MISSING))
        self.assertEqual(cache.get("blank", _MISSING), "")
        self.assertIs(cache.get("nothing", _MISSING), _MISSING)
        self.assertIn("empty", cache)

    def test_mapping_protocol(self):
        cache = BoundedCache(2)
        cache["a"] = 1

        self.assertEqual(cache["a"], 1)
        with self.assertRaises(KeyError):
            cache["missing"]

    def test_clear(self):
        cache = BoundedCache(2)
        cache.set("a", 1)
        cache.clear()

        self.assertEqual(len(cache), 0)
        self.assertEqual(repr(cache), "BoundedCache(capacity=2, size=0)")


if __name__ == "__main__":
    unittest.main()
