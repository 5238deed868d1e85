"""Tests for attribute sanitization."""

from __future__ import annotations

import json

import pytest

from spanpipe.core.config import SanitizationPolicy
from spanpipe.core.sanitizer import (
    is_blank,
    prepare,
    sanitize_attributes,
    serialized_size,
    truncate_sequence,
    truncate_string,
)


def _policy(max_size: int = 4096, excluded: tuple[str, ...] = ()) -> SanitizationPolicy:
    return SanitizationPolicy(max_attribute_size=max_size, excluded_keys=frozenset(excluded))


class TestTruncateString:
    """Byte-accurate string truncation."""

    @pytest.mark.parametrize(
        "value",
        [
            "hello world",
            "a" * 100,
            "héllo wörld" * 10,
            "日本語のテキスト" * 20,
            "emoji 😀🎉🚀 mix" * 10,
            "",
        ],
    )
    @pytest.mark.parametrize("limit", [0, 1, 2, 3, 5, 7, 16, 50, 1000])
    def test_result_fits_and_is_prefix(self, value, limit):
        result = truncate_string(value, limit)

        assert len(result.encode("utf-8")) <= limit
        assert value.startswith(result)

    @pytest.mark.parametrize("limit", [1, 4, 9, 33])
    def test_truncation_is_idempotent(self, limit):
        value = "ab😀cd日本" * 8
        once = truncate_string(value, limit)

        assert truncate_string(once, limit) == once

    def test_short_string_unchanged(self):
        assert truncate_string("short", 100) == "short"

    def test_cut_does_not_split_multibyte_character(self):
        # "é" is two bytes; a 2-byte budget only fits "a"
        assert truncate_string("aé", 2) == "a"
        assert truncate_string("aé", 3) == "aé"

    def test_four_byte_character_dropped_whole(self):
        assert truncate_string("😀", 3) == ""
        assert truncate_string("😀", 4) == "😀"

    def test_exact_fit(self):
        value = "x" * 50
        assert truncate_string(value, 50) == value


class TestTruncateSequence:
    """Element-wise sequence size bounding."""

    def test_hundred_ten_char_strings_with_budget_fifty(self):
        values = ["abcdefghij"] * 100

        result = truncate_sequence(values, 50)

        assert result == ["abcdefghij"] * 4
        assert serialized_size(result) == 48
        assert serialized_size(result) <= 50

    def test_result_is_deterministic(self):
        values = [f"item-{i:05d}" for i in range(100)]

        results = [truncate_sequence(values, 50) for _ in range(5)]

        assert all(result == results[0] for result in results)
        assert results[0] == values[: len(results[0])]

    def test_overflowing_string_is_cut_to_remaining_budget(self):
        # 2 (brackets) + 5 ("aaaaa") = 7; next element gets 12 - 7 - 2 = 3 bytes
        result = truncate_sequence(["aaaaa", "bbbbbbbb", "c"], 12)

        assert result == ["aaaaa", "bbb"]
        assert serialized_size(result) <= 12

    def test_overflowing_non_string_is_dropped(self):
        result = truncate_sequence([1234, 5678901234], 10)

        assert result == [1234]

    def test_fitting_sequence_returned_as_is(self):
        values = ("a", "b", "c")

        assert truncate_sequence(values, 100) is values

    def test_first_element_too_large_is_cut(self):
        result = truncate_sequence(["x" * 100], 10)

        assert result == ["x" * 8]

    def test_no_budget_for_elements(self):
        assert truncate_sequence(["abc"], 2) == []

    @pytest.mark.parametrize("limit", [3, 10, 25, 64])
    def test_multibyte_elements_fit(self, limit):
        values = ["日本語", "😀😀", "abc", "é" * 10]

        result = truncate_sequence(values, limit)

        assert serialized_size(result) <= limit
        for kept, original in zip(result, values):
            assert original.startswith(kept)


class TestBlank:
    @pytest.mark.parametrize("value", [None, "", [], (), {}])
    def test_blank_values(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", [0, False, 0.0, " ", [None], {"a": 1}])
    def test_non_blank_values(self, value):
        assert not is_blank(value)


class TestPrepare:
    """prepare(key, value, policy) end to end."""

    @pytest.mark.parametrize("value", [None, "", [], ()])
    @pytest.mark.parametrize("key", ["http.request.body", "x", "db.statement"])
    def test_blank_values_are_dropped(self, key, value):
        assert prepare(key, value, _policy()) is None
        assert prepare(key, value, _policy(max_size=1, excluded=("other",))) is None

    @pytest.mark.parametrize("value", [True, False, 0, 42, -1.5, 10**30])
    def test_scalars_pass_through_unbounded(self, value):
        assert prepare("key", value, _policy(max_size=1)) == value

    def test_small_values_pass_through(self):
        policy = _policy()

        assert prepare("http.request.path", "/foo/bar", policy) == "/foo/bar"
        assert prepare("http.request.body", "amir=asdasd", policy) == "amir=asdasd"

    def test_long_string_truncated(self):
        assert prepare("body", "x" * 100, _policy(max_size=10)) == "x" * 10

    def test_excluded_key_dropped(self):
        policy = _policy(excluded=("http.request.headers",))

        assert prepare("http.request.headers", "secret", policy) is None
        assert prepare("http.request.path", "/foo", policy) == "/foo"

    def test_excluded_key_dropped_before_blank_check(self):
        assert prepare("token", "", _policy(excluded=("token",))) is None

    def test_mapping_is_encoded_as_json(self):
        result = prepare("http.request.headers", {"accept": "json", "count": 2}, _policy())

        assert json.loads(result) == {"accept": "json", "count": 2}

    def test_nested_exclusion(self):
        policy = _policy(excluded=("inside.mapping.excluded", "nested.mapping.partially.excluded"))

        inside = prepare("inside", {"mapping": {"included": "yes", "excluded": "no"}}, policy)
        nested = prepare(
            "nested",
            {"mapping": {"partially": {"included": "yes", "excluded": "no"}}},
            policy,
        )

        assert json.loads(inside) == {"mapping": {"included": "yes"}}
        assert json.loads(nested) == {"mapping": {"partially": {"included": "yes"}}}

    def test_exclusion_leaves_siblings(self):
        policy = _policy(excluded=("req.headers.authorization",))

        result = prepare("req", {"headers": {"authorization": "Bearer x", "accept": "*/*"}, "path": "/"}, policy)

        assert json.loads(result) == {"headers": {"accept": "*/*"}, "path": "/"}

    def test_mapping_empty_after_redaction_is_dropped(self):
        policy = _policy(excluded=("headers.authorization",))

        assert prepare("headers", {"authorization": "secret"}, policy) is None

    def test_exclusion_applies_before_truncation(self):
        policy = _policy(max_size=30, excluded=("body.secret",))
        value = {"secret": "s" * 100, "ok": "visible"}

        result = prepare("body", value, policy)

        assert "s" * 5 not in result
        assert json.loads(result) == {"ok": "visible"}

    def test_oversized_mapping_is_truncated_json(self):
        result = prepare("body", {"data": "x" * 100}, _policy(max_size=20))

        assert len(result.encode("utf-8")) <= 20
        assert result.startswith('{"data": "')

    def test_mapping_with_non_json_values(self):
        import datetime

        result = prepare("payload", {"when": datetime.date(2024, 1, 2), "raw": b"bytes"}, _policy())

        assert json.loads(result) == {"when": "2024-01-02", "raw": "bytes"}

    def test_unsupported_type_passes_through(self):
        marker = object()

        assert prepare("thing", marker, _policy(max_size=1)) is marker

    def test_string_truncated_to_nothing_is_dropped(self):
        assert prepare("emoji", "😀", _policy(max_size=3)) is None


class TestSanitizeAttributes:
    def test_drops_and_truncates(self):
        policy = _policy(max_size=5, excluded=("password",))

        result = sanitize_attributes(
            {"password": "hunter2", "empty": "", "name": "abcdefgh", "count": 3},
            policy,
        )

        assert result == {"name": "abcde", "count": 3}

    def test_none_attributes(self):
        assert sanitize_attributes(None, _policy()) == {}

    def test_policy_validation(self):
        with pytest.raises(ValueError):
            SanitizationPolicy(max_attribute_size=0)
