"""Tests for content pattern compilation and evaluation."""

from __future__ import annotations

import pytest

from auditbus.core.errors import ConfigurationError
from auditbus.routing.patterns import compile_pattern

STATE_CHANGE = {
    "id": "E1",
    "detail-type": "Object State Change",
    "source": "custom.books-api",
    "detail": {"operation": "delete", "entity-id": "B1", "tags": ["a", "b"], "count": 3},
}


class TestPatternEvaluation:
    def test_exact_match(self):
        assert compile_pattern({"detail-type": ["Object State Change"]}).matches(STATE_CHANGE)

    def test_exact_mismatch(self):
        assert not compile_pattern({"detail-type": ["Any Event"]}).matches(STATE_CHANGE)

    def test_any_of_alternatives(self):
        pattern = compile_pattern({"detail": {"operation": ["insert", "delete"]}})
        assert pattern.matches(STATE_CHANGE)

    def test_conjunction(self):
        pattern = compile_pattern({
            "detail-type": ["Object State Change"],
            "detail": {"operation": ["insert"]},
        })
        assert not pattern.matches(STATE_CHANGE)

    def test_empty_prefix_matches_every_source(self):
        pattern = compile_pattern({"source": [{"prefix": ""}]})
        assert pattern.matches(STATE_CHANGE)
        assert pattern.matches({"source": "any.system", "detail-type": "x", "detail": {}})

    def test_prefix(self):
        assert compile_pattern({"source": [{"prefix": "custom."}]}).matches(STATE_CHANGE)
        assert not compile_pattern({"source": [{"prefix": "aws."}]}).matches(STATE_CHANGE)

    def test_prefix_does_not_match_non_strings(self):
        assert not compile_pattern({"detail": {"count": [{"prefix": "3"}]}}).matches(STATE_CHANGE)

    def test_empty_pattern_matches_everything(self):
        assert compile_pattern({}).matches({})
        assert compile_pattern({}).matches(STATE_CHANGE)

    def test_absent_field_does_not_match(self):
        assert not compile_pattern({"detail": {"author": ["a@x"]}}).matches(STATE_CHANGE)

    def test_absent_parent_does_not_match(self):
        event = {"source": "s", "detail-type": "t"}
        assert not compile_pattern({"detail": {"operation": ["delete"]}}).matches(event)

    def test_non_object_parent_does_not_match(self):
        event = {"source": "s", "detail-type": "t", "detail": "flat"}
        assert not compile_pattern({"detail": {"operation": ["delete"]}}).matches(event)

    def test_list_field_matches_any_element(self):
        assert compile_pattern({"detail": {"tags": ["b"]}}).matches(STATE_CHANGE)
        assert not compile_pattern({"detail": {"tags": ["c"]}}).matches(STATE_CHANGE)

    def test_numbers_and_strings_are_distinct(self):
        assert compile_pattern({"detail": {"count": [3]}}).matches(STATE_CHANGE)
        assert not compile_pattern({"detail": {"count": ["3"]}}).matches(STATE_CHANGE)

    def test_booleans_are_not_numbers(self):
        event = {"flag": True, "one": 1}
        assert compile_pattern({"flag": [True]}).matches(event)
        assert not compile_pattern({"one": [True]}).matches(event)
        assert not compile_pattern({"flag": [1]}).matches(event)

    def test_null_matches_explicit_null_only(self):
        assert compile_pattern({"x": [None]}).matches({"x": None})
        assert not compile_pattern({"x": [None]}).matches({})

    def test_describe(self):
        text = compile_pattern({"detail": {"operation": ["delete"]}}).describe()
        assert "detail.operation" in text
        assert compile_pattern({}).describe() == "<matches everything>"


class TestPatternCompilation:
    @pytest.mark.parametrize(
        "pattern",
        [
            ["not", "an", "object"],
            {"source": "bare-string"},
            {"source": []},
            {"detail": {}},
            {"source": [{"suffix": "x"}]},
            {"source": [{"prefix": 3}]},
            {"source": [{"prefix": "a", "extra": 1}]},
            {"source": [["nested"]]},
        ],
    )
    def test_malformed_patterns_fail_fast(self, pattern):
        with pytest.raises(ConfigurationError):
            compile_pattern(pattern, rule_name="bad")

    def test_error_names_rule(self):
        with pytest.raises(ConfigurationError, match="my-rule"):
            compile_pattern({"source": []}, rule_name="my-rule")
