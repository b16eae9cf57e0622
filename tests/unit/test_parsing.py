"""
Tests for model response parsing helpers.
"""

import pytest

from listing_enhancer.ai.parsing import (
    coerce_issue,
    coerce_score,
    parse_json_object,
    require_string,
    require_string_list,
    strip_code_fence,
    text_items,
)
from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import Severity


class TestParseJsonObject:

    @pytest.mark.parametrize("raw", [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        '```\n{"a": 1}\n```',
        '  {"a": 1}  ',
    ])
    def test_accepts_plain_and_fenced(self, raw):
        assert parse_json_object(raw) == {"a": 1}

    @pytest.mark.parametrize("raw", ["", "   ", "not json", "[1, 2]", '"text"', '{"a": 1'])
    def test_rejects_non_objects(self, raw):
        with pytest.raises(ParseError):
            parse_json_object(raw)

    def test_error_keeps_raw_response(self):
        with pytest.raises(ParseError) as exc_info:
            parse_json_object("nope")
        assert exc_info.value.raw_response == "nope"

    def test_strip_code_fence_leaves_plain_text(self):
        assert strip_code_fence("plain") == "plain"


class TestRequire:

    def test_require_string(self):
        assert require_string({"title": "  Oak Chair "}, "title") == "Oak Chair"
        with pytest.raises(ParseError):
            require_string({"title": 5}, "title")
        with pytest.raises(ParseError):
            require_string({"title": "  "}, "title")

    def test_require_string_list(self):
        assert require_string_list({"b": ["x", " ", 3]}, "b") == ["x", "3"]
        with pytest.raises(ParseError):
            require_string_list({"b": "x"}, "b")

    def test_text_items_skips_none_and_blanks(self):
        assert text_items(["oak", None, "  ", 4.5], "keywords") == ["oak", "4.5"]

    @pytest.mark.parametrize("items", [[{"k": "oak"}], ["oak", ["chair"]]])
    def test_text_items_rejects_nested(self, items):
        with pytest.raises(ParseError):
            text_items(items, "keywords")


class TestCoerce:

    def test_issue_from_string(self):
        issue = coerce_issue("Add the size", Severity.SUGGESTION)
        assert issue.field == "general"
        assert issue.severity == Severity.SUGGESTION

    def test_issue_from_dict(self):
        issue = coerce_issue(
            {"field": "title", "message": "Too long", "severity": "high", "policy_reference": "Title Policy"},
            Severity.WARNING,
        )
        assert issue.field == "title"
        assert issue.severity == Severity.CRITICAL
        assert issue.policy_reference == "Title Policy"

    def test_unknown_severity_uses_default(self):
        issue = coerce_issue({"issue": "x", "severity": "urgent"}, Severity.WARNING)
        assert issue.severity == Severity.WARNING

    @pytest.mark.parametrize("item", [None, 3, "", {"field": "title"}, {"description": "  "}])
    def test_unusable_items(self, item):
        assert coerce_issue(item, Severity.WARNING) is None

    @pytest.mark.parametrize("value, expected", [
        (85, 85),
        ("72.6", 73),
        (140, 100),
        (-5, 0),
        (None, None),
        (True, None),
        ("n/a", None),
        (float("nan"), None),
    ])
    def test_coerce_score(self, value, expected):
        assert coerce_score(value) == expected
