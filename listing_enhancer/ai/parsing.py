"""
Helpers for turning raw model output into typed values.

Models are asked for strict JSON, but frequently wrap it in a Markdown
code fence. A single leading/trailing fence is stripped; anything else
that is not a JSON object is a ParseError.
"""

import json
import math
import re
from typing import Any

from listing_enhancer.core.exceptions import ParseError
from listing_enhancer.core.models import Issue, Severity

_FENCE_OPEN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")

_SEVERITY_ALIASES: dict[str, Severity] = {
    "critical": Severity.CRITICAL,
    "error": Severity.CRITICAL,
    "high": Severity.CRITICAL,
    "warning": Severity.WARNING,
    "medium": Severity.WARNING,
    "suggestion": Severity.SUGGESTION,
    "info": Severity.SUGGESTION,
    "low": Severity.SUGGESTION,
}


def strip_code_fence(raw: str) -> str:
    """Remove one leading and one trailing Markdown code fence, if present."""
    text = raw.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_json_object(raw: str) -> dict[str, Any]:
    """
    Parse a model response that must be a JSON object.

    Raises:
        ParseError: If the response is empty, not JSON, or not an object.
    """
    if not raw or not raw.strip():
        raise ParseError("Empty model response", raw_response=raw or "")

    try:
        data = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise ParseError(f"Response is not valid JSON: {e.msg}", raw_response=raw) from e

    if not isinstance(data, dict):
        raise ParseError(
            f"Expected a JSON object, got {type(data).__name__}", raw_response=raw
        )
    return data


def require_string(data: dict[str, Any], key: str, raw: str = "") -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ParseError(f"Missing or empty '{key}' in response", raw_response=raw)
    return value.strip()


def require_string_list(data: dict[str, Any], key: str, raw: str = "") -> list[str]:
    value = data.get(key)
    if not isinstance(value, list):
        raise ParseError(f"Missing '{key}' list in response", raw_response=raw)
    return text_items(value, key, raw)


def text_items(items: list[Any], key: str, raw: str = "") -> list[str]:
    """
    Non-blank entries of a model list as strings.

    Scalars are stringified and None is skipped. Nested objects or lists
    mean the model answered in the wrong shape.
    """
    texts: list[str] = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, (dict, list)):
            raise ParseError(f"'{key}' must contain plain text entries", raw_response=raw)
        text = str(item).strip()
        if text:
            texts.append(text)
    return texts


def coerce_severity(value: Any, default: Severity) -> Severity:
    if isinstance(value, str):
        return _SEVERITY_ALIASES.get(value.strip().lower(), default)
    return default


def coerce_issue(item: Any, default_severity: Severity, default_field: str = "general") -> Issue | None:
    """
    Build an Issue from a loosely-shaped model item.

    Accepts objects with any of ``description``/``message``/``issue`` for the
    text, or a bare string. Returns None for items with no usable text.
    """
    if isinstance(item, str):
        text = item.strip()
        if not text:
            return None
        return Issue(field=default_field, severity=default_severity, message=text)

    if not isinstance(item, dict):
        return None

    message = ""
    for key in ("description", "message", "issue"):
        if isinstance(item.get(key), str) and item[key].strip():
            message = item[key].strip()
            break
    if not message:
        return None

    severity = coerce_severity(item.get("severity"), default_severity)
    field_name = item.get("field")
    return Issue(
        field=field_name.strip() if isinstance(field_name, str) and field_name.strip() else default_field,
        severity=severity,
        message=message,
        recommendation=str(item.get("recommendation") or "").strip(),
        policy_reference=_optional_str(item.get("policy_reference")),
        location=_optional_str(item.get("location")),
    )


def coerce_score(value: Any) -> int | None:
    """Clamp a numeric score into 0..100; None when absent or non-numeric."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score):
        return None
    return max(0, min(100, round(score)))


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
