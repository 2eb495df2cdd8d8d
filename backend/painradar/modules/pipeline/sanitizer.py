"""Post-processing of raw LLM output before Pydantic validation.

Fixes the shapes models commonly get wrong:
  1. JSON wrapped in markdown code fences or surrounded by prose
  2. camelCase keys where the schemas use snake_case
  3. Severity values in the wrong case ("High")
  4. Confidence on a 0-100 scale instead of 0-1
  5. A bare item or bare list where a {collection: [...]} object is expected
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


# ---------------------------------------------------------------------------
# JSON recovery
# ---------------------------------------------------------------------------


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from LLM response."""
    text = raw_text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def parse_json(raw_text: str) -> Any:
    """Parse JSON from model text, trying progressively looser extractions.

    Order: the whole text, then the first fenced code block, then everything
    from the first ``{`` to the last ``}``. Raises ValueError if none parse.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("empty content")

    try:
        return json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError:
        pass

    fenced = _FENCE_RE.search(raw_text)
    if fenced:
        try:
            return json.loads(fenced.group(1).strip())
        except json.JSONDecodeError:
            pass

    start = raw_text.find("{")
    end = raw_text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(raw_text[start:end + 1])
        except json.JSONDecodeError:
            pass

    raise ValueError("no parseable JSON object in content")


# ---------------------------------------------------------------------------
# Shape fixes
# ---------------------------------------------------------------------------


def to_snake_case(key: str) -> str:
    return _CAMEL_RE.sub(r"_\1", key).lower()


def normalize_keys(data: Any) -> Any:
    """Recursively convert camelCase dict keys to snake_case."""
    if isinstance(data, dict):
        return {to_snake_case(str(k)): normalize_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_keys(item) for item in data]
    return data


def _fix_item(item: Any) -> Any:
    if not isinstance(item, dict):
        return item
    fixed = dict(item)

    severity = fixed.get("severity")
    if isinstance(severity, str):
        fixed["severity"] = severity.strip().lower()

    confidence = fixed.get("confidence")
    if isinstance(confidence, (int, float)) and 1 < confidence <= 100:
        fixed["confidence"] = confidence / 100

    if isinstance(fixed.get("examples"), str):
        fixed["examples"] = [fixed["examples"]]

    return fixed


def sanitize_stage_output(data: Any, collection_key: str) -> dict[str, Any]:
    """Coerce parsed model output into ``{collection_key: [items...]}``."""
    data = normalize_keys(data)

    if isinstance(data, list):
        data = {collection_key: data}
    elif isinstance(data, dict) and collection_key not in data:
        # A single item, or the collection under a near-miss key
        lists = [v for v in data.values() if isinstance(v, list) and v and isinstance(v[0], dict)]
        if len(lists) == 1 and len(data) == 1:
            data = {collection_key: lists[0]}
        else:
            data = {collection_key: [data]}

    if not isinstance(data, dict):
        raise ValueError(f"expected an object with '{collection_key}', got {type(data).__name__}")

    items = data.get(collection_key)
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        raise ValueError(f"'{collection_key}' is not a list")

    data[collection_key] = [_fix_item(item) for item in items]
    return data
