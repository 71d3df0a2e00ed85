"""Decoding of loosely structured model output into typed results.

Models wrap their JSON in markdown fences, explain themselves before or
after it, and escape quotes inconsistently. Decoding is:

1. take the interior of a ```json fenced block if there is one;
2. otherwise the first balanced ``{...}`` object in the text;
3. ``json.loads`` it and map fields onto the target model, cleaning every
   string array (trimmed, ``\\"`` un-escaped) and defaulting absent arrays
   to ``[]``.

Anything that cannot be decoded raises ``CodecError``; there are no partial
results.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fishbowl.analysis.models import (
    DailyAnalysisResult,
    DeepThemeAnalysis,
    WeeklyAnalyticsResult,
)
from fishbowl.errors import CodecError, CodecErrorKind
from fishbowl.themes.models import Theme

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_JSON_FENCE_RE = re.compile(r"```json[ \t]*\n?(.*?)\n?[ \t]*```", re.DOTALL | re.IGNORECASE)
_THEME_REQUIRED = ("name", "summary", "frequency", "evolution")


def _first_balanced_object(text: str) -> str | None:
    """Return the earliest-starting ``{...}`` span whose braces balance, ignoring strings.

    One pass over the text: if the first ``{`` never closes, the earliest
    nested object that did close is returned instead.
    """
    start = text.find("{")
    if start == -1:
        return None
    opens: list[int] = []
    best: tuple[int, int] | None = None
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            opens.append(i)
        elif ch == "}":
            opened = opens.pop()
            if not opens:
                return text[opened : i + 1]
            if best is None or opened < best[0]:
                best = (opened, i)
    if best is None:
        return None
    return text[best[0] : best[1] + 1]


def extract_json_text(raw: str) -> str:
    """Pick the JSON candidate out of free-form model text.

    Raises:
        CodecError: ``malformed`` if there is no candidate at all.
    """
    match = _JSON_FENCE_RE.search(raw)
    if match:
        return match.group(1).strip()
    candidate = _first_balanced_object(raw)
    if candidate is None:
        raise CodecError(CodecErrorKind.MALFORMED, "no JSON object in model output")
    return candidate


def _load_object(raw: str) -> dict[str, Any]:
    text = extract_json_text(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CodecError(CodecErrorKind.MALFORMED, str(exc)) from exc
    if not isinstance(data, dict):
        raise CodecError(CodecErrorKind.SCHEMA_MISMATCH, "expected a JSON object")
    return data


def clean_text_array(value: object) -> list[str]:
    """Trim and un-escape a list of strings; anything else becomes ``[]``."""
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return []
    return [v.strip().replace('\\"', '"') for v in value]


def extract_structured(raw: str, model_type: type[T]) -> T:
    """Decode *raw* into *model_type*, whose fields are strings or string lists.

    Raises:
        CodecError: If no JSON object is found, it does not parse, or it
            shares no field with *model_type*.
    """
    data = _load_object(raw)
    fields = model_type.model_fields
    if not any(name in data for name in fields):
        raise CodecError(
            CodecErrorKind.SCHEMA_MISMATCH,
            f"none of the {model_type.__name__} fields present",
        )

    values: dict[str, object] = {}
    for name, field in fields.items():
        if field.annotation == list[str]:
            values[name] = clean_text_array(data.get(name))
        elif field.annotation is str:
            value = data.get(name)
            values[name] = value.strip() if isinstance(value, str) else ""
    try:
        return model_type.model_validate(values)
    except ValidationError as exc:
        raise CodecError(CodecErrorKind.SCHEMA_MISMATCH, str(exc)) from exc


def decode_daily(raw: str) -> DailyAnalysisResult:
    return extract_structured(raw, DailyAnalysisResult)


def decode_weekly(raw: str) -> WeeklyAnalyticsResult:
    return extract_structured(raw, WeeklyAnalyticsResult)


def decode_deep_theme(raw: str) -> DeepThemeAnalysis:
    return extract_structured(raw, DeepThemeAnalysis)


def _decode_theme_record(record: object, now: datetime) -> Theme | None:
    if not isinstance(record, dict):
        return None
    missing = [key for key in _THEME_REQUIRED if key not in record]
    if missing:
        logger.warning("Dropping theme record missing %s: %r", ", ".join(missing), record)
        return None

    name, summary, evolution = record["name"], record["summary"], record["evolution"]
    frequency = record["frequency"]
    if not all(isinstance(v, str) for v in (name, summary, evolution)):
        logger.warning("Dropping theme record with non-string fields: %r", record)
        return None
    if isinstance(frequency, bool) or not isinstance(frequency, int) or frequency < 0:
        logger.warning("Dropping theme record with bad frequency: %r", record)
        return None
    if not name.strip():
        logger.warning("Dropping theme record with empty name")
        return None

    return Theme(
        name=name.strip()[:1000],
        summary=summary.strip()[:1000],
        frequency=frequency,
        evolution=evolution.strip(),
        last_mentioned=now,
        key_dates=[now],
    )


def decode_themes(raw: str, now: datetime) -> list[Theme]:
    """Decode a discovery response into candidate themes dated *now*.

    Records lacking a required field are dropped individually; the response
    fails only if it has no ``themes`` array or every record was dropped.
    """
    data = _load_object(raw)
    records = data.get("themes")
    if not isinstance(records, list):
        raise CodecError(CodecErrorKind.SCHEMA_MISMATCH, "no 'themes' array")

    themes = [t for t in (_decode_theme_record(r, now) for r in records) if t is not None]
    if records and not themes:
        raise CodecError(CodecErrorKind.MISSING_FIELD, "every theme record was incomplete")
    return themes


def encode_fenced(model: BaseModel) -> str:
    """Render *model* the way a well-behaved model would answer."""
    return f"```json\n{json.dumps(model.model_dump(mode='json'), indent=2)}\n```"
