"""Field normalizer: heterogeneous wire values -> canonical scalars.

``normalize(kind, raw, text)`` returns a typed value or None. Unparseable
input yields None and never raises; callers treat None as "value absent".
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

log = logging.getLogger(__name__)

_HHMMSS_RE = re.compile(r"^(\d{1,3}):(\d{2})(?::(\d{2}))?$")
_MONEY_STRIP_RE = re.compile(r"[$,\s]|AUD|USD", re.IGNORECASE)

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y")


@dataclass(frozen=True)
class PersonRef:
    """A people-column entry: a person or a team."""

    id: str
    kind: str = "person"  # person, team

    @property
    def is_person(self) -> bool:
        return self.kind == "person"


def _loads(raw: Any) -> Any:
    """Parse JSON strings; pass structured values through."""
    if isinstance(raw, str):
        stripped = raw.strip()
        if not stripped or stripped[0] not in "{[\"":
            return None
        try:
            return json.loads(stripped)
        except ValueError:
            return None
    return raw


def _first_text(raw: Any, text: str | None) -> str | None:
    for candidate in (text, raw):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def round_hours(hours: float) -> float:
    return round(hours + 1e-9, 2)


def _status(raw: Any, text: str | None) -> str | None:
    if isinstance(text, str) and text.strip():
        return text.strip()
    parsed = _loads(raw)
    if isinstance(parsed, dict):
        label = parsed.get("label")
        if isinstance(label, dict):
            label = label.get("text")
        if isinstance(label, str) and label.strip():
            return label.strip()
        return None
    if isinstance(raw, str) and raw.strip() and parsed is None:
        return raw.strip()
    return None


def _people(raw: Any, text: str | None) -> list[PersonRef] | None:
    parsed = _loads(raw)
    entries = parsed.get("personsAndTeams") if isinstance(parsed, dict) else parsed
    if not isinstance(entries, list):
        return None
    refs = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("id") in (None, ""):
            continue
        kind = "team" if str(entry.get("kind") or "person").lower() in {"team", "group"} else "person"
        refs.append(PersonRef(id=str(entry["id"]), kind=kind))
    return refs or None


def _parse_date_text(value: str) -> date | None:
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _date(raw: Any, text: str | None) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    parsed = _loads(raw)
    if isinstance(parsed, dict) and isinstance(parsed.get("date"), str):
        found = _parse_date_text(parsed["date"])
        if found:
            return found
    value = _first_text(raw if parsed is None else None, text)
    return _parse_date_text(value) if value else None


def _seconds_to_hours(seconds: Any) -> float | None:
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if seconds <= 0:
        return None
    return round_hours(seconds / 3600)


def _hhmmss(value: str) -> float | None:
    match = _HHMMSS_RE.match(value.strip())
    if not match:
        return None
    hours = int(match.group(1))
    minutes = int(match.group(2))
    seconds = int(match.group(3) or 0)
    if minutes >= 60 or seconds >= 60:
        return None
    return round_hours(hours + minutes / 60 + seconds / 3600)


def _time(raw: Any, text: str | None) -> float | None:
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return _seconds_to_hours(raw)
    parsed = _loads(raw)
    if isinstance(parsed, dict):
        hours = _seconds_to_hours(parsed.get("duration"))
        if hours is not None:
            return hours
        additional = parsed.get("additional_value")
        if isinstance(additional, str):
            additional = _loads(additional)
        if isinstance(additional, dict):
            hours = _seconds_to_hours(additional.get("duration"))
            if hours is not None:
                return hours
        if isinstance(additional, list):
            total = 0.0
            for entry in additional:
                if isinstance(entry, dict) and isinstance(entry.get("duration"), (int, float)):
                    total += entry["duration"]
            if total > 0:
                return round_hours(total / 3600)
    for candidate in (raw if parsed is None else None, text):
        if isinstance(candidate, str):
            hours = _hhmmss(candidate)
            if hours is not None:
                return hours
    return None


def parse_number(value: Any) -> float | None:
    """Parse a currency / thousands-separated number, e.g. "$1,250.50"."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None
    cleaned = _MONEY_STRIP_RE.sub("", value)
    negative = cleaned.startswith("(") and cleaned.endswith(")")
    cleaned = cleaned.strip("()")
    if not cleaned:
        return None
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return -number if negative else number


def _number(raw: Any, text: str | None) -> float | None:
    parsed = _loads(raw)
    if isinstance(parsed, (int, float, str)) and not isinstance(parsed, bool):
        number = parse_number(parsed)
        if number is not None:
            return number
    for candidate in (raw if parsed is None else None, text):
        number = parse_number(candidate)
        if number is not None:
            return number
    return None


def _labels(raw: Any, text: str | None) -> list[str] | None:
    if isinstance(text, str) and text.strip():
        return [s.strip() for s in text.split(",") if s.strip()] or None
    if isinstance(raw, list):
        return [str(v).strip() for v in raw if str(v).strip()] or None
    parsed = _loads(raw)
    if isinstance(parsed, dict):
        for key in ("labels", "ids"):
            values = parsed.get(key)
            if isinstance(values, list):
                return [str(v) for v in values if str(v).strip()] or None
        return None
    if isinstance(raw, str) and parsed is None:
        return [s.strip() for s in raw.split(",") if s.strip()] or None
    return None


def _text(raw: Any, text: str | None) -> str | None:
    if isinstance(text, str) and text.strip():
        return text.strip()
    parsed = _loads(raw)
    if isinstance(parsed, str):
        return parsed.strip() or None
    if isinstance(raw, str) and parsed is None:
        return raw.strip() or None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    return None


def normalize_month(value: Any) -> str | None:
    """Normalize to YYYY-MM from YYYY-MM, YYYY-MM-DD, MM/YYYY or "Month YYYY"."""
    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-{value.month:02d}"
    if not isinstance(value, str):
        return None
    value = value.strip()
    match = re.match(r"^(\d{4})-(\d{1,2})(?:-\d{1,2}(?:[T ].*)?)?$", value)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        match = re.match(r"^(\d{1,2})/(\d{4})$", value)
        if match:
            month, year = int(match.group(1)), int(match.group(2))
        else:
            match = re.match(r"^([A-Za-z]+)\.?\s+(\d{4})$", value)
            if not match or match.group(1).lower() not in _MONTHS:
                return None
            month, year = _MONTHS[match.group(1).lower()], int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return f"{year:04d}-{month:02d}"


def _month(raw: Any, text: str | None) -> str | None:
    return normalize_month(text if text else raw)


_HANDLERS: dict[str, Callable[[Any, str | None], Any]] = {
    "status": _status,
    "people": _people,
    "date": _date,
    "time": _time,
    "number": _number,
    "labels": _labels,
    "text": _text,
    "month": _month,
}

_KIND_ALIASES = {
    "color": "status",
    "multiple-person": "people",
    "person": "people",
    "time_tracking": "time",
    "timetracking": "time",
    "duration": "time",
    "numbers": "number",
    "numeric": "number",
    "currency": "number",
    "dropdown": "labels",
    "tags": "labels",
    "long_text": "text",
    "long-text": "text",
}


def normalize(kind: str, raw: Any, text: str | None = None) -> Any:
    """Translate a raw wire value of ``kind`` into a canonical value, or None."""
    if (raw is None or raw == "") and not text:
        return None
    key = _KIND_ALIASES.get(kind, kind)
    handler = _HANDLERS.get(key, _text)
    try:
        return handler(raw, text)
    except Exception:
        log.debug("Could not normalize %s value %r", kind, raw, exc_info=True)
        return None
