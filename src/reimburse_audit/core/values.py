"""
Canonical forms for the loosely typed values found in reimbursement text.

Every helper here is total: malformed input produces a fallback value, never an exception.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

INCLUDED_IN_TOTAL = "Included in total"

_MONEY_STRIP_RE = re.compile(r"[^0-9.\-]")
_ISO_IN_TEXT_RE = re.compile(r"(?<!\d)(\d{4})-(\d{1,2})-(\d{1,2})(?!\d)")
_DMY_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})")
_DATE_LIKE_RE = re.compile(
    r"(\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}|\d{4}-\d{2}-\d{2}|\btime\b|\b\d{1,2}:\d{2}\s*(?:am|pm)?\b)",
    re.I,
)
_TEXT_DATE_FORMATS = (
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%a, %d %b %Y",
)

# Lowercased placeholder values that never count as a settled reference.
PLACEHOLDER_REFERENCES = frozenset(
    {
        "pending",
        "nab code is pending",
        "n/a",
        "enter nab code",
        "enter nab reference",
        "[enter nab code]",
        "[enter nab reference]",
    }
)
PENDING_REFERENCES = PLACEHOLDER_REFERENCES - {"n/a"}

CENT = Decimal("0.01")


def normalize_money(raw: object, fallback: str = "0.00") -> str:
    text = str(raw if raw is not None else "").strip()
    if not text:
        return fallback
    numeric = _MONEY_STRIP_RE.sub("", text)
    if not numeric:
        return fallback
    try:
        value = Decimal(numeric)
        if not value.is_finite():
            return fallback
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return fallback
    if value == 0:
        return "0.00"
    return f"{value:.2f}"


def money(raw: object, fallback: str = "0.00") -> Decimal:
    return Decimal(normalize_money(raw, fallback=normalize_money(fallback)))


def format_money(value: Decimal) -> str:
    return f"${value.quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def parse_date(raw: object) -> date | None:
    text = str(raw if raw is not None else "").strip()
    if not text:
        return None

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    m = _ISO_IN_TEXT_RE.search(text)
    if m:
        year, month, day = (int(part) for part in m.groups())
        try:
            return date(year, month, day)
        except ValueError:
            return None

    m = _DMY_RE.search(text)
    if not m:
        return None
    day, month, year = (int(part) for part in m.groups())
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def date_key(raw: object) -> str:
    parsed = parse_date(raw)
    if parsed is None:
        return str(raw if raw is not None else "").strip().lower()
    return parsed.isoformat()


def is_date_like(value: str | None) -> bool:
    return bool(_DATE_LIKE_RE.search(value or ""))


def format_staff_name(raw: object) -> str:
    """Turn ``"SMITH, John"`` into ``"John SMITH"``; other shapes pass through trimmed."""
    name = str(raw if raw is not None else "").replace("**", "").strip()
    if "," in name:
        last, _, first = name.partition(",")
        if first.strip():
            name = f"{first.strip()} {last.strip()}"
    return re.sub(r"\s+", " ", name)


def name_key(raw: object) -> str:
    lowered = format_staff_name(raw).lower()
    return re.sub(r"\s+", " ", re.sub(r"[^a-z\s]", " ", lowered)).strip()


def is_valid_reference(value: str | None) -> bool:
    if not value:
        return False
    normalized = value.strip().lower()
    if not normalized:
        return False
    return normalized not in PLACEHOLDER_REFERENCES


def is_pending_reference(value: str | None) -> bool:
    if not value:
        return False
    return value.strip().lower() in PENDING_REFERENCES


def reference_key(value: str | None) -> str:
    raw = (value or "").strip()
    if not is_valid_reference(raw):
        return ""
    return raw.lower()
