from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from reimburse_audit.core.values import money

# Logical field -> label spellings, tried in order. A label only matches at the start of a line.
FIELD_LABELS: dict[str, tuple[str, ...]] = {
    "client_name": (
        r"Client(?:'|’|`)?s?\s*full\s*name",
        r"Client(?:'|’|`)?s?\s*name",
        r"Name",
    ),
    "address": (r"Address",),
    "staff_member": (
        r"Staff\s*member\s*to\s*reimburse",
        r"Staff\s*member",
    ),
    "approved_by": (r"Approved\s*by",),
    "total_amount": (r"Total\s*amount",),
    "particular": (r"Particular",),
    "date_purchased": (r"Date\s*purchased",),
    "amount": (r"Amount",),
    "on_charge": (r"On\s*charge\s*Y\s*/\s*N", r"On\s*charge"),
    "client_location": (r"Client\s*/\s*Location", r"Location"),
    "receipt_id": (r"Receipt\s*ID",),
    "reference": (r"NAB\s*(?:Code|Reference)", r"Bank\s*reference"),
    "yp_name": (r"(?:YP|YB)\s*Name",),
}

_EMPHASIS = r"(?:\*\*|__|\*|_)?"


def _compile(label: str) -> re.Pattern[str]:
    return re.compile(
        rf"^[ \t>\-]*{_EMPHASIS}[ \t]*{label}[ \t]*{_EMPHASIS}[ \t]*:[ \t]*{_EMPHASIS}[ \t]*(.*)$",
        re.I | re.M,
    )


FIELD_PATTERNS: dict[str, tuple[re.Pattern[str], ...]] = {
    field: tuple(_compile(label) for label in labels) for field, labels in FIELD_LABELS.items()
}

_GRAND_TOTAL_RE = re.compile(r"GRAND\s*TOTAL.*?\$\s*([\d,]+\.?\d*)", re.I)


def _clean_value(raw: str) -> str:
    return raw.replace("**", "").strip()


def extract_field(text: str | None, field: str) -> str:
    """First non-empty value for ``field`` in ``text``; ``""`` when no label matches."""
    content = text or ""
    for pattern in FIELD_PATTERNS[field]:
        for m in pattern.finditer(content):
            value = _clean_value(m.group(1))
            if value:
                return value
    return ""


def extract_fields(text: str | None, *fields: str) -> dict[str, str]:
    return {field: extract_field(text, field) for field in fields}


def extract_amount(text: str | None, field: str) -> Decimal | None:
    raw = extract_field(text, field)
    if not re.search(r"\d", raw):
        return None
    return money(raw)


def extract_grand_total(text: str | None) -> Decimal | None:
    m = _GRAND_TOTAL_RE.search(text or "")
    if not m:
        return None
    return money(m.group(1))


@dataclass(frozen=True)
class FormFields:
    client_name: str = ""
    address: str = ""
    staff_member: str = ""
    approved_by: str = ""
    client_location: str = ""
    form_total: Decimal | None = None

    @property
    def has_form_data(self) -> bool:
        return bool(self.client_name or self.staff_member)


def extract_form_fields(form_text: str | None) -> FormFields:
    values = extract_fields(
        form_text, "client_name", "address", "staff_member", "approved_by", "client_location"
    )
    return FormFields(
        **values,
        form_total=extract_amount(form_text, "total_amount"),
    )
