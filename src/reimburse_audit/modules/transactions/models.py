from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

from reimburse_audit.modules.extraction.fields import FormFields
from reimburse_audit.modules.extraction.table import NormalizedReceiptRow


class SubmissionMode(str, enum.Enum):
    SOLO = "solo"
    GROUP = "group"
    MANUAL = "manual"


@dataclass(frozen=True)
class Transaction:
    staff_name: str
    formatted_name: str
    amount: Decimal
    client_or_location: str
    address: str
    expense_type: str
    receipt_id: str
    date: str
    product: str = ""
    reference: str = ""


@dataclass(frozen=True)
class GroupEntry:
    staff_name: str
    amount: Decimal
    yp_name: str = ""
    location: str = ""


@dataclass(frozen=True)
class BuildResult:
    mode: SubmissionMode
    transactions: list[Transaction]
    total: Decimal
    document: str
    form: FormFields = field(default_factory=FormFields)
    rows: list[NormalizedReceiptRow] = field(default_factory=list)
    receipt_grand_total: Decimal | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_message is None


class GroupModeError(Exception):
    """Group submission cannot proceed; the message is shown to the submitter as-is."""

    def __init__(self, message: str, *, staff_name: str | None = None) -> None:
        super().__init__(message)
        self.staff_name = staff_name
