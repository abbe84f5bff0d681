from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from reimburse_audit.core.logging import get_logger, log_event
from reimburse_audit.core.values import money, normalize_money
from reimburse_audit.modules.extraction.table import NormalizedReceiptRow
from reimburse_audit.modules.transactions.models import BuildResult, SubmissionMode
from reimburse_audit.modules.transactions.service import build_transactions

logger = get_logger(__name__)

MISMATCH_TOLERANCE = Decimal("0.01")


class IssueLevel(str, enum.Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ManualAuditIssue:
    level: IssueLevel
    message: str


class SubmissionStatus(str, enum.Enum):
    COMPLETE = "complete"
    NEEDS_APPROVAL = "needs_approval"
    ERROR = "error"


@dataclass(frozen=True)
class SubmissionOutcome:
    status: SubmissionStatus
    result: BuildResult
    issues: list[ManualAuditIssue] = field(default_factory=list)
    bypassed: bool = False


@dataclass(frozen=True)
class _RowRef:
    row_num: int
    receipt_num: str
    product: str
    amount: str


def _warning(message: str) -> ManualAuditIssue:
    return ManualAuditIssue(level=IssueLevel.WARNING, message=message)


def _missing(value: str | None) -> bool:
    return not value or not value.strip() or value.strip() == "-"


def _rows_label(refs: Sequence[_RowRef]) -> str:
    return ", ".join(str(ref.row_num) for ref in refs)


def build_manual_audit_issues(
    rows: Sequence[NormalizedReceiptRow],
    *,
    form_total: Decimal | None,
    receipt_grand_total: Decimal | None,
    client_name: str,
    address: str,
    staff_member: str,
    approved_by: str,
) -> list[ManualAuditIssue]:
    """
    Pre-flight completeness checks for a solo submission.

    Only "no rows at all" is an error (and stops further row checks); everything else is a
    warning. Any issue at all pauses the pipeline until the submitter approves once.
    """
    issues: list[ManualAuditIssue] = []
    if not client_name:
        issues.append(_warning("Missing 'Client's Full Name' in Reimbursement Form."))
    if not address:
        issues.append(_warning("Missing 'Address' in Reimbursement Form."))
    if not staff_member:
        issues.append(_warning("Missing 'Staff member to reimburse' in Reimbursement Form."))
    if not approved_by:
        issues.append(_warning("Missing 'Approved by' in Reimbursement Form."))

    if not rows:
        issues.append(
            ManualAuditIssue(
                level=IssueLevel.ERROR,
                message="No valid receipt rows found. Check table format before continuing.",
            )
        )
        return issues

    by_uid: dict[str, list[_RowRef]] = {}
    by_signature: dict[str, list[_RowRef]] = {}

    for row_num, row in enumerate(rows, start=1):
        amount = normalize_money(row.receipt_total)
        ref = _RowRef(
            row_num=row_num,
            receipt_num=row.receipt_num.strip(),
            product=row.product.strip().lower(),
            amount=amount,
        )

        uid = row.unique_id.strip().lower()
        if uid and uid not in {"-", "n/a"}:
            by_uid.setdefault(uid, []).append(ref)

        signature = "|".join(
            [row.store_name.strip().lower(), row.date_time.strip().lower(), amount]
        )
        if signature != "||0.00":
            by_signature.setdefault(signature, []).append(ref)

        if _missing(row.product):
            issues.append(_warning(f"Row {row_num}: missing Product (Per Item)."))
        if _missing(row.date_time):
            issues.append(_warning(f"Row {row_num}: missing Date & Time."))
        if money(amount) <= 0:
            issues.append(_warning(f"Row {row_num}: invalid Receipt Total."))

    for refs in by_uid.values():
        if len(refs) < 2:
            continue
        # Several line items of one receipt share its id; only flag when the rows disagree on the
        # receipt number or repeat the same product at the same amount.
        receipt_nums = {ref.receipt_num for ref in refs}
        line_items = {(ref.product, ref.amount) for ref in refs}
        if len(receipt_nums) > 1 or len(line_items) < len(refs):
            issues.append(
                _warning(
                    "Possible double entry: same Unique ID / Fallback in rows "
                    f"{_rows_label(refs)}."
                )
            )

    for refs in by_signature.values():
        if len(refs) < 2:
            continue
        if len({(ref.product, ref.amount) for ref in refs}) < len(refs):
            issues.append(
                _warning(
                    "Possible duplicate receipt (same Store + Date/Time + Total) in rows "
                    f"{_rows_label(refs)}."
                )
            )

    if receipt_grand_total is not None and form_total is not None and form_total > 0:
        if abs(form_total - receipt_grand_total) > MISMATCH_TOLERANCE:
            issues.append(
                _warning(
                    f"Total mismatch: Form Total ${form_total:.2f} vs Receipt GRAND TOTAL "
                    f"${receipt_grand_total:.2f}."
                )
            )

    return issues


def audit_build_result(result: BuildResult) -> list[ManualAuditIssue]:
    if result.mode != SubmissionMode.SOLO:
        return []
    form = result.form
    form_total = form.form_total if form.form_total is not None else result.receipt_grand_total
    return build_manual_audit_issues(
        result.rows,
        form_total=form_total,
        receipt_grand_total=result.receipt_grand_total,
        client_name=form.client_name,
        address=form.address,
        staff_member=form.staff_member,
        approved_by=form.approved_by,
    )


def process_submission(
    mode: SubmissionMode,
    form_text: str | None,
    receipt_text: str | None,
    *,
    bypass_manual_audit: bool = False,
    outstanding_staff: Iterable[str] = (),
    now: datetime | None = None,
    id_factory: Callable[[], str] | None = None,
) -> SubmissionOutcome:
    """Build a submission and run it through the manual-audit gate."""
    result = build_transactions(
        mode,
        form_text,
        receipt_text,
        outstanding_staff=outstanding_staff,
        now=now,
        id_factory=id_factory,
    )
    if not result.ok:
        return SubmissionOutcome(status=SubmissionStatus.ERROR, result=result)

    issues = audit_build_result(result)
    if issues and not bypass_manual_audit:
        log_event(
            logger,
            "audit.manual.issues",
            mode=mode.value,
            errors=sum(1 for i in issues if i.level == IssueLevel.ERROR),
            warnings=sum(1 for i in issues if i.level == IssueLevel.WARNING),
        )
        return SubmissionOutcome(
            status=SubmissionStatus.NEEDS_APPROVAL, result=result, issues=issues
        )

    if issues:
        log_event(logger, "audit.gate.bypassed", mode=mode.value, issues=len(issues))
    return SubmissionOutcome(
        status=SubmissionStatus.COMPLETE,
        result=result,
        issues=issues,
        bypassed=bool(issues),
    )
