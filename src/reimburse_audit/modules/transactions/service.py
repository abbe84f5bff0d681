from __future__ import annotations

import re
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal

from reimburse_audit.core.logging import get_logger, log_event
from reimburse_audit.core.values import (
    CENT,
    format_staff_name,
    money,
    name_key,
    normalize_money,
)
from reimburse_audit.modules.extraction.fields import (
    FIELD_PATTERNS,
    extract_field,
    extract_form_fields,
    extract_grand_total,
)
from reimburse_audit.modules.extraction.table import (
    NormalizedReceiptRow,
    parse_receipt_table,
    split_cells,
)
from reimburse_audit.modules.transactions.models import (
    BuildResult,
    GroupEntry,
    GroupModeError,
    SubmissionMode,
    Transaction,
)
from reimburse_audit.modules.transactions.narrative import (
    render_group_document,
    render_manual_document,
    render_solo_document,
)

logger = get_logger(__name__)

GROUP_NO_STAFF_MESSAGE = (
    'Group Mode could not detect any staff members. Use "Staff Member: [Name]" block format.'
)
GROUP_TOO_FEW_MESSAGE = "Group Mode requires at least 2 staff entries."

ZERO = Decimal("0.00")
_UNUSABLE_RECEIPT_IDS = {"", "-", "n/a"}

_GROUP_HEADER_CELLS = (
    re.compile(r"^staff\s*name$", re.I),
    re.compile(r"^(?:yp|yb)\s*name$", re.I),
    re.compile(r"^amount$", re.I),
)
_STAFF_BLOCK_SPLIT_RE = re.compile(r"Staff\s*Member\s*:", re.I)
_GROUP_LINE_RE = re.compile(
    r"^[ \t]*(?:[-*][ \t]+)?([A-Za-z][A-Za-z'’ .,\-]*?)(?:[ \t]+-[ \t]+|[ \t]*:[ \t]*)"
    r"\$?[ \t]*(\d[\d,]*(?:\.\d{1,2})?)[ \t]*$",
    re.M,
)
_NOT_A_NAME_RE = re.compile(r"total|amount|grand|date|receipt", re.I)


def default_receipt_id() -> str:
    return f"RCPT-MANUAL-{uuid.uuid4().hex[:4].upper()}"


def _today(now: datetime) -> str:
    return now.date().isoformat()


def _particular_rows(form_text: str) -> list[NormalizedReceiptRow]:
    starts = [m.start() for m in FIELD_PATTERNS["particular"][0].finditer(form_text)]
    rows: list[NormalizedReceiptRow] = []
    for idx, start in enumerate(starts, start=1):
        end = starts[idx] if idx < len(starts) else len(form_text)
        block = form_text[start:end]
        particular = extract_field(block, "particular")
        amount_raw = extract_field(block, "amount")
        if not particular and not amount_raw:
            continue
        amount = normalize_money(amount_raw)
        on_charge = extract_field(block, "on_charge")
        rows.append(
            NormalizedReceiptRow(
                receipt_num=str(idx),
                unique_id=f"particular-{idx}",
                store_name=particular or "reimbursement",
                date_time=extract_field(block, "date_purchased"),
                product=particular,
                category="Other",
                item_amount=amount,
                receipt_total=amount,
                notes=f"On charge: {on_charge}" if on_charge else "",
            )
        )
    return rows


def _row_amounts(rows: Iterable[NormalizedReceiptRow]) -> list[Decimal]:
    """Per-row amounts where a receipt total backing several "Included in total" rows counts once.

    Negative amounts count as zero.
    """
    counted: set[str] = set()
    amounts: list[Decimal] = []
    for row in rows:
        if row.item_included_in_total:
            key = row.receipt_num.strip().lower()
            amounts.append(ZERO if key in counted else max(row.line_amount, ZERO))
            counted.add(key)
        else:
            amounts.append(max(row.line_amount, ZERO))
    return amounts


def _receipt_id(row: NormalizedReceiptRow, idx: int) -> str:
    if row.unique_id.strip().lower() in _UNUSABLE_RECEIPT_IDS:
        return str(idx)
    return row.unique_id


def build_solo(
    form_text: str,
    receipt_text: str,
    *,
    now: datetime,
    id_factory: Callable[[], str],
) -> BuildResult:
    form = extract_form_fields(form_text)
    table = parse_receipt_table(receipt_text or form_text)
    receipt_grand_total = table.grand_total
    if receipt_grand_total is None:
        receipt_grand_total = extract_grand_total(receipt_text)

    rows = table.rows or _particular_rows(form_text)
    staff_name = form.staff_member or "Unknown"
    common = {
        "staff_name": staff_name,
        "formatted_name": format_staff_name(staff_name),
        "client_or_location": form.client_name,
        "address": form.address,
        "expense_type": "Reimbursement",
    }

    if rows:
        transactions = [
            Transaction(
                **common,
                amount=amount,
                receipt_id=_receipt_id(row, idx),
                date=row.date_time or _today(now),
                product=row.product or "Reimbursement",
            )
            for idx, (row, amount) in enumerate(zip(rows, _row_amounts(rows)), start=1)
        ]
    else:
        fallback = form.form_total if form.form_total is not None else receipt_grand_total
        transactions = [
            Transaction(
                **common,
                amount=max(fallback or ZERO, ZERO),
                receipt_id="1",
                date=_today(now),
                product="Reimbursement",
            )
        ]

    total = sum((t.amount for t in transactions), Decimal("0.00")).quantize(CENT)
    document = render_solo_document(
        form=form, rows=rows, total=total, receipt_id=id_factory()
    )
    return BuildResult(
        mode=SubmissionMode.SOLO,
        transactions=transactions,
        total=total,
        document=document,
        form=form,
        rows=list(rows),
        receipt_grand_total=receipt_grand_total,
    )


def _is_group_header(cells: list[str]) -> bool:
    return len(cells) == 3 and all(p.match(c) for p, c in zip(_GROUP_HEADER_CELLS, cells))


def _group_table_entries(lines: list[str], location: str) -> list[GroupEntry]:
    header_idx = next(
        (i for i, line in enumerate(lines) if "|" in line and _is_group_header(split_cells(line))),
        None,
    )
    if header_idx is None:
        return []

    entries: list[GroupEntry] = []
    for line in lines[header_idx + 1 :]:
        if not line or "|" not in line:
            if entries:
                break
            continue
        if re.match(r"^:?-{3,}", line.replace("|", "").strip()):
            continue
        cells = [c.strip() for c in line.strip().strip("|").split("|")]
        if len(cells) < 3:
            continue
        staff_name = format_staff_name(cells[0])
        amount = money(cells[2])
        if not staff_name or amount <= 0:
            continue
        entries.append(
            GroupEntry(staff_name=staff_name, amount=amount, yp_name=cells[1], location=location)
        )
    return entries


def _group_block_entries(text: str, location: str) -> list[GroupEntry]:
    entries: list[GroupEntry] = []
    for block in _STAFF_BLOCK_SPLIT_RE.split(text)[1:]:
        staff_name = format_staff_name(block.strip().split("\n", 1)[0])
        amount = money(extract_field(block, "amount"))
        if not staff_name or amount <= 0:
            continue
        entries.append(
            GroupEntry(
                staff_name=staff_name,
                amount=amount,
                yp_name=extract_field(block, "yp_name"),
                location=location,
            )
        )
    return entries


def _group_line_entries(text: str, location: str) -> list[GroupEntry]:
    entries: list[GroupEntry] = []
    for m in _GROUP_LINE_RE.finditer(text):
        name = m.group(1).strip()
        if _NOT_A_NAME_RE.search(name):
            continue
        entries.append(
            GroupEntry(staff_name=format_staff_name(name), amount=money(m.group(2)), location=location)
        )
    return entries


def parse_group_entries(text: str) -> list[GroupEntry]:
    """Staff entries from a group submission, trying the table, block and line formats in turn."""
    location = extract_field(text, "client_location")
    lines = [line.strip() for line in text.splitlines()]
    return (
        _group_table_entries(lines, location)
        or _group_block_entries(text, location)
        or _group_line_entries(text, location)
    )


def build_group(
    form_text: str,
    receipt_text: str,
    *,
    outstanding_staff: Iterable[str],
    now: datetime,
) -> BuildResult:
    entries = parse_group_entries(f"{form_text}\n{receipt_text}")
    if not entries:
        raise GroupModeError(GROUP_NO_STAFF_MESSAGE)
    if len({name_key(entry.staff_name) for entry in entries}) < 2:
        raise GroupModeError(GROUP_TOO_FEW_MESSAGE, staff_name=entries[0].staff_name)

    outstanding = {name_key(name) for name in outstanding_staff if name_key(name)}
    for entry in entries:
        if name_key(entry.staff_name) in outstanding:
            raise GroupModeError(
                f"Blocked: {entry.staff_name} has an outstanding liquidation. "
                "Please settle it first.",
                staff_name=entry.staff_name,
            )

    transactions = [
        Transaction(
            staff_name=entry.staff_name,
            formatted_name=format_staff_name(entry.staff_name),
            amount=entry.amount,
            client_or_location=entry.yp_name,
            address=entry.location,
            expense_type="Petty Cash",
            receipt_id=str(idx),
            date=_today(now),
            product="Group Petty Cash",
        )
        for idx, entry in enumerate(entries, start=1)
    ]
    total = sum((t.amount for t in transactions), Decimal("0.00")).quantize(CENT)
    return BuildResult(
        mode=SubmissionMode.GROUP,
        transactions=transactions,
        total=total,
        document=render_group_document(entries=entries, total=total),
    )


def build_manual(*, now: datetime) -> BuildResult:
    stub = Transaction(
        staff_name="Unknown",
        formatted_name="Unknown",
        amount=Decimal("0.00"),
        client_or_location="",
        address="",
        expense_type="Manual Entry",
        receipt_id="MANUAL-ENTRY",
        date=_today(now),
        product="Manual Item",
    )
    return BuildResult(
        mode=SubmissionMode.MANUAL,
        transactions=[stub],
        total=Decimal("0.00"),
        document=render_manual_document(),
    )


def build_transactions(
    mode: SubmissionMode,
    form_text: str | None,
    receipt_text: str | None,
    *,
    outstanding_staff: Iterable[str] = (),
    now: datetime | None = None,
    id_factory: Callable[[], str] | None = None,
) -> BuildResult:
    """
    Turn raw form/receipt text into transactions and a narrative document for ``mode``.

    Group-mode refusals come back as a result with ``error_message`` set and no transactions.
    """
    now = now or datetime.now(UTC)
    form_text = form_text or ""
    receipt_text = receipt_text or ""

    if mode == SubmissionMode.MANUAL:
        result = build_manual(now=now)
    elif mode == SubmissionMode.GROUP:
        try:
            result = build_group(
                form_text, receipt_text, outstanding_staff=outstanding_staff, now=now
            )
        except GroupModeError as exc:
            log_event(
                logger,
                "builder.group.blocked",
                reason=str(exc),
                staff_name=exc.staff_name,
            )
            return BuildResult(
                mode=mode,
                transactions=[],
                total=Decimal("0.00"),
                document="",
                error_message=str(exc),
            )
    else:
        result = build_solo(
            form_text, receipt_text, now=now, id_factory=id_factory or default_receipt_id
        )

    log_event(
        logger,
        "builder.build.finish",
        mode=mode.value,
        transactions=len(result.transactions),
        rows=len(result.rows),
        total=str(result.total),
    )
    return result
