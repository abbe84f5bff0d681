"""
Narrative document rendering and the inline metadata it carries.

The label lines (``**Label:** value``), the table headers and the HTML-comment tags are read
back by the history miner and by the document round trip, so their exact spelling matters.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from reimburse_audit.core.values import (
    format_money,
    format_staff_name,
    is_valid_reference,
    money,
    normalize_money,
)
from reimburse_audit.modules.extraction.fields import FormFields, extract_field
from reimburse_audit.modules.extraction.table import (
    RECEIPT_TABLE_COLUMNS,
    RECEIPT_TABLE_HEADER,
    NormalizedReceiptRow,
    split_cells,
)
from reimburse_audit.modules.transactions.models import GroupEntry, Transaction

GREETING = "Hi,\n\nI hope this message finds you well."
REFERENCE_PLACEHOLDER = "Enter NAB Code"
PENDING_REFERENCE = "Nab code is pending"

GROUP_TABLE_COLUMNS = ("Staff Member", "Client", "Location", "Type", "Amount", "NAB Reference")
GROUP_TABLE_HEADER = "| " + " | ".join(GROUP_TABLE_COLUMNS) + " |"
GROUP_TABLE_MARKER = "<!-- GROUP_TABLE_FORMAT -->"

_AMOUNT_SUFFIX = "(Based on Receipts/Form Audit)"

_STATUS_TAG_RE = re.compile(r"<!--\s*STATUS:\s*(PENDING|PAID)\s*-->", re.I)
_DUPLICATE_AUDIT_RE = re.compile(r"\n*<!--\s*DUPLICATE_AUDIT:.*?-->\s*", re.I | re.S)
_FOLLOWED_UP_RE = re.compile(r"<!--\s*PENDING_FOLLOWED_UP_AT:\s*(.*?)\s*-->", re.I)
_UID_FALLBACKS_RE = re.compile(r"<!--\s*UID_FALLBACKS:(.*?)-->", re.I | re.S)


def _separator(columns: int) -> str:
    return "| " + " | ".join([":---"] * columns) + " |"


def _receipt_row_line(idx: int, row: NormalizedReceiptRow) -> str:
    if row.item_included_in_total:
        item = row.item_amount
    else:
        item = f"${normalize_money(row.item_amount, row.receipt_total)}"
    cells = [
        row.receipt_num or str(idx),
        row.unique_id or "-",
        row.store_name or "-",
        row.date_time or "-",
        row.product or "-",
        row.category or "Other",
        item,
        f"${normalize_money(row.receipt_total)}",
        row.notes or "-",
    ]
    return "| " + " | ".join(cells) + " |"


def uid_fallback_comment(rows: Sequence[NormalizedReceiptRow]) -> str:
    ids = [row.unique_id or row.receipt_num or str(i) for i, row in enumerate(rows, start=1)]
    return f"<!-- UID_FALLBACKS:{'||'.join(ids)} -->"


def render_receipt_table(rows: Sequence[NormalizedReceiptRow]) -> str:
    lines = [RECEIPT_TABLE_HEADER, _separator(len(RECEIPT_TABLE_COLUMNS))]
    lines.extend(_receipt_row_line(i, row) for i, row in enumerate(rows, start=1))
    return "\n".join(lines)


def render_solo_document(
    *,
    form: FormFields,
    rows: Sequence[NormalizedReceiptRow],
    total: Decimal,
    receipt_id: str,
) -> str:
    label_block = "\n".join(
        [
            f"**Staff Member:** {form.staff_member or '[Enter Staff Name]'}",
            f"**Client's Full Name:** {form.client_name or '[Enter Client Name]'}",
            f"**Address:** {form.address or '[Enter Address]'}",
            f"**Approved By:** {form.approved_by or '[Enter Approver]'}",
            f"**Amount:** {format_money(total)}",
            f"**Receipt ID:** {receipt_id}",
            f"**NAB Code:** {REFERENCE_PLACEHOLDER}",
        ]
    )
    parts = [
        GREETING,
        "I am writing to confirm that your reimbursement request has been successfully "
        "processed today.",
        label_block + "\n" + uid_fallback_comment(rows),
        "**Summary of Expenses:**",
        render_receipt_table(rows),
        f"**TOTAL AMOUNT: {format_money(total)}**",
    ]
    return "\n\n".join(parts) + "\n"


def render_group_document(*, entries: Sequence[GroupEntry], total: Decimal) -> str:
    lines = [GROUP_TABLE_HEADER, _separator(len(GROUP_TABLE_COLUMNS))]
    for entry in entries:
        cells = [
            format_staff_name(entry.staff_name),
            entry.yp_name or "-",
            entry.location or "-",
            "Petty Cash",
            format_money(entry.amount),
            REFERENCE_PLACEHOLDER,
        ]
        lines.append("| " + " | ".join(cells) + " |")
    parts = [
        GREETING,
        "I am writing to confirm that your group reimbursement request has been prepared and "
        "processed today.",
        "\n".join(lines),
        f"**TOTAL AMOUNT: {format_money(total)}**",
        f"{GROUP_TABLE_MARKER}\n<!-- STATUS: PENDING -->",
    ]
    return "\n\n".join(parts)


def render_manual_document() -> str:
    row = NormalizedReceiptRow(
        receipt_num="1",
        unique_id="MANUAL-ENTRY",
        store_name="Manual Entry",
        date_time="",
        product="Manual Item",
        category="Other",
        item_amount="0.00",
        receipt_total="0.00",
        notes="Manual entry mode",
    )
    label_block = "\n".join(
        [
            "**Staff Member:** [Enter Staff Name]",
            "**Amount Transferred:** $0.00",
            f"**NAB Reference:** {REFERENCE_PLACEHOLDER}",
        ]
    )
    parts = [
        GREETING,
        "I am writing to confirm that your reimbursement request has been successfully "
        "processed today.",
        label_block,
        "---",
        "**Summary of Expenses**",
        render_receipt_table([row]),
        "**TOTAL AMOUNT: $0.00**",
    ]
    return "\n\n".join(parts) + "\n"


def _append_tag(content: str, tag: str) -> str:
    return f"{content}{'' if content.endswith(chr(10)) else chr(10) * 2}{tag}"


def extract_status(content: str | None) -> str | None:
    m = _STATUS_TAG_RE.search(content or "")
    return m.group(1).upper() if m else None


def upsert_status_tag(content: str, status: str) -> str:
    status = status.upper()
    if status not in {"PENDING", "PAID"}:
        raise ValueError(f"Unsupported status: {status}")
    tag = f"<!-- STATUS: {status} -->"
    if not _STATUS_TAG_RE.search(content):
        return _append_tag(content, tag)
    replaced = _STATUS_TAG_RE.sub(tag, content, count=1)
    head, sep, tail = replaced.partition(tag)
    return head + sep + _STATUS_TAG_RE.sub("", tail)


def _sanitize_meta(value: str | None) -> str:
    return re.sub(r"\s+", " ", (value or "").replace("-->", "")).strip()


def append_duplicate_audit_meta(
    content: str,
    *,
    signal: str,
    lookback_days: int,
    checked_at: datetime,
    reason: str | None = None,
    detail: str | None = None,
) -> str:
    meta = (
        f"<!-- DUPLICATE_AUDIT: signal={signal.upper()}; lookback_days={lookback_days}; "
        f"reason={_sanitize_meta(reason) or 'none'}; detail={_sanitize_meta(detail) or 'none'}; "
        f"checked_at={checked_at.isoformat()} -->"
    )
    stripped = _DUPLICATE_AUDIT_RE.sub("\n", content)
    return f"{stripped.rstrip()}\n\n{meta}"


def extract_pending_followed_up_at(content: str | None) -> str:
    m = _FOLLOWED_UP_RE.search(content or "")
    return m.group(1).strip() if m else ""


def upsert_pending_followed_up_at(content: str, timestamp: datetime) -> str:
    tag = f"<!-- PENDING_FOLLOWED_UP_AT: {timestamp.isoformat()} -->"
    if _FOLLOWED_UP_RE.search(content):
        return _FOLLOWED_UP_RE.sub(tag, content, count=1)
    return _append_tag(content, tag)


def extract_uid_fallbacks(content: str | None) -> list[str]:
    m = _UID_FALLBACKS_RE.search(content or "")
    if not m:
        return []
    return [value.strip() for value in m.group(1).split("||") if value.strip()]


def clean_amount_text(raw: str) -> str:
    return raw.replace(_AMOUNT_SUFFIX, "").replace("*", "").strip()


def _parse_staff_block(part: str, index: int) -> Transaction:
    staff_name = part.split("\n", 1)[0].replace("**", "").strip()
    amount_raw = clean_amount_text(
        extract_field(part, "amount") or _find(r"Amount[^:\n]*:\**\s*(.*)", part)
    )
    reference = extract_field(part, "reference")
    if not is_valid_reference(reference):
        reference = ""
    receipt_id = extract_field(part, "receipt_id") or str(index)
    return Transaction(
        staff_name=staff_name,
        formatted_name=format_staff_name(staff_name),
        amount=money(amount_raw),
        client_or_location=extract_field(part, "client_name"),
        address=extract_field(part, "address"),
        expense_type="Reimbursement",
        receipt_id=receipt_id,
        date="",
        reference=reference,
    )


def _parse_group_table(content: str) -> list[Transaction]:
    transactions: list[Transaction] = []
    in_table = False
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if line.startswith(GROUP_TABLE_HEADER[:14]):
            in_table = True
            continue
        if not in_table:
            continue
        if not line.startswith("|"):
            if transactions:
                break
            continue
        if "---" in line:
            continue
        cells = split_cells(line)
        if len(cells) < 5:
            continue
        staff, client, location, expense_type, amount = cells[:5]
        reference = cells[5] if len(cells) > 5 else ""
        transactions.append(
            Transaction(
                staff_name=staff,
                formatted_name=format_staff_name(staff),
                amount=money(amount),
                client_or_location="" if client == "-" else client,
                address="" if location == "-" else location,
                expense_type=expense_type,
                receipt_id=str(len(transactions) + 1),
                date="",
                reference=reference if is_valid_reference(reference) else "",
            )
        )
    return transactions


def parse_document_transactions(content: str | None) -> list[Transaction]:
    """Read an (optionally hand-edited) narrative document back into transactions."""
    text = content or ""
    if GROUP_TABLE_HEADER in text:
        return _parse_group_table(text)

    parts = text.split("**Staff Member:**")
    if len(parts) <= 1:
        parts = text.split("Staff Member:")
    return [_parse_staff_block(part, i) for i, part in enumerate(parts[1:], start=1)]


def _find(pattern: str, text: str) -> str:
    m = re.search(pattern, text, re.I)
    return m.group(1).strip() if m else ""
