"""
Pure views over historical records.

Nothing here touches the database: callers load ``HistoricalRecord`` snapshots and pass them in,
together with the clock where ages matter.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from reimburse_audit.core.values import (
    is_pending_reference,
    money,
    normalize_money,
    parse_date,
    reference_key,
)
from reimburse_audit.modules.extraction.fields import extract_field
from reimburse_audit.modules.extraction.table import parse_receipt_table
from reimburse_audit.modules.history.schemas import HistoricalRecord
from reimburse_audit.modules.transactions.narrative import (
    clean_amount_text,
    extract_pending_followed_up_at,
    extract_status,
    extract_uid_fallbacks,
)

UNKNOWN_STORE = "Unknown Store"


@dataclass(frozen=True)
class HistoryRow:
    record_id: int | str
    uid: str
    staff_name: str
    product: str
    expense_type: str
    receipt_date: str
    amount: str
    total_amount: str
    processed_at: datetime
    nab_code: str
    client_name: str = ""
    client_location: str = ""

    @property
    def processed_date(self) -> str:
        return self.processed_at.date().isoformat()

    @property
    def reference(self) -> str:
        return reference_key(self.uid) or reference_key(self.nab_code)


def _record_total(record: HistoricalRecord) -> str:
    if record.amount:
        return normalize_money(record.amount)
    return normalize_money(clean_amount_text(extract_field(record.full_email_content, "amount")))


def mine_history_rows(records: Iterable[HistoricalRecord]) -> list[HistoryRow]:
    """Expand each record into one row per receipt line, or a single summary row."""
    rows: list[HistoryRow] = []
    for record in records:
        content = record.full_email_content or ""
        receipt_id = extract_field(content, "receipt_id") or "N/A"
        if receipt_id == "N/A" and record.nab_code:
            receipt_id = record.nab_code
        uid_fallbacks = extract_uid_fallbacks(content)
        total = _record_total(record)
        processed_date = record.created_at.date().isoformat()
        common = {
            "record_id": record.id,
            "staff_name": record.staff_name or "Unknown",
            "processed_at": record.created_at,
            "nab_code": record.nab_code or "PENDING",
            "client_name": extract_field(content, "client_name"),
            "client_location": extract_field(content, "client_location")
            or extract_field(content, "address"),
        }

        table = parse_receipt_table(
            content,
            fallback_total=total,
            fallback_store=UNKNOWN_STORE,
            uid_fallbacks=uid_fallbacks,
            default_uid=receipt_id,
            header_required=True,
        )
        for receipt_row in table.rows:
            parsed = parse_date(receipt_row.date_time)
            rows.append(
                HistoryRow(
                    **common,
                    uid=receipt_row.unique_id or receipt_id,
                    product=receipt_row.product,
                    expense_type=receipt_row.category,
                    receipt_date=parsed.isoformat() if parsed else processed_date,
                    amount=f"{receipt_row.line_amount:.2f}",
                    total_amount=receipt_row.receipt_total,
                )
            )

        if not table.rows:
            rows.append(
                HistoryRow(
                    **common,
                    uid=uid_fallbacks[0] if uid_fallbacks else receipt_id,
                    product="Petty Cash / Reimbursement",
                    expense_type="Batch Request",
                    receipt_date=processed_date,
                    amount=total,
                    total_amount=total,
                )
            )
    return rows


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def is_pending_record(record: HistoricalRecord) -> bool:
    return extract_status(record.full_email_content) == "PENDING" or is_pending_reference(
        record.nab_code
    )


def pending_age_days(record: HistoricalRecord, now: datetime) -> int:
    baseline = _as_utc(record.created_at)
    followed_up = extract_pending_followed_up_at(record.full_email_content)
    if followed_up:
        try:
            baseline = _as_utc(datetime.fromisoformat(followed_up.replace("Z", "+00:00")))
        except ValueError:
            pass
    return max(0, (_as_utc(now) - baseline).days)


def pending_aging_bucket(age_days: int, *, watch_days: int = 3, stale_days: int = 8) -> str:
    if age_days >= stale_days:
        return "stale"
    if age_days >= watch_days:
        return "watch"
    return "fresh"


@dataclass(frozen=True)
class PendingRecord:
    record: HistoricalRecord
    age_days: int
    bucket: str

    @property
    def followed_up_at(self) -> str | None:
        return extract_pending_followed_up_at(self.record.full_email_content) or None


@dataclass(frozen=True)
class PendingStaffGroup:
    key: str
    staff_name: str
    records: list[PendingRecord]

    @property
    def oldest_age_days(self) -> int:
        return max(r.age_days for r in self.records)

    @property
    def total_amount(self) -> Decimal:
        return sum((money(r.record.amount) for r in self.records), Decimal("0.00"))


def pending_records(
    records: Iterable[HistoricalRecord],
    *,
    now: datetime,
    watch_days: int = 3,
    stale_days: int = 8,
) -> list[PendingRecord]:
    """Pending records, oldest first (by age, then by creation time)."""
    pending = []
    for record in records:
        if not is_pending_record(record):
            continue
        age = pending_age_days(record, now)
        bucket = pending_aging_bucket(age, watch_days=watch_days, stale_days=stale_days)
        pending.append(PendingRecord(record=record, age_days=age, bucket=bucket))
    pending.sort(key=lambda p: (-p.age_days, _as_utc(p.record.created_at)))
    return pending


def group_pending_by_staff(pending: Sequence[PendingRecord]) -> list[PendingStaffGroup]:
    grouped: dict[str, PendingStaffGroup] = {}
    for item in pending:
        staff_name = (item.record.staff_name or "").strip() or "Unknown"
        key = staff_name.lower()
        if key not in grouped:
            grouped[key] = PendingStaffGroup(key=key, staff_name=staff_name, records=[])
        grouped[key].records.append(item)
    return sorted(
        grouped.values(),
        key=lambda g: (-g.oldest_age_days, -len(g.records), g.staff_name),
    )


def pending_aging_summary(pending: Iterable[PendingRecord]) -> dict[str, int]:
    summary = {"fresh": 0, "watch": 0, "stale": 0}
    for item in pending:
        summary[item.bucket] += 1
    return summary


def outstanding_staff_names(records: Iterable[HistoricalRecord]) -> list[str]:
    """Staff with at least one unsettled record; group submissions naming them are refused."""
    names: list[str] = []
    seen: set[str] = set()
    for record in records:
        if not is_pending_record(record):
            continue
        name = (record.staff_name or "").strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names
