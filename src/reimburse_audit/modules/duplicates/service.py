"""
Tiered duplicate detection against recently processed records.

A current fingerprint and a historical row form a *base match* when the staff name keys and the
money-normalized amounts agree, and the date keys agree whenever both sides have one. A base match
where both sides carry the same settled reference is red evidence; otherwise it is yellow
evidence only if the dates were actually compared. Red outranks yellow outranks green.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from reimburse_audit.core.logging import get_logger, log_event
from reimburse_audit.core.values import (
    date_key,
    is_valid_reference,
    money,
    name_key,
    normalize_money,
    reference_key,
)
from reimburse_audit.modules.extraction.fields import (
    extract_amount,
    extract_form_fields,
    extract_grand_total,
)
from reimburse_audit.modules.extraction.table import parse_receipt_table
from reimburse_audit.modules.history.mining import HistoryRow, mine_history_rows
from reimburse_audit.modules.history.schemas import HistoricalRecord
from reimburse_audit.modules.transactions.models import SubmissionMode, Transaction
from reimburse_audit.modules.transactions.service import parse_group_entries

logger = get_logger(__name__)


class DuplicateSignal(str, enum.Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


@dataclass(frozen=True)
class InputTransactionFingerprint:
    staff_name: str
    amount: Decimal
    uid: str
    store_name: str
    raw_date: str
    date_key: str
    signature_key: str


@dataclass(frozen=True)
class DuplicateMatchEvidence:
    tx_staff_name: str
    tx_date_key: str
    tx_amount: str
    tx_reference: str
    history_staff_name: str
    history_date_key: str
    history_amount: str
    history_reference: str
    history_processed_at: str


@dataclass(frozen=True)
class DuplicateCheckResult:
    signal: DuplicateSignal
    red_matches: list[DuplicateMatchEvidence] = field(default_factory=list)
    yellow_matches: list[DuplicateMatchEvidence] = field(default_factory=list)


def fingerprint_input(
    form_text: str | None,
    receipt_text: str | None,
    mode: SubmissionMode = SubmissionMode.SOLO,
) -> list[InputTransactionFingerprint]:
    """Fingerprints of the submission currently being prepared; empty input yields none."""
    form_text = (form_text or "").strip()
    receipt_text = (receipt_text or "").strip()
    if not form_text and not receipt_text:
        return []

    all_text = f"{form_text}\n{receipt_text}"
    if mode == SubmissionMode.GROUP:
        entries = parse_group_entries(all_text)
        if len(entries) >= 2:
            return [
                InputTransactionFingerprint(
                    staff_name=entry.staff_name,
                    amount=entry.amount,
                    uid="",
                    store_name="group petty cash",
                    raw_date="",
                    date_key="",
                    signature_key=f"group|{normalize_money(entry.amount)}",
                )
                for entry in entries
            ]

    staff_name = extract_form_fields(form_text).staff_member or "Unknown"
    table = parse_receipt_table(all_text)
    fingerprints = []
    for row in table.rows:
        amount = money(row.receipt_total or row.item_amount)
        key = date_key(row.date_time) if row.date_time else ""
        fingerprints.append(
            InputTransactionFingerprint(
                staff_name=staff_name,
                amount=amount,
                uid=row.unique_id.strip().lower(),
                store_name=row.store_name.strip(),
                raw_date=row.date_time,
                date_key=key,
                signature_key=f"{row.store_name.strip().lower()}|{key}|{normalize_money(amount)}",
            )
        )
    if fingerprints:
        return fingerprints

    fallback = (
        extract_amount(form_text, "total_amount")
        or extract_amount(form_text, "amount")
        or extract_grand_total(receipt_text)
        or Decimal("0.00")
    )
    return [
        InputTransactionFingerprint(
            staff_name=staff_name,
            amount=fallback,
            uid="",
            store_name="",
            raw_date="",
            date_key="",
            signature_key=f"fallback|{normalize_money(fallback)}",
        )
    ]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def rows_within_lookback(
    rows: Iterable[HistoryRow], *, now: datetime, lookback_days: int
) -> list[HistoryRow]:
    cutoff = _as_utc(now) - timedelta(days=lookback_days)
    return [row for row in rows if _as_utc(row.processed_at) >= cutoff]


def history_amount(row: HistoryRow) -> str:
    return normalize_money(row.total_amount or row.amount)


def history_date_key(row: HistoryRow) -> str:
    return date_key(row.receipt_date or row.processed_date)


def detect_duplicates(
    fingerprints: Sequence[InputTransactionFingerprint],
    records: Iterable[HistoricalRecord],
    *,
    now: datetime,
    lookback_days: int = 30,
) -> DuplicateCheckResult:
    if not fingerprints:
        return DuplicateCheckResult(signal=DuplicateSignal.GREEN)
    history = rows_within_lookback(mine_history_rows(records), now=now, lookback_days=lookback_days)
    if not history:
        return DuplicateCheckResult(signal=DuplicateSignal.GREEN)

    red: list[DuplicateMatchEvidence] = []
    yellow: list[DuplicateMatchEvidence] = []
    for tx in fingerprints:
        tx_staff = name_key(tx.staff_name)
        tx_date = tx.date_key.strip().lower()
        tx_amount = normalize_money(tx.amount)
        tx_reference = reference_key(tx.uid)
        if not tx_staff:
            continue

        for row in history:
            row_staff = name_key(row.staff_name)
            if not row_staff or row_staff != tx_staff:
                continue
            row_amount = history_amount(row)
            if row_amount != tx_amount:
                continue
            row_date = history_date_key(row)
            dates_comparable = bool(tx_date and row_date)
            if dates_comparable and tx_date != row_date:
                continue

            row_reference = reference_key(row.uid or row.nab_code)
            evidence = DuplicateMatchEvidence(
                tx_staff_name=tx.staff_name,
                tx_date_key=tx_date or "-",
                tx_amount=tx_amount,
                tx_reference=tx_reference or "-",
                history_staff_name=row.staff_name or "-",
                history_date_key=row_date or "-",
                history_amount=row_amount,
                history_reference=row_reference or "-",
                history_processed_at=row.processed_at.isoformat(),
            )
            if tx_reference and row_reference and tx_reference == row_reference:
                red.append(evidence)
            elif dates_comparable:
                yellow.append(evidence)

    if red:
        signal = DuplicateSignal.RED
    elif yellow:
        signal = DuplicateSignal.YELLOW
    else:
        signal = DuplicateSignal.GREEN
    log_event(
        logger,
        "duplicates.check.summary",
        signal=signal.value,
        fingerprints=len(fingerprints),
        history_rows=len(history),
        red=len(red),
        yellow=len(yellow),
        lookback_days=lookback_days,
    )
    return DuplicateCheckResult(signal=signal, red_matches=red, yellow_matches=yellow)


class SaveAction(str, enum.Enum):
    BLOCKED = "blocked"
    REVIEW = "review"
    REFERENCE_PROMPT = "reference_prompt"
    SAVE = "save"


@dataclass(frozen=True)
class SaveDecision:
    action: SaveAction
    detail: str
    status: str | None = None
    duplicate_signal: DuplicateSignal = DuplicateSignal.GREEN


def decide_save(
    check: DuplicateCheckResult,
    transactions: Sequence[Transaction],
    *,
    lookback_days: int = 30,
) -> SaveDecision:
    """What saving the current document should do, given the duplicate check and its references."""
    if check.signal == DuplicateSignal.RED:
        return SaveDecision(
            action=SaveAction.BLOCKED,
            detail=(
                f"Matched {len(check.red_matches)} exact duplicate pattern(s) in the last "
                f"{lookback_days} days."
            ),
            duplicate_signal=DuplicateSignal.RED,
        )
    if check.signal == DuplicateSignal.YELLOW:
        return SaveDecision(
            action=SaveAction.REVIEW,
            detail=(
                f"Matched {len(check.yellow_matches)} near-duplicate pattern(s) "
                f"(same Name + Date + Amount) in the last {lookback_days} days."
            ),
            duplicate_signal=DuplicateSignal.YELLOW,
        )

    all_referenced = bool(transactions) and all(
        is_valid_reference(tx.reference) for tx in transactions
    )
    if transactions and not all_referenced:
        return SaveDecision(
            action=SaveAction.REFERENCE_PROMPT,
            detail="NAB Code is incomplete or placeholder (e.g. Enter NAB Code).",
        )
    return SaveDecision(
        action=SaveAction.SAVE,
        detail=f"No duplicate patterns detected within {lookback_days}-day lookback.",
        status="PAID" if all_referenced else "PENDING",
    )
