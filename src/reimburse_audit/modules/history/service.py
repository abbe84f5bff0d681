from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from reimburse_audit.core.logging import get_logger, log_event
from reimburse_audit.core.values import is_valid_reference, money
from reimburse_audit.modules.extraction.fields import extract_field
from reimburse_audit.modules.history.models import AuditLog
from reimburse_audit.modules.history.schemas import HistoricalRecord
from reimburse_audit.modules.transactions.narrative import (
    PENDING_REFERENCE,
    append_duplicate_audit_meta,
    clean_amount_text,
    extract_status,
    parse_document_transactions,
    upsert_pending_followed_up_at,
    upsert_status_tag,
)

logger = get_logger(__name__)

_REFERENCE_LINE_RE = re.compile(r"(NAB (?:Code|Reference):(?:\*\*|)[ \t]*)(.*?)(\n|$)", re.I)


def to_record(row: AuditLog) -> HistoricalRecord:
    return HistoricalRecord.model_validate(row, from_attributes=True)


def _document_entries(content: str) -> list[tuple[str, Decimal, str]]:
    transactions = parse_document_transactions(content)
    if transactions:
        return [(t.staff_name or "Unknown", t.amount, t.reference) for t in transactions]
    amount = money(clean_amount_text(extract_field(content, "amount")))
    return [("Unknown", amount, "")]


def save_submission(
    session: Session,
    *,
    content: str,
    status_value: str | None = None,
    duplicate_signal: str | None = None,
    reviewer_reason: str | None = None,
    detail: str | None = None,
    lookback_days: int = 30,
    now: datetime | None = None,
) -> list[AuditLog]:
    """
    Persist a finalized narrative document, one row per staff entry it names.

    Every row stores the full document. Pending documents get the pending reference placeholder
    instead of whatever the document carries.
    """
    if not content.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Document content is empty"
        )
    now = now or datetime.now(UTC)
    if status_value:
        content = upsert_status_tag(content, status_value)
    if duplicate_signal:
        content = append_duplicate_audit_meta(
            content,
            signal=duplicate_signal,
            lookback_days=lookback_days,
            checked_at=now,
            reason=reviewer_reason,
            detail=detail,
        )

    is_pending = extract_status(content) == "PENDING"
    rows: list[AuditLog] = []
    for staff_name, amount, reference in _document_entries(content):
        if is_pending:
            nab_code: str | None = PENDING_REFERENCE
        else:
            nab_code = reference if is_valid_reference(reference) else None
        row = AuditLog(
            staff_name=staff_name,
            amount=amount,
            nab_code=nab_code,
            full_email_content=content,
            created_at=now,
        )
        session.add(row)
        rows.append(row)
    session.commit()
    for row in rows:
        session.refresh(row)

    log_event(
        logger,
        "history.record.saved",
        record_ids=[row.id for row in rows],
        status=extract_status(content),
        duplicate_signal=duplicate_signal,
    )
    return rows


def list_records(session: Session, *, since: datetime | None = None) -> list[AuditLog]:
    stmt = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if since is not None:
        stmt = stmt.where(AuditLog.created_at >= since)
    return list(session.scalars(stmt))


def list_recent_records(
    session: Session, *, lookback_days: int, now: datetime | None = None
) -> list[AuditLog]:
    now = now or datetime.now(UTC)
    return list_records(session, since=now - timedelta(days=lookback_days))


def get_record(session: Session, *, record_id: int) -> AuditLog:
    row = session.scalar(select(AuditLog).where(AuditLog.id == record_id))
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Record not found")
    return row


def _apply_reference(content: str, reference: str) -> str:
    if _REFERENCE_LINE_RE.search(content):
        return _REFERENCE_LINE_RE.sub(
            lambda m: f"{m.group(1)}{reference}{m.group(3)}", content, count=1
        )
    return f"{content}\n**NAB Code:** {reference}"


def update_status(
    session: Session,
    *,
    record_id: int,
    status_value: str,
    reference: str | None = None,
) -> AuditLog:
    row = get_record(session, record_id=record_id)
    status_value = status_value.upper()
    content = upsert_status_tag(row.full_email_content or "", status_value)

    if status_value == "PAID":
        reference = (reference or "").strip()
        if not is_valid_reference(reference):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A settled reference is required to mark a record as PAID",
            )
        content = _apply_reference(content, reference)
        row.nab_code = reference

    row.full_email_content = content
    session.add(row)
    session.commit()
    session.refresh(row)
    log_event(
        logger,
        "history.status.updated",
        record_id=row.id,
        status=status_value,
        has_reference=bool(reference),
    )
    return row


def mark_followed_up(
    session: Session, *, record_ids: Iterable[int], now: datetime | None = None
) -> list[AuditLog]:
    now = now or datetime.now(UTC)
    rows = [get_record(session, record_id=record_id) for record_id in record_ids]
    for row in rows:
        row.full_email_content = upsert_pending_followed_up_at(row.full_email_content or "", now)
        session.add(row)
    session.commit()
    for row in rows:
        session.refresh(row)
    return rows
