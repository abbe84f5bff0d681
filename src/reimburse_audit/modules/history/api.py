from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reimburse_audit.core.config import settings
from reimburse_audit.core.db import db_session
from reimburse_audit.modules.history.mining import (
    PendingRecord,
    group_pending_by_staff,
    pending_records,
)
from reimburse_audit.modules.history.models import AuditLog
from reimburse_audit.modules.history.schemas import (
    FollowUpRequest,
    HistoryRecordOut,
    PendingRecordOut,
    PendingStaffGroupOut,
    SaveSubmissionRequest,
    StatusUpdateRequest,
)
from reimburse_audit.modules.history.service import (
    list_records,
    mark_followed_up,
    save_submission,
    to_record,
    update_status,
)
from reimburse_audit.modules.transactions.narrative import extract_status

router = APIRouter(tags=["history"])


def _record_out(row: AuditLog) -> HistoryRecordOut:
    record = to_record(row)
    return HistoryRecordOut(
        **record.model_dump(), status=extract_status(record.full_email_content)
    )


def _pending_out(item: PendingRecord) -> PendingRecordOut:
    return PendingRecordOut(
        id=item.record.id,
        staff_name=item.record.staff_name,
        amount=item.record.amount,
        age_days=item.age_days,
        bucket=item.bucket,
        followed_up_at=item.followed_up_at,
    )


@router.post("/history", response_model=list[HistoryRecordOut])
def save_history_endpoint(
    payload: SaveSubmissionRequest,
    session: Session = Depends(db_session),
) -> list[HistoryRecordOut]:
    rows = save_submission(
        session,
        content=payload.content,
        status_value=payload.status,
        duplicate_signal=payload.duplicate_signal,
        reviewer_reason=payload.reviewer_reason,
        detail=payload.detail,
        lookback_days=settings.duplicate_lookback_days,
    )
    return [_record_out(row) for row in rows]


@router.get("/history", response_model=list[HistoryRecordOut])
def list_history_endpoint(
    since: datetime | None = None,
    session: Session = Depends(db_session),
) -> list[HistoryRecordOut]:
    return [_record_out(row) for row in list_records(session, since=since)]


@router.get("/history/pending", response_model=list[PendingStaffGroupOut])
def pending_history_endpoint(session: Session = Depends(db_session)) -> list[PendingStaffGroupOut]:
    pending = pending_records(
        (to_record(row) for row in list_records(session)),
        now=datetime.now(UTC),
        watch_days=settings.pending_watch_days,
        stale_days=settings.pending_stale_days,
    )
    groups = group_pending_by_staff(pending)
    return [
        PendingStaffGroupOut(
            key=group.key,
            staff_name=group.staff_name,
            total_amount=group.total_amount,
            oldest_age_days=group.oldest_age_days,
            bucket=group.records[0].bucket,
            records=[_pending_out(item) for item in group.records],
        )
        for group in groups
    ]


@router.post("/history/{record_id}/status", response_model=HistoryRecordOut)
def update_history_status_endpoint(
    record_id: int,
    payload: StatusUpdateRequest,
    session: Session = Depends(db_session),
) -> HistoryRecordOut:
    row = update_status(
        session, record_id=record_id, status_value=payload.status, reference=payload.reference
    )
    return _record_out(row)


@router.post("/history/{record_id}/follow-up", response_model=list[HistoryRecordOut])
def follow_up_history_endpoint(
    record_id: int,
    payload: FollowUpRequest | None = None,
    session: Session = Depends(db_session),
) -> list[HistoryRecordOut]:
    record_ids = [record_id]
    if payload is not None and payload.record_ids:
        record_ids += [rid for rid in payload.record_ids if rid != record_id]
    rows = mark_followed_up(session, record_ids=record_ids)
    return [_record_out(row) for row in rows]
