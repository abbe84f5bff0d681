from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class HistoricalRecord(BaseModel):
    """One persisted submission as the audit core sees it."""

    model_config = ConfigDict(from_attributes=True)

    id: int | str
    staff_name: str = ""
    amount: Decimal = Decimal("0.00")
    nab_code: str | None = None
    full_email_content: str = ""
    created_at: datetime


class SaveSubmissionRequest(BaseModel):
    content: str
    status: str | None = Field(default=None, pattern="^(PENDING|PAID)$")
    duplicate_signal: str | None = Field(default=None, pattern="^(green|yellow|red)$")
    reviewer_reason: str | None = None
    detail: str | None = None


class StatusUpdateRequest(BaseModel):
    status: str = Field(pattern="^(PENDING|PAID)$")
    reference: str | None = None


class HistoryRecordOut(HistoricalRecord):
    status: str | None = None


class PendingRecordOut(BaseModel):
    id: int | str
    staff_name: str
    amount: Decimal
    age_days: int
    bucket: str
    followed_up_at: str | None = None


class PendingStaffGroupOut(BaseModel):
    key: str
    staff_name: str
    total_amount: Decimal
    oldest_age_days: int
    bucket: str
    records: list[PendingRecordOut]


class FollowUpRequest(BaseModel):
    record_ids: list[int] | None = None
