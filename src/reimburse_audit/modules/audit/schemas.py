from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from reimburse_audit.modules.audit.service import IssueLevel, SubmissionStatus
from reimburse_audit.modules.transactions.models import SubmissionMode
from reimburse_audit.modules.transactions.schemas import TransactionOut


class SubmissionRequest(BaseModel):
    mode: SubmissionMode = SubmissionMode.SOLO
    form_text: str = ""
    receipt_text: str = ""
    bypass_manual_audit: bool = False
    # None means "derive from stored history".
    outstanding_staff: list[str] | None = None


class ManualAuditIssueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    level: IssueLevel
    message: str


class SubmissionOut(BaseModel):
    status: SubmissionStatus
    mode: SubmissionMode
    transactions: list[TransactionOut]
    total: Decimal
    document: str | None = None
    issues: list[ManualAuditIssueOut] = []
    error_message: str | None = None
    bypassed: bool = False


class ManualAuditOut(BaseModel):
    issues: list[ManualAuditIssueOut]
    errors: int
    warnings: int
