from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reimburse_audit.core.db import db_session
from reimburse_audit.modules.audit.schemas import (
    ManualAuditIssueOut,
    ManualAuditOut,
    SubmissionOut,
    SubmissionRequest,
)
from reimburse_audit.modules.audit.service import (
    IssueLevel,
    SubmissionStatus,
    audit_build_result,
    process_submission,
)
from reimburse_audit.modules.history.mining import outstanding_staff_names
from reimburse_audit.modules.history.service import list_records, to_record
from reimburse_audit.modules.transactions.schemas import TransactionOut
from reimburse_audit.modules.transactions.service import build_transactions

router = APIRouter(tags=["submissions"])


def _outstanding_staff(session: Session, payload: SubmissionRequest) -> list[str]:
    if payload.outstanding_staff is not None:
        return payload.outstanding_staff
    return outstanding_staff_names(to_record(row) for row in list_records(session))


@router.post("/submissions/build", response_model=SubmissionOut)
def build_submission_endpoint(
    payload: SubmissionRequest,
    session: Session = Depends(db_session),
) -> SubmissionOut:
    outcome = process_submission(
        payload.mode,
        payload.form_text,
        payload.receipt_text,
        bypass_manual_audit=payload.bypass_manual_audit,
        outstanding_staff=_outstanding_staff(session, payload),
    )
    result = outcome.result
    return SubmissionOut(
        status=outcome.status,
        mode=result.mode,
        transactions=[
            TransactionOut.model_validate(t, from_attributes=True) for t in result.transactions
        ],
        total=result.total,
        document=result.document if outcome.status == SubmissionStatus.COMPLETE else None,
        issues=[ManualAuditIssueOut.model_validate(i, from_attributes=True) for i in outcome.issues],
        error_message=result.error_message,
        bypassed=outcome.bypassed,
    )


@router.post("/submissions/audit", response_model=ManualAuditOut)
def audit_submission_endpoint(payload: SubmissionRequest) -> ManualAuditOut:
    result = build_transactions(
        payload.mode,
        payload.form_text,
        payload.receipt_text,
        outstanding_staff=payload.outstanding_staff or (),
    )
    issues = audit_build_result(result)
    return ManualAuditOut(
        issues=[ManualAuditIssueOut.model_validate(i, from_attributes=True) for i in issues],
        errors=sum(1 for i in issues if i.level == IssueLevel.ERROR),
        warnings=sum(1 for i in issues if i.level == IssueLevel.WARNING),
    )
