from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reimburse_audit.core.config import settings
from reimburse_audit.core.db import db_session
from reimburse_audit.modules.duplicates.schemas import (
    DuplicateCheckOut,
    DuplicateCheckRequest,
    DuplicateMatchOut,
    FingerprintOut,
    SaveDecisionOut,
    SaveDecisionRequest,
)
from reimburse_audit.modules.duplicates.service import (
    DuplicateCheckResult,
    decide_save,
    detect_duplicates,
    fingerprint_input,
)
from reimburse_audit.modules.history.service import list_recent_records, to_record
from reimburse_audit.modules.transactions.narrative import parse_document_transactions

router = APIRouter(tags=["duplicates"])


def _check(
    session: Session, payload: DuplicateCheckRequest, *, lookback_days: int, now: datetime
) -> tuple[list, DuplicateCheckResult]:
    fingerprints = fingerprint_input(payload.form_text, payload.receipt_text, payload.mode)
    records = [
        to_record(row)
        for row in list_recent_records(session, lookback_days=lookback_days, now=now)
    ]
    result = detect_duplicates(fingerprints, records, now=now, lookback_days=lookback_days)
    return fingerprints, result


@router.post("/duplicates/check", response_model=DuplicateCheckOut)
def check_duplicates_endpoint(
    payload: DuplicateCheckRequest,
    session: Session = Depends(db_session),
) -> DuplicateCheckOut:
    lookback_days = payload.lookback_days or settings.duplicate_lookback_days
    fingerprints, result = _check(
        session, payload, lookback_days=lookback_days, now=datetime.now(UTC)
    )
    return DuplicateCheckOut(
        signal=result.signal,
        lookback_days=lookback_days,
        fingerprints=[FingerprintOut.model_validate(f, from_attributes=True) for f in fingerprints],
        red_matches=[
            DuplicateMatchOut.model_validate(m, from_attributes=True) for m in result.red_matches
        ],
        yellow_matches=[
            DuplicateMatchOut.model_validate(m, from_attributes=True)
            for m in result.yellow_matches
        ],
    )


@router.post("/duplicates/save-decision", response_model=SaveDecisionOut)
def save_decision_endpoint(
    payload: SaveDecisionRequest,
    session: Session = Depends(db_session),
) -> SaveDecisionOut:
    lookback_days = payload.lookback_days or settings.duplicate_lookback_days
    _, result = _check(session, payload, lookback_days=lookback_days, now=datetime.now(UTC))
    decision = decide_save(
        result,
        parse_document_transactions(payload.document),
        lookback_days=lookback_days,
    )
    return SaveDecisionOut.model_validate(decision, from_attributes=True)
