from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from reimburse_audit.modules.duplicates.service import DuplicateSignal, SaveAction
from reimburse_audit.modules.transactions.models import SubmissionMode


class DuplicateCheckRequest(BaseModel):
    mode: SubmissionMode = SubmissionMode.SOLO
    form_text: str = ""
    receipt_text: str = ""
    lookback_days: int | None = None


class FingerprintOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    staff_name: str
    amount: Decimal
    uid: str
    store_name: str
    raw_date: str
    date_key: str
    signature_key: str


class DuplicateMatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tx_staff_name: str
    tx_date_key: str
    tx_amount: str
    tx_reference: str
    history_staff_name: str
    history_date_key: str
    history_amount: str
    history_reference: str
    history_processed_at: str


class DuplicateCheckOut(BaseModel):
    signal: DuplicateSignal
    lookback_days: int
    fingerprints: list[FingerprintOut]
    red_matches: list[DuplicateMatchOut]
    yellow_matches: list[DuplicateMatchOut]


class SaveDecisionRequest(DuplicateCheckRequest):
    document: str


class SaveDecisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: SaveAction
    detail: str
    status: str | None = None
    duplicate_signal: DuplicateSignal
