from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reimburse_audit.core.config import settings
from reimburse_audit.core.db import db_session
from reimburse_audit.modules.history.service import list_records, to_record
from reimburse_audit.modules.rules.schemas import (
    EvaluateRulesRequest,
    MissingRulesRequest,
    RestoreRulesRequest,
    RuleConfig,
    RuleStatusItem,
    RuleThresholdsIn,
)
from reimburse_audit.modules.rules.service import (
    RuleThresholds,
    default_builtin_rules,
    evaluate_submission_rules,
    missing_builtin_rules,
    restore_builtin_rules,
)

router = APIRouter(tags=["rules"])


def _thresholds(overrides: RuleThresholdsIn | None) -> RuleThresholds:
    amount = settings.amount_threshold
    age = settings.receipt_max_age_days
    if overrides is not None:
        if overrides.amount_threshold is not None:
            amount = overrides.amount_threshold
        if overrides.max_receipt_age_days is not None:
            age = overrides.max_receipt_age_days
    return RuleThresholds(amount_threshold=amount, max_receipt_age_days=age)


@router.get("/rules/defaults", response_model=list[RuleConfig])
def default_rules_endpoint() -> list[RuleConfig]:
    return default_builtin_rules(thresholds=_thresholds(None))


@router.post("/rules/missing", response_model=list[RuleConfig])
def missing_rules_endpoint(payload: MissingRulesRequest) -> list[RuleConfig]:
    return missing_builtin_rules(payload.rules)


@router.post("/rules/restore", response_model=list[RuleConfig])
def restore_rules_endpoint(payload: RestoreRulesRequest) -> list[RuleConfig]:
    return restore_builtin_rules(payload.rules, payload.rule_ids)


@router.post("/rules/evaluate", response_model=list[RuleStatusItem])
def evaluate_rules_endpoint(
    payload: EvaluateRulesRequest,
    session: Session = Depends(db_session),
) -> list[RuleStatusItem]:
    thresholds = _thresholds(payload.thresholds)
    if payload.history is not None:
        records = payload.history
    else:
        records = [to_record(row) for row in list_records(session)]
    return evaluate_submission_rules(
        payload.form_text,
        payload.receipt_text,
        records,
        payload.rules,
        mode=payload.mode,
        thresholds=thresholds,
    )
