from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from reimburse_audit.modules.history.schemas import HistoricalRecord
from reimburse_audit.modules.transactions.models import SubmissionMode


class RuleSeverity(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    INFO = "info"


class RuleStatus(str, enum.Enum):
    PASS = "pass"
    WARNING = "warning"
    BLOCKED = "blocked"


class RuleConfig(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    detail: str = ""
    severity: RuleSeverity = RuleSeverity.MEDIUM
    enabled: bool = True
    is_built_in: bool = False
    updated_at: datetime | None = None


class RuleStatusItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    detail: str
    severity: RuleSeverity
    status: RuleStatus


class RuleThresholdsIn(BaseModel):
    amount_threshold: Decimal | None = None
    max_receipt_age_days: int | None = None


class EvaluateRulesRequest(BaseModel):
    mode: SubmissionMode = SubmissionMode.SOLO
    form_text: str = ""
    receipt_text: str = ""
    rules: list[RuleConfig] | None = None
    thresholds: RuleThresholdsIn | None = None
    history: list[HistoricalRecord] | None = Field(
        default=None,
        description="History snapshot to evaluate against; the stored history when omitted.",
    )


class MissingRulesRequest(BaseModel):
    rules: list[RuleConfig]


class RestoreRulesRequest(BaseModel):
    rules: list[RuleConfig]
    rule_ids: list[str]
