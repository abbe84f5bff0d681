from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from reimburse_audit.core.logging import get_logger, log_event
from reimburse_audit.core.values import normalize_money, parse_date
from reimburse_audit.modules.duplicates.service import (
    InputTransactionFingerprint,
    fingerprint_input,
    history_amount,
    history_date_key,
)
from reimburse_audit.modules.extraction.fields import FormFields, extract_form_fields
from reimburse_audit.modules.history.mining import HistoryRow, mine_history_rows
from reimburse_audit.modules.history.schemas import HistoricalRecord
from reimburse_audit.modules.rules.schemas import (
    RuleConfig,
    RuleSeverity,
    RuleStatus,
    RuleStatusItem,
)
from reimburse_audit.modules.transactions.models import SubmissionMode

logger = get_logger(__name__)

BUILTIN_RULE_IDS = ("r1", "r2", "r3", "r4", "r5", "r6")
_UNUSABLE_UIDS = {"", "-", "n/a"}


@dataclass(frozen=True)
class RuleThresholds:
    amount_threshold: Decimal = Decimal("300")
    max_receipt_age_days: int = 30


def _fmt_amount(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return f"{value:.2f}"


def default_builtin_rules(
    now: datetime | None = None, thresholds: RuleThresholds | None = None
) -> list[RuleConfig]:
    now = now or datetime.now(UTC)
    t = thresholds or RuleThresholds()
    amount = _fmt_amount(t.amount_threshold)
    age = t.max_receipt_age_days
    specs = (
        ("r1", "Duplicate in Current Upload", "Checks duplicate receipts in current upload.",
         RuleSeverity.HIGH),
        ("r2", "Already Processed Check", "Checks if receipt appears in processed history.",
         RuleSeverity.CRITICAL),
        ("r3", f"Amount Threshold (> ${amount})", f"Flags transactions that exceed ${amount}.",
         RuleSeverity.MEDIUM),
        ("r4", f"Receipt Age (> {age} days)",
         f"Flags receipts older than {age} days from purchase date.", RuleSeverity.MEDIUM),
        ("r5", "Required Fields", "Checks mandatory fields from reimbursement form.",
         RuleSeverity.HIGH),
        ("r6", "Subject for Approval", "Marks if request needs approval based on rule outcomes.",
         RuleSeverity.INFO),
    )
    return [
        RuleConfig(
            id=rule_id,
            title=title,
            detail=detail,
            severity=severity,
            enabled=True,
            is_built_in=True,
            updated_at=now,
        )
        for rule_id, title, detail, severity in specs
    ]


def missing_builtin_rules(
    config: Iterable[RuleConfig], now: datetime | None = None
) -> list[RuleConfig]:
    present = {rule.id for rule in config}
    return [rule for rule in default_builtin_rules(now) if rule.id not in present]


def restore_builtin_rules(
    config: Sequence[RuleConfig], rule_ids: Iterable[str], now: datetime | None = None
) -> list[RuleConfig]:
    wanted = set(rule_ids)
    restored = [rule for rule in missing_builtin_rules(config, now) if rule.id in wanted]
    return [*config, *restored]


def _item(
    rule: RuleConfig | None, rule_id: str, detail: str, failed: bool, failure: RuleStatus
) -> RuleStatusItem | None:
    if rule is None:
        return None
    return RuleStatusItem(
        id=rule_id,
        title=rule.title,
        detail=detail,
        severity=rule.severity,
        status=failure if failed else RuleStatus.PASS,
    )


def evaluate_rules(
    fingerprints: Sequence[InputTransactionFingerprint],
    history: Sequence[HistoryRow],
    form: FormFields,
    config: Sequence[RuleConfig],
    *,
    now: datetime,
    thresholds: RuleThresholds | None = None,
) -> list[RuleStatusItem]:
    """
    Status of every enabled rule for the current input.

    Built-ins run in a fixed order (r1..r5, then r6 which summarizes them), followed by enabled
    custom rules in configuration order. Without any fingerprints the result is a single
    "Awaiting Input" pass item.
    """
    if not fingerprints:
        return [
            RuleStatusItem(
                id="ready",
                title="Awaiting Input",
                detail="Paste reimbursement form or receipt details to start rule checks.",
                severity=RuleSeverity.INFO,
                status=RuleStatus.PASS,
            )
        ]
    t = thresholds or RuleThresholds()
    active = {rule.id: rule for rule in config if rule.enabled}

    history_by_uid: dict[str, list[HistoryRow]] = {}
    history_by_signature: dict[str, list[HistoryRow]] = {}
    for row in history:
        uid = row.uid.strip().lower()
        if uid not in _UNUSABLE_UIDS:
            history_by_uid.setdefault(uid, []).append(row)
        signature = f"|{history_date_key(row)}|{history_amount(row)}"
        history_by_signature.setdefault(signature, []).append(row)

    uid_counts = Counter(fp.uid for fp in fingerprints if fp.uid not in _UNUSABLE_UIDS)
    signature_counts = Counter(fp.signature_key for fp in fingerprints if fp.signature_key)
    duplicate_groups = sum(1 for n in uid_counts.values() if n > 1) + sum(
        1 for n in signature_counts.values() if n > 1
    )

    history_matches = [
        row for fp in fingerprints if fp.uid for row in history_by_uid.get(fp.uid, [])
    ] + [
        row
        for fp in fingerprints
        for row in history_by_signature.get(f"|{fp.date_key}|{normalize_money(fp.amount)}", [])
    ]
    first_match = history_matches[0] if history_matches else None

    over_limit = sum(1 for fp in fingerprints if fp.amount > t.amount_threshold)
    aged = 0
    for fp in fingerprints:
        purchased = parse_date(fp.raw_date) if fp.raw_date else None
        if purchased and (now.date() - purchased).days > t.max_receipt_age_days:
            aged += 1

    missing_fields = [
        label
        for label, is_missing in (
            ("Client name", not form.client_name),
            ("Address", not form.address),
            ("Staff member", not form.staff_member and len(fingerprints) <= 1),
            ("Approved by", not form.approved_by),
        )
        if is_missing
    ]

    amount = _fmt_amount(t.amount_threshold)
    age = t.max_receipt_age_days
    candidates = [
        _item(
            active.get("r1"),
            "r1",
            f"Potential duplicate rows found ({duplicate_groups})."
            if duplicate_groups
            else "No duplicate receipt patterns in the current upload.",
            duplicate_groups > 0,
            RuleStatus.BLOCKED,
        ),
        _item(
            active.get("r2"),
            "r2",
            f"Matched previous record. Date Processed: {first_match.processed_date} | "
            f"NAB Code: {first_match.nab_code or '-'}"
            if first_match
            else "No matching processed receipts found in history.",
            first_match is not None,
            RuleStatus.BLOCKED,
        ),
        _item(
            active.get("r3"),
            "r3",
            f"{over_limit} transaction(s) exceed ${amount} and require approval."
            if over_limit
            else f"All transactions are within ${amount} threshold.",
            over_limit > 0,
            RuleStatus.WARNING,
        ),
        _item(
            active.get("r4"),
            "r4",
            f"{aged} receipt(s) appear older than {age} days from purchase date."
            if aged
            else f"No receipts older than {age} days detected.",
            aged > 0,
            RuleStatus.WARNING,
        ),
        _item(
            active.get("r5"),
            "r5",
            f"Missing: {', '.join(missing_fields)}."
            if missing_fields
            else "Required form fields are complete.",
            bool(missing_fields),
            RuleStatus.BLOCKED,
        ),
    ]
    items = [item for item in candidates if item is not None]

    escalated = any(item.status != RuleStatus.PASS for item in items)
    approval = _item(
        active.get("r6"),
        "r6",
        "Yes. Route this request for approval before final payment."
        if escalated
        else "No. Request can proceed with normal workflow.",
        escalated,
        RuleStatus.WARNING,
    )
    if approval is not None:
        items.append(approval)

    for rule in config:
        if rule.enabled and not rule.is_built_in:
            items.append(
                RuleStatusItem(
                    id=f"custom-{rule.id}",
                    title=rule.title,
                    detail=rule.detail,
                    severity=rule.severity,
                    status=RuleStatus.WARNING,
                )
            )

    log_event(
        logger,
        "rules.evaluate.summary",
        rules=len(items),
        blocked=sum(1 for item in items if item.status == RuleStatus.BLOCKED),
        warnings=sum(1 for item in items if item.status == RuleStatus.WARNING),
    )
    return items


def evaluate_submission_rules(
    form_text: str | None,
    receipt_text: str | None,
    records: Iterable[HistoricalRecord],
    config: Sequence[RuleConfig] | None = None,
    *,
    mode: SubmissionMode = SubmissionMode.SOLO,
    now: datetime | None = None,
    thresholds: RuleThresholds | None = None,
) -> list[RuleStatusItem]:
    now = now or datetime.now(UTC)
    rules = list(config) if config is not None else default_builtin_rules(now, thresholds)
    return evaluate_rules(
        fingerprint_input(form_text, receipt_text, mode),
        mine_history_rows(records),
        extract_form_fields(form_text),
        rules,
        now=now,
        thresholds=thresholds,
    )
