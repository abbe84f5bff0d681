from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime

from reimburse_audit.modules.audit.service import SubmissionOutcome, process_submission
from reimburse_audit.modules.transactions.models import SubmissionMode


class ManualAuditGate:
    """
    Stateful wrapper around ``process_submission`` for interactive callers.

    ``approve()`` lets exactly the next ``submit()`` skip the manual audit; the flag resets as
    soon as that submission has been processed, whatever its outcome.
    """

    def __init__(self) -> None:
        self._bypass_next = False

    @property
    def bypass_pending(self) -> bool:
        return self._bypass_next

    def approve(self) -> None:
        self._bypass_next = True

    def submit(
        self,
        mode: SubmissionMode,
        form_text: str | None,
        receipt_text: str | None,
        *,
        outstanding_staff: Iterable[str] = (),
        now: datetime | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> SubmissionOutcome:
        bypass = self._bypass_next
        self._bypass_next = False
        return process_submission(
            mode,
            form_text,
            receipt_text,
            bypass_manual_audit=bypass,
            outstanding_staff=outstanding_staff,
            now=now,
            id_factory=id_factory,
        )
