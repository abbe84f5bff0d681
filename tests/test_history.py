from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from fastapi import HTTPException

from reimburse_audit.modules.history.mining import (
    group_pending_by_staff,
    mine_history_rows,
    pending_aging_bucket,
    pending_aging_summary,
    pending_records,
)
from reimburse_audit.modules.history.schemas import HistoricalRecord

JAN_20 = datetime(2025, 1, 20, 10, 0, tzinfo=UTC)
FEB_01 = datetime(2025, 2, 1, 10, 0, tzinfo=UTC)

SOLO_FORM = """Client's full name: Jane Doe
Address: 1 Main St
Staff member to reimburse: SMITH, John
Approved by: Team Leader
"""
SOLO_RECEIPT = "| 1 | INV-1 | Coles | 15/01/2025 | Milk | Groceries | $42.00 | $42.00 | - |\n"

GROUP_TEXT = "\n\n".join(
    f"Staff Member: {name}\nAmount: ${amount}\nYP Name: {yp}"
    for name, amount, yp in [
        ("RASITTI, DAN", 60, "Hendrix Pritzkow"),
        ("BORELLA-WADE, CHLOE", 60, "Jason Swain"),
        ("MICHAEL, JOSHUA", 120, "Chaze Webb"),
        ("SA'U, TYRONE", 60, "Harley Pieren"),
        ("MALIET, ATHIEI", 180, "Harmony Thomas-Ardler"),
        ("KABIA, PHILICIA", 120, "Cooper Morley"),
        ("LAM, FLORENCE", 60, "Akelia Howland"),
        ("ROSEBOTTOM, JARROD", 120, "TJ Miller"),
        ("Mia Valvano", 60, "Nadia Perry"),
    ]
)


def _solo_document() -> str:
    from reimburse_audit.modules.transactions.models import SubmissionMode
    from reimburse_audit.modules.transactions.service import build_transactions

    result = build_transactions(
        SubmissionMode.SOLO, SOLO_FORM, SOLO_RECEIPT, now=JAN_20, id_factory=lambda: "RCPT-1"
    )
    return result.document


def test_pending_save_and_settlement() -> None:
    from reimburse_audit.core.db import SessionLocal
    from reimburse_audit.modules.history.mining import outstanding_staff_names
    from reimburse_audit.modules.history.service import (
        list_records,
        save_submission,
        to_record,
        update_status,
    )

    with SessionLocal() as session:
        [row] = save_submission(
            session, content=_solo_document(), status_value="PENDING", now=JAN_20
        )
        assert row.staff_name == "SMITH, John"
        assert row.amount == Decimal("42.00")
        assert row.nab_code == "Nab code is pending"
        assert "<!-- STATUS: PENDING -->" in row.full_email_content

        records = [to_record(r) for r in list_records(session)]
        assert outstanding_staff_names(records) == ["SMITH, John"]

        row = update_status(session, record_id=row.id, status_value="PAID", reference="NAB123456")
        assert row.nab_code == "NAB123456"
        assert "**NAB Code:** NAB123456" in row.full_email_content
        assert "<!-- STATUS: PAID -->" in row.full_email_content
        assert "STATUS: PENDING" not in row.full_email_content

        records = [to_record(r) for r in list_records(session)]
        assert outstanding_staff_names(records) == []


def test_paid_requires_reference_and_existing_record() -> None:
    from reimburse_audit.core.db import SessionLocal
    from reimburse_audit.modules.history.service import save_submission, update_status

    with SessionLocal() as session:
        [row] = save_submission(session, content=_solo_document(), now=JAN_20)
        assert row.nab_code is None

        with pytest.raises(HTTPException) as excinfo:
            update_status(
                session, record_id=row.id, status_value="PAID", reference="Enter NAB Code"
            )
        assert excinfo.value.status_code == 400

        with pytest.raises(HTTPException) as excinfo:
            update_status(session, record_id=9999, status_value="PENDING")
        assert excinfo.value.status_code == 404

        with pytest.raises(HTTPException) as excinfo:
            save_submission(session, content="   ")
        assert excinfo.value.status_code == 400


def test_group_document_saves_one_row_per_staff() -> None:
    from reimburse_audit.core.db import SessionLocal
    from reimburse_audit.modules.history.service import save_submission
    from reimburse_audit.modules.transactions.models import SubmissionMode
    from reimburse_audit.modules.transactions.service import build_transactions

    document = build_transactions(SubmissionMode.GROUP, GROUP_TEXT, "", now=JAN_20).document

    with SessionLocal() as session:
        rows = save_submission(session, content=document, now=JAN_20)
        assert len(rows) == 9
        assert sum((row.amount for row in rows), Decimal("0")) == Decimal("840.00")
        assert rows[0].staff_name == "DAN RASITTI"
        assert all(row.nab_code == "Nab code is pending" for row in rows)


def test_duplicate_audit_meta_is_stored() -> None:
    from reimburse_audit.core.db import SessionLocal
    from reimburse_audit.modules.history.service import save_submission

    with SessionLocal() as session:
        [row] = save_submission(
            session,
            content=_solo_document(),
            status_value="PENDING",
            duplicate_signal="yellow",
            reviewer_reason="Different trip",
            lookback_days=14,
            now=JAN_20,
        )
        assert "signal=YELLOW; lookback_days=14; reason=Different trip" in row.full_email_content


def test_list_since_and_follow_up() -> None:
    from reimburse_audit.core.db import SessionLocal
    from reimburse_audit.modules.history.service import (
        list_records,
        mark_followed_up,
        save_submission,
        to_record,
    )
    from reimburse_audit.modules.transactions.narrative import extract_pending_followed_up_at

    with SessionLocal() as session:
        document = _solo_document()
        [old] = save_submission(session, content=document, status_value="PENDING", now=JAN_20)
        [new] = save_submission(session, content=document, status_value="PENDING", now=FEB_01)

        assert [r.id for r in list_records(session)] == [new.id, old.id]
        assert [r.id for r in list_records(session, since=datetime(2025, 1, 25, tzinfo=UTC))] == [
            new.id
        ]

        follow_up_at = datetime(2025, 1, 30, 10, 0, tzinfo=UTC)
        [row] = mark_followed_up(session, record_ids=[old.id], now=follow_up_at)
        assert extract_pending_followed_up_at(row.full_email_content) == follow_up_at.isoformat()

        pending = pending_records(
            [to_record(r) for r in list_records(session)], now=FEB_01
        )
        assert [(p.record.id, p.age_days) for p in pending] == [(old.id, 2), (new.id, 0)]
        assert pending[0].followed_up_at == follow_up_at.isoformat()


def _record(record_id: int, staff_name: str, created_at: datetime, amount: str = "10.00"):
    return HistoricalRecord(
        id=record_id,
        staff_name=staff_name,
        amount=Decimal(amount),
        nab_code="Nab code is pending",
        full_email_content="<!-- STATUS: PENDING -->",
        created_at=created_at,
    )


def test_pending_aging_buckets() -> None:
    assert pending_aging_bucket(2) == "fresh"
    assert pending_aging_bucket(3) == "watch"
    assert pending_aging_bucket(7) == "watch"
    assert pending_aging_bucket(8) == "stale"
    assert pending_aging_bucket(5, watch_days=1, stale_days=5) == "stale"


def test_pending_grouping_by_staff() -> None:
    records = [
        _record(1, "Ann Lee", datetime(2025, 1, 30, tzinfo=UTC)),
        _record(2, "ann lee", datetime(2025, 1, 20, tzinfo=UTC), amount="5.50"),
        _record(3, "Bo Chan", datetime(2025, 1, 20, tzinfo=UTC)),
        _record(4, "Cy Dunn", datetime(2025, 1, 31, tzinfo=UTC)),
        HistoricalRecord(
            id=5,
            staff_name="Paid Person",
            amount=Decimal("1.00"),
            nab_code="NAB1",
            full_email_content="<!-- STATUS: PAID -->",
            created_at=datetime(2025, 1, 1, tzinfo=UTC),
        ),
    ]
    pending = pending_records(records, now=FEB_01)
    assert [p.record.id for p in pending] == [2, 3, 1, 4]
    assert pending_aging_summary(pending) == {"fresh": 2, "watch": 0, "stale": 2}

    groups = group_pending_by_staff(pending)
    assert [g.staff_name for g in groups] == ["ann lee", "Bo Chan", "Cy Dunn"]
    assert groups[0].oldest_age_days == 12
    assert groups[0].total_amount == Decimal("15.50")
    assert len(groups[0].records) == 2


def test_history_without_table_mines_one_summary_row() -> None:
    record = HistoricalRecord(
        id=1,
        staff_name="Ann Lee",
        amount=Decimal("0"),
        nab_code=None,
        full_email_content=(
            "**Staff Member:** Ann Lee\n**Amount:** $25.00 (Based on Receipts/Form Audit)"
        ),
        created_at=JAN_20,
    )
    [row] = mine_history_rows([record])
    assert row.product == "Petty Cash / Reimbursement"
    assert row.expense_type == "Batch Request"
    assert row.amount == "25.00"
    assert row.receipt_date == "2025-01-20"
    assert row.nab_code == "PENDING"
