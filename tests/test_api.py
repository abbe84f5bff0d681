from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient

FORM = """Client's full name: Jane Doe
Address: 1 Main St
Staff member to reimburse: SMITH, John
Approved by: Team Leader
Total Amount: $42.00
"""
RECEIPT = "| 1 | INV-1 | Coles | 15/01/2025 | Milk | Groceries | $42.00 | $42.00 | - |\n"

GROUP_TEXT = """Client / Location: Illawarra

Staff Member: RASITTI, DAN
Amount: $60
YP Name: Hendrix Pritzkow

Staff Member: Mia Valvano
Amount: $40
YP Name: Nadia Perry
"""


def _client() -> TestClient:
    from reimburse_audit.main import create_app

    return TestClient(create_app())


def test_healthz() -> None:
    with _client() as client:
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers.get("X-Request-ID")


def test_build_submission_gate_and_bypass() -> None:
    with _client() as client:
        incomplete = {
            "mode": "solo",
            "form_text": "Staff member: Ann Lee\n",
            "receipt_text": RECEIPT,
        }
        resp = client.post("/api/submissions/build", json=incomplete)
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "needs_approval"
        assert body["document"] is None
        assert any(i["message"].startswith("Missing 'Address'") for i in body["issues"])

        resp = client.post(
            "/api/submissions/build", json={**incomplete, "bypass_manual_audit": True}
        )
        body = resp.json()
        assert body["status"] == "complete"
        assert body["bypassed"] is True
        assert "**Staff Member:** Ann Lee" in body["document"]

        resp = client.post(
            "/api/submissions/audit",
            json={"mode": "solo", "form_text": FORM, "receipt_text": RECEIPT},
        )
        assert resp.json()["errors"] == 0


def test_group_build_totals() -> None:
    with _client() as client:
        resp = client.post(
            "/api/submissions/build", json={"mode": "group", "form_text": GROUP_TEXT}
        )
        body = resp.json()
        assert body["status"] == "complete"
        assert Decimal(str(body["total"])) == Decimal("100.00")
        assert [t["staff_name"] for t in body["transactions"]] == ["DAN RASITTI", "Mia Valvano"]
        assert "| Staff Member | Client | Location | Type | Amount | NAB Reference |" in (
            body["document"]
        )


def test_saved_history_drives_duplicates_and_rules() -> None:
    with _client() as client:
        built = client.post(
            "/api/submissions/build",
            json={"mode": "solo", "form_text": FORM, "receipt_text": RECEIPT},
        ).json()
        assert built["status"] == "complete"

        resp = client.post(
            "/api/history", json={"content": built["document"], "status": "PENDING"}
        )
        assert resp.status_code == 200
        [record] = resp.json()
        assert record["status"] == "PENDING"
        assert record["nab_code"] == "Nab code is pending"

        pending = client.get("/api/history/pending").json()
        assert [g["staff_name"] for g in pending] == ["SMITH, John"]
        assert pending[0]["bucket"] == "fresh"

        resp = client.post(
            f"/api/history/{record['id']}/status",
            json={"status": "PAID", "reference": "NAB123456"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "PAID"
        assert client.get("/api/history/pending").json() == []

        resp = client.post(f"/api/history/{record['id']}/status", json={"status": "PAID"})
        assert resp.status_code == 400

        check = client.post(
            "/api/duplicates/check", json={"form_text": FORM, "receipt_text": RECEIPT}
        ).json()
        assert check["signal"] == "red"
        assert check["lookback_days"] == 30
        assert check["red_matches"][0]["tx_reference"] == "inv-1"

        decision = client.post(
            "/api/duplicates/save-decision",
            json={"form_text": FORM, "receipt_text": RECEIPT, "document": built["document"]},
        ).json()
        assert decision["action"] == "blocked"

        rules = client.post(
            "/api/rules/evaluate", json={"form_text": FORM, "receipt_text": RECEIPT}
        ).json()
        r2 = next(item for item in rules if item["id"] == "r2")
        assert r2["status"] == "blocked"
        assert "NAB Code: NAB123456" in r2["detail"]


def test_pending_group_blocks_next_group_submission() -> None:
    with _client() as client:
        built = client.post(
            "/api/submissions/build", json={"mode": "group", "form_text": GROUP_TEXT}
        ).json()
        rows = client.post("/api/history", json={"content": built["document"]}).json()
        assert len(rows) == 2
        assert all(row["status"] == "PENDING" for row in rows)

        resp = client.post(
            "/api/submissions/build", json={"mode": "group", "form_text": GROUP_TEXT}
        )
        body = resp.json()
        assert body["status"] == "error"
        assert body["error_message"] == (
            "Blocked: DAN RASITTI has an outstanding liquidation. Please settle it first."
        )

        resp = client.post(f"/api/history/{rows[0]['id']}/follow-up")
        assert resp.status_code == 200
        assert "PENDING_FOLLOWED_UP_AT" in resp.json()[0]["full_email_content"]


def test_rules_defaults_missing_and_document_parsing() -> None:
    with _client() as client:
        defaults = client.get("/api/rules/defaults").json()
        assert [rule["id"] for rule in defaults] == ["r1", "r2", "r3", "r4", "r5", "r6"]

        partial = [rule for rule in defaults if rule["id"] != "r4"]
        missing = client.post("/api/rules/missing", json={"rules": partial}).json()
        assert [rule["id"] for rule in missing] == ["r4"]

        restored = client.post(
            "/api/rules/restore", json={"rules": partial, "rule_ids": ["r4"]}
        ).json()
        assert [rule["id"] for rule in restored][-1] == "r4"

        document = "**Staff Member:** Ann Lee\n**Amount:** $25.00\n**NAB Code:** NAB555555\n"
        parsed = client.post("/api/documents/transactions", json={"content": document}).json()
        assert Decimal(str(parsed["total"])) == Decimal("25.00")
        assert parsed["transactions"][0]["reference"] == "NAB555555"
        assert parsed["status"] is None
