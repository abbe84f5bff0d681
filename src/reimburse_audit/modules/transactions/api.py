from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter

from reimburse_audit.modules.transactions.narrative import (
    extract_status,
    parse_document_transactions,
)
from reimburse_audit.modules.transactions.schemas import (
    DocumentIn,
    DocumentTransactionsOut,
    TransactionOut,
)

router = APIRouter(tags=["documents"])


@router.post("/documents/transactions", response_model=DocumentTransactionsOut)
def parse_document_endpoint(payload: DocumentIn) -> DocumentTransactionsOut:
    transactions = parse_document_transactions(payload.content)
    return DocumentTransactionsOut(
        transactions=[TransactionOut.model_validate(t, from_attributes=True) for t in transactions],
        total=sum((t.amount for t in transactions), Decimal("0.00")),
        status=extract_status(payload.content),
    )
