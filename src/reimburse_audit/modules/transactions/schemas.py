from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    staff_name: str
    formatted_name: str
    amount: Decimal
    client_or_location: str
    address: str
    expense_type: str
    receipt_id: str
    date: str
    product: str = ""
    reference: str = ""


class DocumentIn(BaseModel):
    content: str


class DocumentTransactionsOut(BaseModel):
    transactions: list[TransactionOut]
    total: Decimal
    status: str | None = None
