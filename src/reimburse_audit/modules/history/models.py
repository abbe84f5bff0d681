from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reimburse_audit.core.models import Base, CreatedAt, IntegerPrimaryKey


class AuditLog(IntegerPrimaryKey, CreatedAt, Base):
    __tablename__ = "audit_logs"

    staff_name: Mapped[str] = mapped_column(String(200), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    nab_code: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    full_email_content: Mapped[str] = mapped_column(Text, default="")
