from __future__ import annotations

from reimburse_audit.core.config import settings
from reimburse_audit.core.db import engine
from reimburse_audit.core.models import Base
from reimburse_audit.models import AuditLog  # noqa: F401


def bootstrap() -> None:
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)
