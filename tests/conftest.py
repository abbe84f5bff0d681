from __future__ import annotations

import os

import pytest

# Set env before any reimburse_audit imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.reimburse_audit_test.db")


@pytest.fixture(autouse=True)
def _reset_db() -> None:
    import reimburse_audit.models  # noqa: F401
    from reimburse_audit.core.db import engine
    from reimburse_audit.core.models import Base

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield
