"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

from reimburse_audit.modules.history.models import AuditLog  # noqa: F401
