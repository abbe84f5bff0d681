from __future__ import annotations

from fastapi import APIRouter

from reimburse_audit.modules.audit.api import router as submissions_router
from reimburse_audit.modules.duplicates.api import router as duplicates_router
from reimburse_audit.modules.history.api import router as history_router
from reimburse_audit.modules.rules.api import router as rules_router
from reimburse_audit.modules.transactions.api import router as documents_router

router = APIRouter()

router.include_router(submissions_router, prefix="/api")
router.include_router(documents_router, prefix="/api")
router.include_router(duplicates_router, prefix="/api")
router.include_router(rules_router, prefix="/api")
router.include_router(history_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
