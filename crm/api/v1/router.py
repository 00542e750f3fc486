from fastapi import APIRouter

from crm.api.v1.endpoints import automation, health, lead_scores, sequences

router = APIRouter(prefix="/api/v1")

router.include_router(lead_scores.router)
router.include_router(sequences.router)
router.include_router(automation.router)
router.include_router(health.router)
