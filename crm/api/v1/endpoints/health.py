from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health() -> dict:
    """Liveness probe; does not touch the database or Redis."""
    return {"status": "ok"}
