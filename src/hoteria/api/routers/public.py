"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from hoteria.api.routes import bookings, discounts, loyalty, rewards, webhooks_payments

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(bookings.router)
router.include_router(discounts.router)
router.include_router(loyalty.router)
router.include_router(rewards.router)
router.include_router(webhooks_payments.router)
