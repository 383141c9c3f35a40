"""API v1 router combining all route modules."""

from fastapi import APIRouter

from homehub.api.v1 import email_settings, health, notifications, push

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Push subscriptions and VAPID key (public key is unauthenticated)
api_router.include_router(
    push.router,
    prefix="/push",
    tags=["push"],
)

# Auto-send email preferences
api_router.include_router(
    email_settings.router,
    prefix="/email-settings",
    tags=["email-settings"],
)

# Outbound dispatch (email + push)
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"],
)
