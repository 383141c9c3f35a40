"""Push subscription API endpoints."""

from fastapi import APIRouter, HTTPException, status

from homehub.core.deps import CurrentUserId, DBSession, DispatcherDep, SubscriptionStoreDep
from homehub.schemas.common import ErrorResponse
from homehub.schemas.notification import DispatchResponse, RecipientStatusResponse
from homehub.schemas.push import (
    PushSubscriptionCreate,
    SendTestPushRequest,
    SubscriptionResultResponse,
    SubscriptionStatusResponse,
    VapidPublicKeyResponse,
)
from homehub.services.vapid_service import VapidKeyService

router = APIRouter()


@router.get(
    "/vapid-public-key",
    response_model=VapidPublicKeyResponse,
    summary="Get VAPID public key",
    description="Application server key to pass to pushManager.subscribe().",
)
async def get_vapid_public_key(db: DBSession) -> VapidPublicKeyResponse:
    """Read the current public key from the key configuration table."""
    public_key = await VapidKeyService(db).get_public_key()
    if not public_key:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="VAPID public key not available",
        )
    return VapidPublicKeyResponse(public_key=public_key)


@router.post(
    "/subscriptions",
    response_model=SubscriptionResultResponse,
    summary="Save push subscription",
    description="Create or replace the caller's push subscription.",
)
async def save_subscription(
    data: PushSubscriptionCreate,
    user_id: CurrentUserId,
    store: SubscriptionStoreDep,
) -> SubscriptionResultResponse:
    """Persist the subscription; failures are reported in the body."""
    result = await store.save(user_id, data.endpoint, data.keys.p256dh, data.keys.auth)
    return SubscriptionResultResponse(
        success=result.success,
        message=result.message,
        reason=result.reason,
    )


@router.delete(
    "/subscriptions",
    response_model=SubscriptionResultResponse,
    summary="Remove push subscription",
    description="Remove every stored subscription of the caller.",
)
async def remove_subscription(
    user_id: CurrentUserId,
    store: SubscriptionStoreDep,
) -> SubscriptionResultResponse:
    result = await store.remove(user_id)
    return SubscriptionResultResponse(
        success=result.success,
        message=result.message,
        reason=result.reason,
    )


@router.get(
    "/subscriptions/status",
    response_model=SubscriptionStatusResponse,
    summary="Push subscription status",
)
async def subscription_status(
    user_id: CurrentUserId,
    store: SubscriptionStoreDep,
) -> SubscriptionStatusResponse:
    return SubscriptionStatusResponse(subscribed=await store.exists(user_id))


@router.post(
    "/test",
    response_model=DispatchResponse,
    responses={503: {"model": ErrorResponse, "description": "VAPID key pair not configured"}},
    summary="Send test notification",
    description="Push a test notification to the caller's own subscription.",
)
async def send_test_notification(
    user_id: CurrentUserId,
    dispatcher: DispatcherDep,
    data: SendTestPushRequest | None = None,
) -> DispatchResponse:
    data = data or SendTestPushRequest()
    result = await dispatcher.send_push([user_id], data.title, data.body)
    return DispatchResponse(
        channel="push",
        status="completed",
        delivered=result.delivered,
        failed=result.failed,
        results=[
            RecipientStatusResponse(recipient=r.recipient, status=r.status, detail=r.detail)
            for r in result.results
        ],
    )
