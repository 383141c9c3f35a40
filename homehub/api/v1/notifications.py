"""Outbound notification dispatch endpoints (email and push)."""

from fastapi import APIRouter, Request, Response, status

from homehub.core.auth import ensure_may_address
from homehub.core.deps import CurrentUser, DispatcherDep
from homehub.core.rate_limit import DISPATCH_RATE_LIMIT, limiter
from homehub.schemas.common import ErrorResponse
from homehub.schemas.notification import (
    DispatchResponse,
    EmailDispatchRequest,
    PushDispatchRequest,
    RecipientStatusResponse,
)
from homehub.services.dispatcher import DispatchResult

router = APIRouter()


def _to_response(result: DispatchResult) -> DispatchResponse:
    return DispatchResponse(
        channel=result.channel,  # type: ignore[arg-type]
        status="completed",
        delivered=result.delivered,
        failed=result.failed,
        results=[
            RecipientStatusResponse(recipient=r.recipient, status=r.status, detail=r.detail)
            for r in result.results
        ],
    )


@router.post(
    "/email",
    response_model=DispatchResponse,
    summary="Send email",
    description=(
        "Deliver a rendered HTML email to one or more recipients. "
        "Signed-in users may only email themselves; service callers may email anyone."
    ),
)
@limiter.limit(DISPATCH_RATE_LIMIT)
async def send_email(
    request: Request,
    response: Response,
    data: EmailDispatchRequest,
    user: CurrentUser,
    dispatcher: DispatcherDep,
) -> DispatchResponse:
    ensure_may_address(user, emails=data.recipients)
    # Scheduled senders mark themselves so logs can tell them apart
    source = "server" if request.headers.get("X-Source") == "server" else "client"

    if data.defer:
        from homehub.workers.tasks.notifications import send_email_notification

        send_email_notification.delay(data.recipients, data.subject, data.content, source)
        response.status_code = status.HTTP_202_ACCEPTED
        return DispatchResponse(channel="email", status="queued")

    result = await dispatcher.send_email(data.recipients, data.subject, data.content, source=source)
    return _to_response(result)


@router.post(
    "/push",
    response_model=DispatchResponse,
    summary="Send push notification",
    responses={503: {"model": ErrorResponse, "description": "VAPID key pair not configured"}},
    description="Deliver a push notification to the stored subscriptions of one or more users.",
)
@limiter.limit(DISPATCH_RATE_LIMIT)
async def send_push(
    request: Request,  # noqa: ARG001  # required by slowapi
    response: Response,
    data: PushDispatchRequest,
    user: CurrentUser,
    dispatcher: DispatcherDep,
) -> DispatchResponse:
    ensure_may_address(user, user_ids=data.user_ids)
    if data.defer:
        from homehub.workers.tasks.notifications import send_push_notification

        send_push_notification.delay(data.user_ids, data.title, data.body)
        response.status_code = status.HTTP_202_ACCEPTED
        return DispatchResponse(channel="push", status="queued")

    result = await dispatcher.send_push(data.user_ids, data.title, data.body)
    return _to_response(result)
