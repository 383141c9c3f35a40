"""Auto-send email settings endpoints."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Query, status

from homehub.core.auth import ensure_may_address
from homehub.core.deps import CurrentUser, EmailSettingsStoreDep, ServiceCaller
from homehub.schemas.email_settings import EmailSettingsResponse, EmailSettingsUpdate

router = APIRouter()


@router.get(
    "",
    response_model=EmailSettingsResponse,
    summary="Get email settings",
    description="Load the settings for an email address, repairing duplicate rows.",
)
async def get_email_settings(
    user: CurrentUser,
    store: EmailSettingsStoreDep,
    email: str = Query(..., min_length=3, max_length=255),
) -> EmailSettingsResponse:
    ensure_may_address(user, emails=[email])
    settings_row = await store.load(email)
    if settings_row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No settings for this email",
        )
    return EmailSettingsResponse.model_validate(settings_row)


@router.put(
    "",
    response_model=EmailSettingsResponse,
    summary="Save email settings",
    description="Replace the settings for an email address. The send time is fixed.",
)
async def save_email_settings(
    data: EmailSettingsUpdate,
    user: CurrentUser,
    store: EmailSettingsStoreDep,
) -> EmailSettingsResponse:
    ensure_may_address(user, emails=[data.email])
    await store.save(data.email, data.auto_send_enabled, data.auto_send_time)
    settings_row = await store.load(data.email)
    if settings_row is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Settings were not persisted",
        )
    return EmailSettingsResponse.model_validate(settings_row)


@router.get(
    "/due",
    response_model=list[EmailSettingsResponse],
    summary="List due auto-send emails",
    description=(
        "Enabled addresses whose send time has passed and that were not sent today. "
        "Service callers only."
    ),
)
async def list_due_email_settings(
    _caller: ServiceCaller,
    store: EmailSettingsStoreDep,
) -> list[EmailSettingsResponse]:
    rows = await store.list_due(datetime.now(UTC))
    return [EmailSettingsResponse.model_validate(row) for row in rows]
