"""Web Push delivery using pywebpush."""

import asyncio
import enum
import json
import logging
from typing import Any

import requests
from pywebpush import WebPushException, webpush

from homehub.core.config import settings
from homehub.services.vapid_service import VapidKeyPair

logger = logging.getLogger(__name__)

# Push services answer these when the subscription no longer exists
GONE_STATUS_CODES = {404, 410}


class PushOutcome(str, enum.Enum):
    SENT = "sent"
    EXPIRED = "expired"
    FAILED = "failed"


class PushService:
    """Signs and sends one encrypted push message per subscription."""

    def __init__(self, key_pair: VapidKeyPair) -> None:
        self.key_pair = key_pair
        self._signer = key_pair.signer()

    def _send_sync(self, subscription_info: dict[str, Any], payload: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=payload,
            vapid_private_key=self._signer,
            # pywebpush adds aud/exp to the claims dict, so pass a fresh one
            vapid_claims={"sub": settings.vapid_subject},
            ttl=settings.push_ttl_seconds,
            timeout=settings.push_timeout_seconds,
        )

    async def send(self, subscription_info: dict[str, Any], message: dict[str, Any]) -> PushOutcome:
        """Deliver ``message`` as a JSON payload."""
        endpoint = str(subscription_info.get("endpoint", ""))
        try:
            await asyncio.to_thread(self._send_sync, subscription_info, json.dumps(message))
        except WebPushException as e:
            status_code = getattr(e.response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                logger.info("Push endpoint gone (status=%s): %s", status_code, endpoint[:60])
                return PushOutcome.EXPIRED
            logger.error("Push failed (status=%s): %s", status_code, e)
            return PushOutcome.FAILED
        except requests.RequestException as e:
            logger.error("Push service unreachable for %s: %s", endpoint[:60], e)
            return PushOutcome.FAILED
        except ValueError as e:
            # Stored p256dh/auth could not be decoded or used for encryption
            logger.error("Push payload could not be encrypted for %s: %s", endpoint[:60], e)
            return PushOutcome.FAILED

        logger.info("Push sent to %s", endpoint[:60])
        return PushOutcome.SENT
