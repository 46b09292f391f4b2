"""Web push delivery.

A PushSender delivers one JSON payload to one browser endpoint and either
returns or raises PushDeliveryError. Senders hold no database state; the
notification service decides what a failure means for the stored
subscription.

The VAPID details live in a PushConfig built once at startup from Settings
and handed to WebPushSender; nothing here reads the environment.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Protocol

from pywebpush import WebPushException, webpush

from freefor.config import Settings
from freefor.logging import get_logger

logger = get_logger(__name__)

# Push services answer these for endpoints that will never accept messages again
GONE_STATUS_CODES = frozenset({404, 410})


@dataclass(frozen=True)
class PushConfig:
    vapid_public_key: str
    vapid_private_key: str
    contact_email: str
    timeout_s: float = 10.0

    @property
    def vapid_subject(self) -> str:
        return f"mailto:{self.contact_email}"


@dataclass(frozen=True)
class PushTarget:
    endpoint: str
    p256dh: str
    auth: str


class PushDeliveryError(Exception):
    """Delivery to one endpoint failed.

    Attributes:
        status_code: HTTP status from the push service, if one was received.
        message: Short description, safe to store in last_error.
        gone: True when the endpoint is permanently invalid.
    """

    def __init__(self, message: str, status_code: int | None = None, gone: bool = False):
        self.message = message
        self.status_code = status_code
        self.gone = gone
        super().__init__(message)


class PushSender(Protocol):
    enabled: bool

    async def send(self, target: PushTarget, payload: dict[str, Any]) -> None: ...


class WebPushSender:
    """Delivers through pywebpush with VAPID authentication.

    pywebpush is synchronous, so each delivery runs in a worker thread and is
    bounded by ``config.timeout_s``.
    """

    enabled = True

    def __init__(self, config: PushConfig):
        self._config = config

    async def send(self, target: PushTarget, payload: dict[str, Any]) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, target, json.dumps(payload)),
                timeout=self._config.timeout_s + 1.0,
            )
        except TimeoutError as e:
            raise PushDeliveryError("Push delivery timed out") from e

    def _send_sync(self, target: PushTarget, data: str) -> None:
        try:
            webpush(
                subscription_info={
                    "endpoint": target.endpoint,
                    "keys": {"p256dh": target.p256dh, "auth": target.auth},
                },
                data=data,
                vapid_private_key=self._config.vapid_private_key,
                # pywebpush adds aud/exp to the claims dict, so pass a fresh one
                vapid_claims={"sub": self._config.vapid_subject},
                timeout=self._config.timeout_s,
            )
        except WebPushException as e:
            response = getattr(e, "response", None)
            status_code = getattr(response, "status_code", None)
            raise PushDeliveryError(
                f"Push service rejected message (HTTP {status_code})"
                if status_code
                else "Push service rejected message",
                status_code=status_code,
                gone=status_code in GONE_STATUS_CODES,
            ) from e
        except OSError as e:
            # requests' ConnectionError and Timeout derive from OSError
            raise PushDeliveryError(f"Push service unreachable: {type(e).__name__}") from e
        except ValueError as e:
            # Undecodable p256dh/auth keys (binascii.Error) or a bad curve point
            raise PushDeliveryError(f"Invalid subscription keys: {type(e).__name__}") from e


class DisabledPushSender:
    """Used when VAPID keys are not configured; never contacts an endpoint."""

    enabled = False

    async def send(self, target: PushTarget, payload: dict[str, Any]) -> None:
        raise PushDeliveryError("Push notifications disabled")


def build_push_config(settings: Settings) -> PushConfig | None:
    """PushConfig from settings, or None when VAPID keys are missing."""
    if not settings.push_enabled:
        return None
    return PushConfig(
        vapid_public_key=settings.vapid_public_key,  # type: ignore[arg-type]
        vapid_private_key=settings.vapid_private_key,  # type: ignore[arg-type]
        contact_email=settings.vapid_contact_email,
        timeout_s=settings.push_timeout_s,
    )


def create_push_sender(config: PushConfig | None) -> PushSender:
    if config is None:
        logger.warning("push_disabled", reason="vapid_keys_missing")
        return DisabledPushSender()
    return WebPushSender(config)
