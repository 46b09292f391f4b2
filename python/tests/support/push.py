"""In-memory push sender for notification tests."""

from typing import Any

from freefor.services.push import PushDeliveryError, PushTarget


class FakePushSender:
    """Records every delivery; endpoints listed in ``failures`` raise instead.

    Failures may be any exception, not only PushDeliveryError, to stand in
    for a sender that breaks unexpectedly.

    Usage:
        sender = FakePushSender(failures={"https://push.example/gone": gone_error()})
    """

    def __init__(self, failures: dict[str, Exception] | None = None, enabled: bool = True):
        self.failures = failures or {}
        self.enabled = enabled
        self.sent: list[tuple[PushTarget, dict[str, Any]]] = []

    async def send(self, target: PushTarget, payload: dict[str, Any]) -> None:
        self.sent.append((target, payload))
        error = self.failures.get(target.endpoint)
        if error is not None:
            raise error


def gone_error() -> PushDeliveryError:
    return PushDeliveryError("Push service rejected message (HTTP 410)", status_code=410, gone=True)


def transient_error() -> PushDeliveryError:
    return PushDeliveryError("Push service rejected message (HTTP 503)", status_code=503)
