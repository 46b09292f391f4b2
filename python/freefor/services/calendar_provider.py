"""External calendar provider adapters.

Rules:
- Async adapters over the shared httpx.AsyncClient created at startup
- No retries inside adapters
- No DB access
- Never log tokens or event bodies
- HTTP 401 becomes ExpiredCredentialError; timeouts, transport failures and
  any other non-2xx status become UpstreamError

Google Calendar v3:
- GET {base}/users/me/calendarList
- GET {base}/calendars/{calendarId}/events?timeMin&timeMax&singleEvents=true
- All-day events carry ``date`` instead of ``dateTime`` and are reported with
  start/end = None.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import quote

import httpx

from freefor.errors import ApiErrorCode, ExpiredCredentialError, InvalidRequestError, UpstreamError
from freefor.logging import get_logger

logger = get_logger(__name__)

GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"

# Page size and page cap for event listing
GOOGLE_MAX_RESULTS = 250
GOOGLE_MAX_PAGES = 10


@dataclass(frozen=True)
class ProviderCalendar:
    id: str
    name: str
    primary: bool = False
    access_role: str | None = None


@dataclass(frozen=True)
class ProviderEvent:
    """An event as reported by the provider. start/end are None for all-day events."""

    id: str
    title: str | None
    start: datetime | None
    end: datetime | None


class CalendarProvider(ABC):
    """Abstract base class for external calendar providers."""

    name: str

    def __init__(self, client: httpx.AsyncClient, timeout_s: float = 10.0):
        """Initialize adapter with shared HTTP client.

        Args:
            client: Shared httpx.AsyncClient for connection pooling.
            timeout_s: Per-request timeout in seconds.
        """
        self._client = client
        self._timeout = httpx.Timeout(timeout_s, connect=min(timeout_s, 10.0))

    @abstractmethod
    async def list_calendars(self, access_token: str) -> list[ProviderCalendar]:
        """Calendars the credential can read."""

    @abstractmethod
    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ProviderEvent]:
        """Events of one calendar that overlap ``[time_min, time_max)``."""

    async def _get_json(self, url: str, access_token: str, params: dict | None = None) -> dict:
        try:
            response = await self._client.get(
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                params=params,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.warning("calendar_provider_timeout", provider=self.name)
            raise UpstreamError(message=f"{self.name} calendar request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                raise ExpiredCredentialError() from e
            logger.warning("calendar_provider_http_error", provider=self.name, status_code=status)
            raise UpstreamError(
                message=f"{self.name} calendar returned HTTP {status}",
                status_code_upstream=status,
            ) from e
        except httpx.TransportError as e:
            logger.warning("calendar_provider_unreachable", provider=self.name, error=str(e))
            raise UpstreamError(message=f"{self.name} calendar is unreachable") from e

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(message=f"{self.name} calendar returned invalid JSON") from e


class GoogleCalendarProvider(CalendarProvider):
    """Google Calendar API v3 adapter."""

    name = "google"

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_s: float = 10.0,
        base_url: str = GOOGLE_CALENDAR_API,
    ):
        super().__init__(client, timeout_s)
        self._base_url = base_url.rstrip("/")

    async def list_calendars(self, access_token: str) -> list[ProviderCalendar]:
        data = await self._get_json(f"{self._base_url}/users/me/calendarList", access_token)
        return [
            ProviderCalendar(
                id=item["id"],
                name=item.get("summaryOverride") or item.get("summary") or item["id"],
                primary=bool(item.get("primary", False)),
                access_role=item.get("accessRole"),
            )
            for item in data.get("items", [])
            if item.get("id")
        ]

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ProviderEvent]:
        url = f"{self._base_url}/calendars/{quote(calendar_id, safe='')}/events"
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(GOOGLE_MAX_RESULTS),
        }

        events: list[ProviderEvent] = []
        for _ in range(GOOGLE_MAX_PAGES):
            data = await self._get_json(url, access_token, params)
            for item in data.get("items", []):
                if item.get("status") == "cancelled" or not item.get("id"):
                    continue
                events.append(
                    ProviderEvent(
                        id=item["id"],
                        title=item.get("summary"),
                        start=_parse_event_time(item.get("start")),
                        end=_parse_event_time(item.get("end")),
                    )
                )
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}
        return events


def _parse_event_time(value: dict | None) -> datetime | None:
    """Concrete instant from a Google event time, or None for all-day / floating times."""
    if not value or not value.get("dateTime"):
        return None
    try:
        parsed = datetime.fromisoformat(value["dateTime"])
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


PROVIDERS: dict[str, type[CalendarProvider]] = {
    GoogleCalendarProvider.name: GoogleCalendarProvider,
}


def require_supported_provider(provider_name: str) -> str:
    """Raises InvalidRequestError(E_UNSUPPORTED_PROVIDER) for unknown provider names."""
    if provider_name not in PROVIDERS:
        raise InvalidRequestError(
            ApiErrorCode.E_UNSUPPORTED_PROVIDER, f"Unsupported calendar provider: {provider_name}"
        )
    return provider_name


def create_provider(
    provider_name: str, client: httpx.AsyncClient, timeout_s: float
) -> CalendarProvider:
    """Build the adapter registered for ``provider_name``."""
    return PROVIDERS[require_supported_provider(provider_name)](client, timeout_s)
