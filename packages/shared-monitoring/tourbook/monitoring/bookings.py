"""Sources of actual completed bookings for accuracy comparison."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from tourbook.monitoring.accuracy import ActualBooking
from tourbook.monitoring.collaborators import maybe_await
from tourbook.monitoring.config import SupabaseConfig
from tourbook.monitoring.exceptions import BookingSourceError

if TYPE_CHECKING:
    from tourbook.monitoring.collaborators import BookingFlow

logger = logging.getLogger(__name__)

# PostgREST columns needed to build ActualBooking records
BOOKING_COLUMNS = "id,charge_id,created_at,paid_amount,tour_type,status"


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            # Supabase returns "+00:00" offsets; older rows may end in "Z"
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable booking timestamp: {value}")
    return None


class BookingSource(Protocol):
    """Anything that can list completed bookings in a time window."""

    async def get_completed_bookings(self, start: datetime, end: datetime) -> list[ActualBooking]: ...


class BookingFlowBookingSource:
    """
    Fallback source backed by the in-process booking flow.

    The current booking counts as one completed booking when it was created
    inside the window and its purchase has been tracked.
    """

    def __init__(self, booking_flow: BookingFlow):
        self.booking_flow = booking_flow

    async def get_completed_bookings(self, start: datetime, end: datetime) -> list[ActualBooking]:
        try:
            state = await maybe_await(self.booking_flow.get_current_booking_state())
        except Exception as e:
            logger.error(f"Failed to read booking flow state: {e}")
            return []

        if not state:
            return []

        created_at = _parse_timestamp(state.get("created_at"))
        tracking = state.get("conversion_tracking") or {}
        if created_at is None or not (start <= created_at <= end) or not tracking.get("purchase_tracked"):
            return []

        payment = state.get("payment_data") or {}
        tour = state.get("tour_data") or {}
        return [
            ActualBooking(
                id=str(state.get("booking_id")),
                transaction_id=state.get("transaction_id"),
                timestamp=created_at,
                value=float(payment.get("amount") or 0),
                tour_id=tour.get("tour_id"),
            )
        ]


class SupabaseBookingSource:
    """
    Confirmed bookings from the Supabase ``bookings`` table via PostgREST.

    The Stripe/PAY.JP charge ID stored in ``charge_id`` is the transaction ID
    sent with purchase conversions.

    Example:
        source = SupabaseBookingSource(SupabaseConfig.from_env())
        bookings = await source.get_completed_bookings(start, end)
    """

    def __init__(
        self,
        config: SupabaseConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or SupabaseConfig.from_env()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            if not self.config.is_configured:
                raise BookingSourceError("Supabase URL and API key are required")
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.url.rstrip('/')}/rest/v1",
                headers={
                    "apikey": self.config.api_key,
                    "Authorization": f"Bearer {self.config.api_key}",
                },
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._client

    async def get_completed_bookings(self, start: datetime, end: datetime) -> list[ActualBooking]:
        """Fetch confirmed bookings created in [start, end].

        Raises:
            BookingSourceError: If the request fails or returns an error status.
        """
        params = [
            ("select", BOOKING_COLUMNS),
            ("status", f"eq.{self.config.status}"),
            ("created_at", f"gte.{start.isoformat()}"),
            ("created_at", f"lte.{end.isoformat()}"),
        ]

        try:
            response = await self.client.get(f"/{self.config.table}", params=params)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPError as e:
            raise BookingSourceError(f"Failed to fetch bookings from Supabase: {e}") from e

        bookings = [self._to_booking(row) for row in rows]
        logger.debug(f"Fetched {len(bookings)} confirmed bookings from Supabase")
        return bookings

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _to_booking(row: dict[str, Any]) -> ActualBooking:
        return ActualBooking(
            id=str(row.get("id")),
            transaction_id=row.get("charge_id"),
            timestamp=_parse_timestamp(row.get("created_at")),
            value=float(row.get("paid_amount") or 0),
            tour_id=row.get("tour_type"),
        )
