"""Live supplier price lookup.

Wraps the supplier search endpoint with an async httpx client. One call
returns the cheapest available room for a stay, or None when nothing is
available. Timeouts and HTTP failures surface as UpstreamUnavailableError so
callers can drop the hotel and carry on.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.utils.errors import UpstreamUnavailableError

logger = get_logger("tools.live_price_api")

SEARCH_PATH = "/Search/InnstantPrice"


class LivePrice(BaseModel):
    """Cheapest bookable room for a stay right now."""

    hotel_id: int
    price: float = Field(gt=0)
    currency: str = "EUR"
    room_type: str = "Standard"


class LivePriceSource(Protocol):
    async def fetch_live_price(
        self, hotel_id: int, check_in: date, check_out: date, adults: int = 2
    ) -> LivePrice | None: ...


def parse_search_response(
    hotel_id: int, data: dict[str, Any], default_currency: str = "EUR"
) -> LivePrice | None:
    """Pick the cheapest priced room out of a search response body."""
    if not data.get("success"):
        return None

    rooms = []
    for room in data.get("results") or []:
        price = room.get("price") or room.get("totalPrice")
        if price and float(price) > 0:
            rooms.append((float(price), room))

    if not rooms:
        return None

    price, cheapest = min(rooms, key=lambda pair: pair[0])
    return LivePrice(
        hotel_id=hotel_id,
        price=price,
        currency=cheapest.get("currency") or default_currency,
        room_type=cheapest.get("roomType") or "Standard",
    )


class LivePriceClient:
    """`LivePriceSource` over the supplier search HTTP API.

    Args:
        base_url: Search API root (defaults to settings).
        timeout: Per-request timeout in seconds (defaults to settings, 30s).
        transport: Optional httpx transport, e.g. `httpx.MockTransport` in tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.default_currency = settings.default_currency
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.live_price_base_url,
            timeout=timeout or settings.live_price_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> LivePriceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_live_price(
        self, hotel_id: int, check_in: date, check_out: date, adults: int = 2
    ) -> LivePrice | None:
        payload = {
            "hotelId": hotel_id,
            "dateFrom": check_in.isoformat(),
            "dateTo": check_out.isoformat(),
            "adults": adults,
        }

        try:
            resp = await self._client.post(SEARCH_PATH, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            logger.warning("live_price_timeout", hotel_id=hotel_id)
            raise UpstreamUnavailableError("live_price", "timeout") from e
        except httpx.HTTPError as e:
            logger.warning("live_price_http_error", hotel_id=hotel_id, error=str(e))
            raise UpstreamUnavailableError("live_price", str(e)) from e
        except ValueError as e:
            logger.warning("live_price_bad_payload", hotel_id=hotel_id, error=str(e))
            raise UpstreamUnavailableError("live_price", "invalid response body") from e

        return parse_search_response(hotel_id, data, self.default_currency)
