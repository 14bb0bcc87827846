"""Signal store access for the pipeline.

The relational store itself lives outside this package; the pipeline only
needs the read operations in `SignalStore`. `InMemorySignalStore` serves
them from lists of records and is used by tests and the analysis script.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from src.agents.schemas.signals import BookingRecord, SearchRecord
from src.config.logging_config import get_logger

logger = get_logger("tools.signal_store")

COMPETITOR_WINDOW_DAYS = 7


class CompetitorSnapshot(BaseModel):
    """Competitor price summary over the recent scrape window."""

    avg: float
    min: float
    max: float
    competitor_count: int = Field(ge=0)


class HistoricalPerformance(BaseModel):
    """How a hotel's inventory has performed over recent months."""

    avg_price: float
    avg_margin: float = Field(description="Average realised margin, percent")
    success_rate: float = Field(ge=0.0, le=100.0, description="Sold share, percent")
    sample_size: int = Field(ge=0)


class CompetitorPrice(BaseModel):
    """One scraped competitor price for a stay at a hotel."""

    model_config = ConfigDict(frozen=True)

    hotel_id: int
    competitor: str
    check_in: date
    price: float
    scraped_at: datetime


class SignalStore(Protocol):
    """Read-only queries the pipeline runs against the data store."""

    def fetch_booking_signals(
        self,
        hotel_id: int | None = None,
        city: str | None = None,
        from_date: date | None = None,
    ) -> list[BookingRecord]: ...

    def fetch_search_signals(
        self,
        hotel_id: int | None = None,
        city: str | None = None,
        lookback_days: int = 30,
    ) -> list[SearchRecord]: ...

    def fetch_competitor_snapshot(
        self, hotel_id: int, check_in: date, check_out: date
    ) -> CompetitorSnapshot | None: ...

    def fetch_historical_performance(
        self, hotel_id: int, months: int = 6
    ) -> HistoricalPerformance | None: ...

    def fetch_monthly_occupancy(self, hotel_id: int, month: int) -> float | None: ...


class InMemorySignalStore:
    """`SignalStore` backed by in-memory record lists.

    Args:
        bookings: Historical booking records.
        searches: Search-intent records.
        competitor_prices: Scraped competitor prices.
        occupancy: Mapping of (hotel_id, month) -> occupancy in [0, 1].
        now: Reference time for rolling windows (defaults to wall clock).
    """

    def __init__(
        self,
        bookings: Iterable[BookingRecord] = (),
        searches: Iterable[SearchRecord] = (),
        competitor_prices: Iterable[CompetitorPrice] = (),
        occupancy: dict[tuple[int, int], float] | None = None,
        now: datetime | None = None,
    ) -> None:
        self.bookings = list(bookings)
        self.searches = list(searches)
        self.competitor_prices = list(competitor_prices)
        self.occupancy = dict(occupancy or {})
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.now()

    @classmethod
    def from_json_file(cls, path: str | Path) -> InMemorySignalStore:
        """Load a dump with `bookings`, `searches` and `competitor_prices` lists."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        now = payload.get("now")
        occupancy = {
            (int(row["hotel_id"]), int(row["month"])): float(row["occupancy"])
            for row in payload.get("occupancy", [])
        }
        store = cls(
            bookings=[BookingRecord.model_validate(r) for r in payload.get("bookings", [])],
            searches=[SearchRecord.model_validate(r) for r in payload.get("searches", [])],
            competitor_prices=[
                CompetitorPrice.model_validate(r) for r in payload.get("competitor_prices", [])
            ],
            occupancy=occupancy,
            now=datetime.fromisoformat(now) if now else None,
        )
        logger.info(
            "signal_dump_loaded",
            path=str(path),
            bookings=len(store.bookings),
            searches=len(store.searches),
        )
        return store

    def fetch_booking_signals(
        self,
        hotel_id: int | None = None,
        city: str | None = None,
        from_date: date | None = None,
    ) -> list[BookingRecord]:
        rows = self.bookings
        if hotel_id is not None:
            rows = [b for b in rows if b.hotel_id == hotel_id]
        if city:
            needle = city.lower()
            rows = [
                b for b in rows
                if b.city.lower() == needle or needle in b.hotel_name.lower()
            ]
        if from_date is not None:
            rows = [b for b in rows if b.inserted_at.date() >= from_date]
        return sorted(rows, key=lambda b: b.inserted_at)

    def fetch_search_signals(
        self,
        hotel_id: int | None = None,
        city: str | None = None,
        lookback_days: int = 30,
    ) -> list[SearchRecord]:
        cutoff = self.now - timedelta(days=lookback_days)
        rows = [s for s in self.searches if s.updated_at >= cutoff]
        if hotel_id is not None:
            rows = [s for s in rows if s.hotel_id == hotel_id]
        if city:
            rows = [s for s in rows if s.city.lower() == city.lower()]
        return sorted(rows, key=lambda s: s.updated_at)

    def fetch_competitor_snapshot(
        self, hotel_id: int, check_in: date, check_out: date
    ) -> CompetitorSnapshot | None:
        cutoff = self.now - timedelta(days=COMPETITOR_WINDOW_DAYS)
        rows = [
            p for p in self.competitor_prices
            if p.hotel_id == hotel_id
            and check_in <= p.check_in < max(check_out, check_in + timedelta(days=1))
            and p.scraped_at >= cutoff
            and p.price > 0
        ]
        if not rows:
            return None

        prices = [p.price for p in rows]
        return CompetitorSnapshot(
            avg=sum(prices) / len(prices),
            min=min(prices),
            max=max(prices),
            competitor_count=len({p.competitor for p in rows}),
        )

    def fetch_historical_performance(
        self, hotel_id: int, months: int = 6
    ) -> HistoricalPerformance | None:
        cutoff = self.now - timedelta(days=30 * months)
        rows = [
            b for b in self.bookings
            if b.hotel_id == hotel_id and b.inserted_at >= cutoff and b.price > 0
        ]
        if not rows:
            return None

        sold = [b for b in rows if b.sold]
        margins = [
            (b.list_price - b.price) / b.price * 100
            for b in sold
            if b.list_price is not None
        ]
        return HistoricalPerformance(
            avg_price=sum(b.price for b in rows) / len(rows),
            avg_margin=sum(margins) / len(margins) if margins else 0.0,
            success_rate=len(sold) / len(rows) * 100,
            sample_size=len(rows),
        )

    def fetch_monthly_occupancy(self, hotel_id: int, month: int) -> float | None:
        return self.occupancy.get((hotel_id, month))
