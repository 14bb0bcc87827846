"""Shared pytest fixtures for the RoomArb test suite."""

from datetime import date, datetime, timedelta

import pytest

from src.agents.schemas.signals import BookingRecord, SearchRecord, SignalBatch

AS_OF = datetime(2025, 3, 3, 12, 0)


@pytest.fixture
def as_of() -> datetime:
    """Fixed reference time every batch is built against."""
    return AS_OF


@pytest.fixture
def make_booking():
    """Factory for booking records with sensible defaults."""
    counter = {"n": 0}

    def _make(**overrides) -> BookingRecord:
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "hotel_id": 1,
            "hotel_name": "Hotel Lumiere",
            "city": "Paris",
            "price": 100.0,
            "inserted_at": AS_OF - timedelta(days=60) + timedelta(hours=n),
            "check_in": date(2025, 6, 10),
            "check_out": date(2025, 6, 12),
            "booking_id": f"B{n:04d}",
        }
        fields.update(overrides)
        return BookingRecord(**fields)

    return _make


@pytest.fixture
def make_search():
    """Factory for search-intent records."""

    def _make(**overrides) -> SearchRecord:
        fields = {
            "hotel_id": 1,
            "hotel_name": "Hotel Lumiere",
            "city": "Paris",
            "stay_from": date(2025, 6, 10),
            "stay_to": date(2025, 6, 12),
            "price": 120.0,
            "updated_at": AS_OF - timedelta(days=5),
        }
        fields.update(overrides)
        return SearchRecord(**fields)

    return _make


@pytest.fixture
def make_batch():
    """Wrap records into an immutable SignalBatch at the fixed reference time."""

    def _make(bookings, searches=(), **overrides) -> SignalBatch:
        return SignalBatch(
            bookings=tuple(bookings),
            searches=tuple(searches),
            as_of=overrides.pop("as_of", AS_OF),
            **overrides,
        )

    return _make


@pytest.fixture
def market_bookings(make_booking) -> list[BookingRecord]:
    """Thirty bookings across three Paris hotels with a mild upward drift."""
    bookings = []
    for i in range(30):
        hotel_id = i % 3 + 1
        bookings.append(make_booking(
            hotel_id=hotel_id,
            hotel_name=["Hotel Lumiere", "Le Petit Palais", "Rive Gauche Inn"][hotel_id - 1],
            price=90.0 + i + hotel_id * 5,
            list_price=110.0 + i + hotel_id * 5,
            sold=i % 2 == 0,
            inserted_at=AS_OF - timedelta(days=90 - i * 2),
            check_in=date(2025, 4, 1) + timedelta(days=i),
            check_out=date(2025, 4, 3) + timedelta(days=i),
        ))
    return bookings
