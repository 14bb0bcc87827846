"""Pydantic schemas for the signal snapshot shared by the analysis agents."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class BookingRecord(BaseModel):
    """One historical booking / inventory outcome."""

    model_config = ConfigDict(frozen=True)

    hotel_id: int
    hotel_name: str = ""
    city: str = ""
    price: float = Field(description="Price paid to the supplier (buy price)")
    list_price: float | None = Field(
        default=None, description="Price the room was pushed / listed at"
    )
    sold: bool = False
    active: bool = True
    inserted_at: datetime
    check_in: date | None = None
    check_out: date | None = None

    booking_id: str | None = None
    provider: str = ""
    free_cancellation: bool = False
    pushed: bool = False
    cancelled: bool = False

    @property
    def hotel_key(self) -> str:
        """Grouping key: the hotel name, or a synthetic one from the id."""
        return self.hotel_name or f"Hotel_{self.hotel_id}"


class SearchRecord(BaseModel):
    """One search-intent observation from the supplier search feed."""

    model_config = ConfigDict(frozen=True)

    hotel_id: int
    hotel_name: str = ""
    city: str = ""
    stay_from: date
    stay_to: date
    price: float = 0.0
    updated_at: datetime


class ScopeFilters(BaseModel):
    """Optional hotel / city scope applied by the agents."""

    model_config = ConfigDict(frozen=True)

    hotel_id: int | None = None
    city: str | None = None

    def matches_booking(self, booking: BookingRecord) -> bool:
        if self.hotel_id is not None:
            return booking.hotel_id == self.hotel_id
        if self.city:
            needle = self.city.lower()
            return needle == booking.city.lower() or needle in booking.hotel_name.lower()
        return True

    def matches_search(self, search: SearchRecord) -> bool:
        if self.hotel_id is not None:
            return search.hotel_id == self.hotel_id
        if self.city:
            return self.city.lower() == search.city.lower()
        return True


class SignalBatch(BaseModel):
    """Immutable snapshot of the signals one analysis request works on.

    `as_of` is the reference "now" for every time-relative computation
    (recent velocity, lead times, forecasts), so re-running an analysis on
    the same batch gives the same answer.
    """

    model_config = ConfigDict(frozen=True)

    bookings: tuple[BookingRecord, ...] = ()
    searches: tuple[SearchRecord, ...] = ()
    hotel_id: int | None = None
    city: str | None = None
    lookback_days: int = Field(default=365, ge=1)
    as_of: datetime

    def scoped_bookings(self, scope: ScopeFilters | None = None) -> list[BookingRecord]:
        """Bookings matching the scope, oldest insertion first."""
        scope = scope or ScopeFilters()
        selected = [b for b in self.bookings if scope.matches_booking(b)]
        return sorted(selected, key=lambda b: b.inserted_at)

    def scoped_searches(self, scope: ScopeFilters | None = None) -> list[SearchRecord]:
        scope = scope or ScopeFilters()
        selected = [s for s in self.searches if scope.matches_search(s)]
        return sorted(selected, key=lambda s: s.updated_at)
