"""
Single authoritative pricing module for event-space bookings.

Both the client-side estimate and the booking server's charge amount come
from compute_price(); there is no other copy of these rules.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple

from booking_schemas import MAX_GUESTS, MIN_GUESTS, BookingRequest, LineItem, PriceBreakdown
from errors import InvalidInputError

FRIDAY = 4
SATURDAY = 5
SUNDAY = 6

EXTRA_ROOM_HOURLY = 50
PHOTOGRAPHER_HOURLY = 100
ALL_INCLUSIVE_FLAT = 350


@dataclass(frozen=True)
class RateTable:
    default_rate: float = 100
    weekend_day_rate: float = 110       # Fri/Sat, start before 17:00
    weekend_evening_rate: float = 120   # Fri/Sat, 17:00 - 20:59
    premium_rate: float = 150           # Fri/Sat from 21:00
    evening_hour: int = 17
    late_hour: int = 21
    # Sunday never reached the premium tier in the booking form this replaced.
    # Off by default to keep quoted prices unchanged.
    sunday_premium: bool = False


DEFAULT_RATES = RateTable()


def duration_hours(start: datetime, end: datetime) -> float:
    """Absolute elapsed hours; an end before the start yields the magnitude."""
    if not isinstance(start, datetime) or not isinstance(end, datetime):
        raise InvalidInputError("Event start and end must be valid date-times")
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise InvalidInputError("Event start and end must both carry a timezone or neither")
    return abs((end - start).total_seconds()) / 3600


def hourly_base_rate(start: datetime, rates: RateTable = DEFAULT_RATES) -> float:
    day = start.weekday()
    hour = start.hour

    if day in (FRIDAY, SATURDAY):
        if hour < rates.evening_hour:
            return rates.weekend_day_rate
        if hour < rates.late_hour:
            return rates.weekend_evening_rate
        return rates.premium_rate
    if day == SUNDAY and rates.sunday_premium:
        return rates.premium_rate
    return rates.default_rate


def extra_guest_rate(guests: int) -> float:
    if guests <= 19:
        return 0
    if guests <= 29:
        return 10
    return 20


def cleaning_fee(guests: int) -> float:
    return 50 if guests <= 20 else 125


def _validate(booking: BookingRequest):
    guests = booking.guests
    if isinstance(guests, bool) or not isinstance(guests, int):
        raise InvalidInputError("Guest count must be a whole number")
    if not MIN_GUESTS <= guests <= MAX_GUESTS:
        raise InvalidInputError(f"Guest count must be between {MIN_GUESTS} and {MAX_GUESTS}")


def compute_price(booking: BookingRequest, rates: RateTable = DEFAULT_RATES) -> Tuple[PriceBreakdown, float]:
    """
    Map booking parameters to an itemized breakdown and its total.

    Hourly components scale linearly with (possibly fractional) duration;
    the cleaning fee and the all-inclusive package are flat. Only selected
    add-ons appear in the add-on mapping.
    """
    _validate(booking)
    hours = duration_hours(booking.start, booking.end)

    add_ons = {}
    if booking.extra_room:
        add_ons["extraRoom"] = EXTRA_ROOM_HOURLY * hours
    if booking.photographer:
        add_ons["photographer"] = PHOTOGRAPHER_HOURLY * hours
    if booking.all_inclusive:
        add_ons["allInclusive"] = ALL_INCLUSIVE_FLAT

    breakdown = PriceBreakdown(
        base_rate=hourly_base_rate(booking.start, rates) * hours,
        guest_fee=extra_guest_rate(booking.guests) * hours,
        cleaning_fee=cleaning_fee(booking.guests),
        add_ons=add_ons,
    )
    # total is derived from the breakdown itself so the two cannot drift
    return breakdown, breakdown.total


def to_minor_units(amount: float) -> int:
    """Major currency units to cents, rounding half up."""
    return int(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100)


def line_items(breakdown: PriceBreakdown) -> List[LineItem]:
    components = [
        ("base_rate", breakdown.base_rate),
        ("guest_fee", breakdown.guest_fee),
        ("cleaning_fee", breakdown.cleaning_fee),
    ]
    components.extend(breakdown.add_ons.items())
    return [LineItem(id=name, amount=to_minor_units(value)) for name, value in components if value]
