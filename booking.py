"""
Availability, seasonal pricing and reservation status transitions.

Everything here is a pure function over plain documents (dicts as stored in
MongoDB) so routes can call it after loading data and tests can call it
directly. Datetimes are compared as naive UTC, which is what pymongo returns.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from pydantic import BaseModel

SUMMER_MONTHS = (5, 6, 7, 8)
CANCELLATION_NOTICE = timedelta(hours=24)
ADMIN_BLOCK_DURATION = timedelta(hours=48)
REJECTION_PREFIX = "Rejected by owner: "
NOTE_MAX_LENGTH = 500

BLOCKED_MESSAGE = "This cottage is temporarily blocked by the administrator. Please try again later."
DATES_TAKEN_MESSAGE = "Cottage is not available for the selected dates. Please choose different dates."
CANCEL_TOO_LATE_MESSAGE = "Cannot cancel reservation. Cancellation must be made at least 1 day before check-in."


class ReservationError(Exception):
    """A reservation status change that the lifecycle rules do not allow."""


class Verdict(BaseModel):
    available: bool
    message: str
    nights: Optional[int] = None
    total_price: Optional[float] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def daterange(start: datetime, end: datetime):
    """Yield start, start + 1 day, ... while strictly before end."""
    current = start
    while current < end:
        yield current
        current += timedelta(days=1)


def is_blocked(cottage: dict, now: Optional[datetime] = None) -> bool:
    blocked_until = cottage.get("blocked_until")
    if not blocked_until:
        return False
    return as_naive_utc(blocked_until) > as_naive_utc(now or utcnow())


def overlaps(reservation: dict, check_in: datetime, check_out: datetime) -> bool:
    # Both ends inclusive: a checkout and a check-in on the same day collide.
    return (
        as_naive_utc(reservation["check_in"]) <= as_naive_utc(check_out)
        and as_naive_utc(reservation["check_out"]) >= as_naive_utc(check_in)
    )


def find_conflicts(reservations: Iterable[dict], check_in: datetime, check_out: datetime) -> List[dict]:
    """Confirmed reservations among `reservations` that overlap the range."""
    return [
        r for r in reservations
        if r.get("status") == "confirmed" and overlaps(r, check_in, check_out)
    ]


def count_nights(check_in: datetime, check_out: datetime) -> int:
    return math.ceil((check_out - check_in) / timedelta(days=1))


def nightly_rate(cottage: dict, day: datetime) -> float:
    if day.month in SUMMER_MONTHS:
        return float(cottage["summer_price"])
    return float(cottage["winter_price"])


def calculate_price(cottage: dict, check_in: datetime, check_out: datetime) -> float:
    return sum(nightly_rate(cottage, day) for day in daterange(as_naive_utc(check_in), as_naive_utc(check_out)))


def evaluate_availability(
    cottage: dict,
    check_in: datetime,
    check_out: datetime,
    adults: int,
    children: int,
    reservations: Iterable[dict] = (),
    now: Optional[datetime] = None,
) -> Verdict:
    """
    Decide whether a stay can be requested and what it costs.

    Rules are checked in order and the first failure is reported: admin
    block, capacity, date sanity, overlap with a confirmed reservation.
    Only confirmed entries of `reservations` are considered.
    """
    now = as_naive_utc(now or utcnow())
    check_in = as_naive_utc(check_in)
    check_out = as_naive_utc(check_out)

    if is_blocked(cottage, now):
        return Verdict(available=False, message=BLOCKED_MESSAGE)

    capacity = int(cottage.get("capacity", 0))
    guests = (adults or 0) + (children or 0)
    if guests > capacity:
        return Verdict(
            available=False,
            message=f"Cottage capacity is {capacity} guests. You selected {guests} guests.",
        )

    if check_in >= check_out:
        return Verdict(available=False, message="Check-out date must be after check-in date.")
    if check_in < now:
        return Verdict(available=False, message="Check-in date cannot be in the past.")

    if find_conflicts(reservations, check_in, check_out):
        return Verdict(available=False, message=DATES_TAKEN_MESSAGE)

    return Verdict(
        available=True,
        message="Cottage is available!",
        nights=count_nights(check_in, check_out),
        total_price=calculate_price(cottage, check_in, check_out),
    )


# ------- Lifecycle -------

def confirm(reservation: dict, confirmed_for_cottage: Iterable[dict] = ()) -> str:
    """
    Return the new status for an owner confirmation.

    `confirmed_for_cottage` are the cottage's confirmed reservations; the
    reservation being confirmed is skipped if it appears among them.
    """
    status = reservation.get("status")
    if status != "pending":
        raise ReservationError(f"Reservation is already {status}")
    others = [r for r in confirmed_for_cottage if r.get("_id") != reservation.get("_id")]
    if find_conflicts(others, reservation["check_in"], reservation["check_out"]):
        raise ReservationError("Cottage already has a confirmed reservation for these dates.")
    return "confirmed"


def reject(reservation: dict, reason: Optional[str]) -> dict:
    """Return the status/note update for an owner rejection."""
    if not reason or not reason.strip():
        raise ReservationError("Rejection reason is required")
    status = reservation.get("status")
    if status != "pending":
        raise ReservationError(f"Reservation is already {status}")
    note = REJECTION_PREFIX + reason.strip()
    if len(note) > NOTE_MAX_LENGTH:
        raise ReservationError(f"Rejection reason must not exceed {NOTE_MAX_LENGTH - len(REJECTION_PREFIX)} characters")
    return {"status": "cancelled", "note": note}


def cancel(reservation: dict, now: Optional[datetime] = None) -> str:
    """Return the new status for a tourist cancellation."""
    if reservation.get("status") == "cancelled":
        raise ReservationError("Reservation is already cancelled")
    now = as_naive_utc(now or utcnow())
    if as_naive_utc(reservation["check_in"]) <= now + CANCELLATION_NOTICE:
        raise ReservationError(CANCEL_TOO_LATE_MESSAGE)
    return "cancelled"
