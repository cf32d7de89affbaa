"""Booking lifecycle: reservation, pricing, status changes and the car
availability flag that mirrors them.

Every write that touches a booking and its car runs inside one
``transaction.atomic()`` block. Creation claims the car with a
compare-and-swap on ``Car.availability`` before inserting, and the
``one_active_booking_per_car`` constraint backs that up at the database,
so two concurrent requests for the same car cannot both end up active.
"""
import functools
import logging
from datetime import date, datetime

from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from .exceptions import InvalidDateRange, NotFound, SlotConflict, Transient, Unavailable
from .models import Booking, Car
from .permissions import ensure_can_access

logger = logging.getLogger(__name__)


def _store_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as exc:
            logger.exception("Store failure in %s", func.__name__)
            raise Transient() from exc
    return wrapper


def parse_calendar_date(value):
    """Return the calendar date named by ``value`` or None.

    ISO datetimes keep the date as written; no timezone conversion happens,
    so ``2024-06-10T00:00:00Z`` is June 10th everywhere.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        if "T" in text or " " in text:
            parsed = parse_datetime(text)
            return parsed.date() if parsed else None
        return parse_date(text)
    except ValueError:
        return None


def rental_days(pickup_date, return_date):
    # whole calendar days, so the ceiling of the day difference is exact
    return (return_date - pickup_date).days


def quote(car, pickup_date, return_date):
    return rental_days(pickup_date, return_date) * car.price_per_day


def validate_date_range(pickup_date, return_date):
    pickup = parse_calendar_date(pickup_date)
    ret = parse_calendar_date(return_date)
    if pickup is None or ret is None:
        raise InvalidDateRange("Pickup and return dates must be valid ISO dates")
    if ret < pickup:
        raise InvalidDateRange("Return date must be equal to or after pickup date")
    if pickup < timezone.localdate():
        raise InvalidDateRange("Pickup date cannot be in the past")
    return pickup, ret


def _with_related(booking_id):
    return Booking.objects.with_related().get(pk=booking_id)


def _unavailable(car, pickup_date, return_date, exclude=None):
    """Explain why a car that is flagged unavailable cannot be taken.

    An active booking overlapping the requested dates is reported as a slot
    conflict; anything else (another window, an admin hold) as unavailable.
    Dates must already be validated calendar dates.
    """
    if Booking.objects.overlapping(car, pickup_date, return_date, exclude=exclude).exists():
        return SlotConflict()
    return Unavailable()


@_store_errors
def create_booking(user, car_id, pickup_date, return_date, pickup_location, notes=""):
    car = Car.objects.find_by_id(car_id)
    if car is None:
        raise NotFound("Car not found")
    if not car.availability:
        logger.warning("Booking rejected: car %s is not available", car.pk)
        try:
            pickup, ret = validate_date_range(pickup_date, return_date)
        except InvalidDateRange:
            raise Unavailable()
        raise _unavailable(car, pickup, ret)

    pickup, ret = validate_date_range(pickup_date, return_date)
    total_price = quote(car, pickup, ret)

    try:
        with transaction.atomic():
            if not Car.objects.conditional_update(car.pk, expected={"availability": True}, availability=False):
                logger.warning("Booking rejected: car %s was claimed concurrently", car.pk)
                raise _unavailable(car, pickup, ret)

            if Booking.objects.overlapping(car, pickup, ret).exists():
                logger.warning("Booking rejected: car %s already booked between %s and %s", car.pk, pickup, ret)
                raise SlotConflict()

            booking = Booking.objects.create(
                user=user,
                car=car,
                pickup_location=pickup_location,
                pickup_date=pickup,
                return_date=ret,
                total_price=total_price,
                notes=notes or "",
                status=Booking.Status.PENDING,
                payment_status=Booking.PaymentStatus.PENDING,
            )
    except IntegrityError as exc:
        logger.warning("Booking rejected: car %s already has an active booking", car.pk)
        raise SlotConflict("Car already has an active booking") from exc

    logger.info(
        "Booking %s created: car=%s user=%s %s..%s total=%s",
        booking.pk, car.pk, user.pk, pickup, ret, total_price,
    )
    return _with_related(booking.pk)


@_store_errors
def get_user_bookings(user):
    return list(Booking.objects.for_user(user).with_related().newest_first())


@_store_errors
def list_all_bookings():
    return list(Booking.objects.with_related().newest_first())


@_store_errors
def get_booking(booking_id, user):
    booking = Booking.objects.with_related().filter(pk=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found")
    ensure_can_access(booking, user, "access")
    return booking


def _locked_booking(booking_id):
    booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found")
    return booking


@_store_errors
def update_booking_status(booking_id, user, status=None, payment_status=None, pickup_location=None, notes=None):
    """Change a booking's status and descriptive fields.

    Any status may follow any other. Leaving the active set frees the car;
    re-entering it claims the car again and fails if someone else holds it.
    Dates, car, owner and total price never change here.
    """
    try:
        with transaction.atomic():
            booking = _locked_booking(booking_id)
            ensure_can_access(booking, user, "update")
            was_active = booking.is_active

            if status is not None:
                booking.status = status
            if payment_status is not None:
                booking.payment_status = payment_status
            if pickup_location is not None:
                booking.pickup_location = pickup_location
            if notes is not None:
                booking.notes = notes

            if was_active and not booking.is_active:
                Car.objects.conditional_update(booking.car_id, availability=True)
            elif booking.is_active and not was_active:
                _reclaim_car(booking)

            booking.save()
    except IntegrityError as exc:
        logger.warning("Booking %s reactivation rejected: its car has another active booking", booking_id)
        raise SlotConflict("Car already has an active booking") from exc

    logger.info("Booking %s updated by user %s: status=%s payment=%s",
                booking.pk, user.pk, booking.status, booking.payment_status)
    return _with_related(booking.pk)


def _reclaim_car(booking):
    if not Car.objects.conditional_update(booking.car_id, expected={"availability": True}, availability=False):
        logger.warning("Booking %s reactivation rejected: car %s is not available", booking.pk, booking.car_id)
        raise _unavailable(booking.car_id, booking.pickup_date, booking.return_date, exclude=booking)
    if Booking.objects.overlapping(booking.car_id, booking.pickup_date, booking.return_date, exclude=booking).exists():
        logger.warning("Booking %s reactivation rejected: overlapping booking on car %s", booking.pk, booking.car_id)
        raise SlotConflict()


@_store_errors
def cancel_booking(booking_id, user):
    with transaction.atomic():
        booking = _locked_booking(booking_id)
        ensure_can_access(booking, user, "cancel")
        booking.status = Booking.Status.CANCELLED
        booking.save(update_fields=["status", "updated_at"])
        Car.objects.conditional_update(booking.car_id, availability=True)

    logger.info("Booking %s cancelled by user %s; car %s released", booking.pk, user.pk, booking.car_id)
    return _with_related(booking.pk)
