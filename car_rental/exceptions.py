import logging

from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError

logger = logging.getLogger(__name__)


class BookingError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Booking request failed"
    default_code = "booking_error"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"
    default_code = "not_found"


class Unavailable(BookingError):
    default_detail = "Car is not available for booking"
    default_code = "unavailable"


class InvalidDateRange(BookingError):
    default_detail = "Invalid pickup or return date"
    default_code = "invalid_date_range"


class SlotConflict(BookingError):
    default_detail = "Car is already booked for the selected dates"
    default_code = "slot_conflict"


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Not authorized to access this booking"
    default_code = "forbidden"


class Transient(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Temporary storage failure, please retry"
    default_code = "transient"


def _message(detail):
    if isinstance(detail, list):
        return " ".join(_message(item) for item in detail)
    if isinstance(detail, dict):
        return " ".join(f"{field}: {_message(value)}" for field, value in detail.items())
    return str(detail)


def envelope_exception_handler(exc, context):
    """Render every API error as ``{"success": false, "message": ...}``."""
    # rest_framework.views loads the authentication classes, which import this module
    from rest_framework.views import exception_handler

    if isinstance(exc, DatabaseError):
        logger.exception("Database failure in %r", context.get("view"))
        exc = Transient()

    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    detail = data.get("detail", data) if isinstance(data, dict) else data
    body = {"success": False, "message": _message(detail)}
    if isinstance(exc, ValidationError):
        body["errors"] = data
    response.data = body
    return response
