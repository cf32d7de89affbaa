import logging
import re
import time
import uuid

from .permissions import role_of

logger = logging.getLogger("car_rental.requests")

REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")


class RequestLoggingMiddleware:
    """Tag each request with an ``X-Request-Id`` and log one line per response."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.headers.get("X-Request-Id", "")
        if not REQUEST_ID_PATTERN.fullmatch(request_id):
            request_id = str(uuid.uuid4())
        request.request_id = request_id

        start = time.perf_counter()
        try:
            response = self.get_response(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "request_id=%s method=%s path=%s status=500 duration_ms=%.2f",
                request_id, request.method, request.path, duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response["X-Request-Id"] = request_id

        # DRF authenticates inside the view, so the user is known by now
        user = getattr(request, "user", None)
        if user is not None and user.is_authenticated:
            user_id, role = user.pk, role_of(user)
        else:
            user_id, role = None, None
        logger.info(
            "request_id=%s method=%s path=%s status=%s duration_ms=%.2f user=%s role=%s",
            request_id, request.method, request.path, response.status_code, duration_ms, user_id, role,
        )
        return response
