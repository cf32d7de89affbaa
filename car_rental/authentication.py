from datetime import datetime, timedelta, timezone

from django.conf import settings
from django.contrib.auth import get_user_model
from jose import JWTError, jwt
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .permissions import role_of


def issue_token(user):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.pk),
        "role": role_of(user),
        "iat": now,
        "exp": now + timedelta(minutes=settings.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class JWTAuthentication(BaseAuthentication):
    """Bearer token authentication.

    The token only carries the user id; the role is read from the user
    record on every request so a role change takes effect immediately.
    """
    keyword = "Bearer"

    def authenticate(self, request):
        parts = get_authorization_header(request).split()
        if not parts or parts[0].lower() != self.keyword.lower().encode():
            return None
        if len(parts) != 2:
            raise exceptions.AuthenticationFailed("Invalid Authorization header")

        try:
            payload = jwt.decode(parts[1].decode(), settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except (JWTError, UnicodeError):
            raise exceptions.AuthenticationFailed("Invalid or expired token")

        user = get_user_model().objects.filter(pk=payload.get("sub"), is_active=True).first()
        if user is None:
            raise exceptions.AuthenticationFailed("User no longer exists")

        return user, payload

    def authenticate_header(self, request):
        return self.keyword
