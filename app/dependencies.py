"""Authentication dependencies for FastAPI routes."""

from dataclasses import dataclass

from fastapi import Request

from app.errors import ApiError
from app.services.jwt import get_jwt_service


@dataclass
class CurrentUser:
    """Authenticated caller, passed explicitly to every handler that needs it."""

    user_id: int
    email: str
    display_name: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract and validate the caller from the Bearer token. Raises 401 if missing or invalid."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise ApiError(401, "Authorization required", "UNAUTHORIZED")

    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise ApiError(401, "Invalid authentication", "INVALID_TOKEN")

    claims = get_jwt_service().decode_token(token.strip())
    if claims is None:
        raise ApiError(401, "Invalid authentication", "INVALID_TOKEN")

    return CurrentUser(user_id=claims.user_id, email=claims.email, display_name=claims.display_name)
