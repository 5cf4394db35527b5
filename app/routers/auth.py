"""Authentication API endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import AccountDisabled, ApiError, EmailAlreadyRegistered, InvalidCredentials
from app.models.user import User
from app.rate_limit import limiter
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.services.auth import get_auth_service
from app.services.jwt import get_jwt_service

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _token_response(user: User) -> TokenResponse:
    token = get_jwt_service().create_token(user.id, user.email, user.display_name)
    return TokenResponse(token=token, user_id=user.id, email=user.email, display_name=user.display_name)


@router.post("/register", response_model=TokenResponse)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Register a new user account."""
    try:
        user = get_auth_service().register(db, body.email, body.password, body.display_name)
    except EmailAlreadyRegistered as e:
        raise ApiError(400, str(e), "EMAIL_ALREADY_REGISTERED") from None
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    """Authenticate and receive a bearer token."""
    try:
        user = get_auth_service().authenticate(db, body.email, body.password)
    except InvalidCredentials as e:
        raise ApiError(401, str(e), "INVALID_CREDENTIALS") from None
    except AccountDisabled as e:
        raise ApiError(403, str(e), "ACCOUNT_DISABLED") from None
    return _token_response(user)


@router.get("/verify")
def verify_token(token: str) -> dict:
    """Verify a token and return its claims."""
    claims = get_jwt_service().decode_token(token)
    if claims is None:
        raise ApiError(401, "Invalid or expired token", "INVALID_TOKEN")

    return {
        "valid": True,
        "user_id": claims.user_id,
        "email": claims.email,
        "display_name": claims.display_name,
        "expires_at": claims.expires_at.isoformat(),
    }
