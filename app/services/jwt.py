"""Bearer tokens identifying Callcoach API callers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import get_settings

TOKEN_ISSUER = "callcoach"


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    display_name: str
    expires_at: datetime


class JWTService:
    """Issues and checks HS256 tokens. Every token names its owner in ``sub``."""

    def __init__(self) -> None:
        settings = get_settings()
        self._key = settings.JWT_SECRET_KEY
        self._algorithm = settings.JWT_ALGORITHM
        self._lifetime = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)

    def create_token(self, user_id: int, email: str, display_name: str) -> str:
        claims = {
            "iss": TOKEN_ISSUER,
            "sub": str(user_id),
            "email": email,
            "displayName": display_name,
            "exp": datetime.now(timezone.utc) + self._lifetime,
        }
        return jwt.encode(claims, self._key, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenClaims | None:
        """Return the token's claims, or None for a bad signature, expiry, wrong issuer or non-numeric subject."""
        try:
            raw = jwt.decode(token, self._key, algorithms=[self._algorithm], issuer=TOKEN_ISSUER)
        except JWTError:
            return None

        subject = str(raw.get("sub", ""))
        if not subject.isdigit():
            return None
        return TokenClaims(
            user_id=int(subject),
            email=raw.get("email", ""),
            display_name=raw.get("displayName", ""),
            expires_at=datetime.fromtimestamp(raw["exp"], tz=timezone.utc),
        )


_jwt_service: JWTService | None = None


def get_jwt_service() -> JWTService:
    global _jwt_service
    if _jwt_service is None:
        _jwt_service = JWTService()
    return _jwt_service
