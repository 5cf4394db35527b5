"""Account registration and password login."""

import logging

import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.errors import AccountDisabled, EmailAlreadyRegistered, InvalidCredentials
from app.models.user import User

logger = logging.getLogger("callcoach")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def password_matches(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class AuthService:
    """Owns the users table. Emails are stored lower-cased and matched that way."""

    def get_user_by_email(self, db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    def register(self, db: Session, email: str, password: str, display_name: str) -> User:
        """Create an active account. Raises EmailAlreadyRegistered."""
        if self.get_user_by_email(db, email) is not None:
            raise EmailAlreadyRegistered("Email already registered")

        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            display_name=display_name.strip(),
            is_active=True,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            db.rollback()
            raise EmailAlreadyRegistered("Email already registered") from e
        db.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    def authenticate(self, db: Session, email: str, password: str) -> User:
        """Check a password login. Raises InvalidCredentials or AccountDisabled."""
        user = self.get_user_by_email(db, email)
        if user is None or not password_matches(password, user.password_hash):
            raise InvalidCredentials("Invalid email or password")
        if not user.is_active:
            raise AccountDisabled("Account is deactivated")

        user.last_login_at = utcnow()
        db.commit()
        return user


_auth_service: AuthService | None = None


def get_auth_service() -> AuthService:
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service
