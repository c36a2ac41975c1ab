"""Authentication service layer."""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from carecal.auth.schemas import Token, UserLogin, UserRegister
from carecal.auth.utils import create_access_token, get_password_hash, verify_password
from carecal.db.models import User
from carecal.exceptions import Conflict, Forbidden, InvalidArgument, Unauthenticated
from carecal.permissions.resolver import normalize_email

logger = logging.getLogger(__name__)

VERIFICATION_LINK_HOURS = 24


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def send_verification_email(self, user: User, base_url: str) -> bool:
        """Issue a fresh verification token and email the link.

        Args:
            user: User to send verification to.
            base_url: Base URL of the application.

        Returns:
            bool: True if email sent successfully.
        """
        user.email_verification_token = secrets.token_hex(32)
        user.email_verification_sent_at = datetime.now(UTC)
        self.db.commit()

        verification_url = f"{base_url}/api/auth/verify-email?token={user.email_verification_token}"

        try:
            from carecal.email.service import get_email_service

            email_service = get_email_service()
            return email_service.send_verification_email(
                user.email, user.display_name, verification_url
            )
        except Exception as e:
            logger.warning(f"Failed to send verification email to {user.email}: {e}")
            return False

    def register(self, data: UserRegister, base_url: str = "") -> User:
        """Create an unverified account and send the verification email.

        Args:
            data: Registration data.
            base_url: Base URL for the verification link.

        Returns:
            User: Created user.

        Raises:
            Conflict: If the email is already registered.
        """
        email = normalize_email(data.email)
        if self.get_user_by_email(email):
            raise Conflict("An account with this email already exists")

        user = User(
            email=email,
            password_hash=get_password_hash(data.password),
            display_name=data.display_name,
            is_email_verified=False,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"Registered user {user.id} ({email})")

        self.send_verification_email(user, base_url)
        return user

    def verify_email(self, token: str) -> User:
        """Mark the account owning a verification token as verified.

        Raises:
            InvalidArgument: Unknown or expired token.
        """
        user = self.db.query(User).filter(User.email_verification_token == token).first()
        if not user:
            raise InvalidArgument("Invalid verification link.")

        if user.email_verification_sent_at:
            sent_at = user.email_verification_sent_at
            if sent_at.tzinfo is None:
                sent_at = sent_at.replace(tzinfo=UTC)
            if datetime.now(UTC) > sent_at + timedelta(hours=VERIFICATION_LINK_HOURS):
                raise InvalidArgument("Verification link has expired. Please request a new one.")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_sent_at = None
        self.db.commit()
        logger.info(f"Verified email for user {user.id}")
        return user

    def login(self, data: UserLogin) -> tuple[User, Token]:
        """Authenticate a user and issue an access token.

        Args:
            data: Login credentials.

        Returns:
            tuple: (User, Token).

        Raises:
            Unauthenticated: Bad email or password.
            Forbidden: Email address not verified yet.
        """
        user = self.get_user_by_email(data.email)
        if not user or not verify_password(data.password, user.password_hash):
            raise Unauthenticated("Invalid email or password.")

        if not user.is_email_verified:
            raise Forbidden(
                "Please verify your email address before logging in. "
                "Check your inbox for the verification link."
            )

        user.last_login = datetime.now(UTC)
        self.db.commit()

        token = Token(access_token=create_access_token(user.id, user.email))
        return user, token


def get_auth_service(db: Session) -> AuthService:
    """Factory function for AuthService."""
    return AuthService(db)
