import logging
import re
from typing import Optional
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.exceptions import DuplicateIdentity, ValidationError
from app.core.security import get_password_hash, verify_password
from app.models.user import User

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_email(identifier: str) -> bool:
    return bool(EMAIL_PATTERN.match(identifier))


def check_password_length(password: str) -> None:
    """Raise ValidationError when the password is below the configured minimum"""
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
        )


class UserService:
    """Credential store: user identities and their password hashes"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def get_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def email_taken(self, email: str) -> bool:
        return self.db.query(User.id).filter(func.lower(User.email) == normalize_email(email)).first() is not None

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Look a user up by email when the identifier looks like one, otherwise by username"""
        identifier = identifier.strip()
        if not identifier:
            return None
        if is_email(identifier):
            return self.get_by_email(identifier)
        return self.get_by_username(identifier)

    def create(
        self,
        first_name: str,
        last_name: str,
        username: str,
        email: str,
        password: str,
    ) -> User:
        """Create a user, rejecting taken emails/usernames and short passwords"""
        check_password_length(password)
        email = normalize_email(email)
        username = username.strip()

        # Explicit checks give a field-specific message; the unique indexes
        # still catch the case where two registrations race past them
        if self.email_taken(email):
            raise DuplicateIdentity("email")
        if self.get_by_username(username):
            raise DuplicateIdentity("username")

        user = User(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            username=username,
            email=email,
            hashed_password=get_password_hash(password),
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            field = "email" if self.get_by_email(email) else "username"
            raise DuplicateIdentity(field)
        # Refresh to load auto-generated fields (id, timestamps) from database
        self.db.refresh(user)
        logger.info(f"Registered user {user.id} ({user.username})")
        return user

    @staticmethod
    def verify_password(user: User, candidate: str) -> bool:
        return verify_password(candidate, user.hashed_password)

    def set_password(self, user: User, new_password: str, commit: bool = True) -> None:
        """Replace the stored hash. Callers must have authorized the change already."""
        user.hashed_password = get_password_hash(new_password)
        if commit:
            self.db.commit()
