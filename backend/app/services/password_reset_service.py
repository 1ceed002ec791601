"""
Password reset by emailed numeric code.

A record moves Pending -> Used when a reset is committed; it is Expired once
the clock passes expires_at. verify_code is advisory and mutates nothing:
reset_password re-checks the same predicate before changing anything.
Requesting a new code leaves earlier pending codes valid.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.exceptions import InvalidOrExpiredResetCode
from app.core.security import as_utc, generate_reset_code, utcnow
from app.models.password_reset import PasswordReset
from app.models.user import User
from app.services.session_service import SessionService
from app.services.user_service import UserService, check_password_length, normalize_email

logger = logging.getLogger(__name__)


class PasswordResetService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.users = UserService(db)
        self.sessions = SessionService(db)

    def request_reset(self, email: str) -> tuple[Optional[User], Optional[str]]:
        """
        Issue a new code for the account behind `email`.

        Returns (None, None) when no account exists. Callers must answer both
        cases identically.
        """
        email = normalize_email(email)
        user = self.users.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None, None

        code = generate_reset_code()
        expires_at = self.clock() + timedelta(minutes=settings.RESET_CODE_EXPIRE_MINUTES)
        self.db.add(PasswordReset(email=email, code=code, expires_at=expires_at, used=False))
        self.db.commit()
        logger.info(f"Password reset code issued for user {user.id}, expires {expires_at.isoformat()}")
        return user, code

    def _find_pending(self, email: str, code: str) -> Optional[PasswordReset]:
        """The unused, unexpired record matching email and exact code, if any"""
        email = normalize_email(email)
        if not email or not code:
            return None

        now = self.clock()
        candidates = self.db.query(PasswordReset).filter(
            PasswordReset.email == email,
            PasswordReset.code == code,
            PasswordReset.used.is_(False),
        ).order_by(PasswordReset.created_at.desc(), PasswordReset.id.desc()).all()
        for record in candidates:
            if now <= as_utc(record.expires_at):
                return record
        return None

    def verify_code(self, email: str, code: str) -> bool:
        return self._find_pending(email, code) is not None

    def reset_password(self, email: str, code: str, new_password: str) -> User:
        """
        Change the password of the account behind a valid code.

        The hash change, consuming the code and revoking every session of
        the user are committed together.
        """
        check_password_length(new_password)

        record = self._find_pending(email, code)
        if record is None:
            raise InvalidOrExpiredResetCode()
        user = self.users.get_by_email(record.email)
        if user is None:
            raise InvalidOrExpiredResetCode()

        try:
            self.users.set_password(user, new_password, commit=False)
            record.used = True
            revoked = self.sessions.revoke_all_sessions(user.id, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Password reset for user {user.id}; revoked {revoked} session(s)")
        return user
