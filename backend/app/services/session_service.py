import logging
from typing import Optional
from sqlalchemy.orm import Session
from app.core.security import (
    as_utc,
    create_session_token,
    decode_session_token,
    hash_token,
    utcnow,
)
from app.models.session import UserSession
from app.models.user import User

logger = logging.getLogger(__name__)


class SessionService:
    """Issues, resolves and revokes bearer sessions"""

    def __init__(self, db: Session):
        self.db = db

    def _add_session(self, user_id: int) -> str:
        token, expires_at = create_session_token(user_id)
        self.db.add(UserSession(
            user_id=user_id,
            token_hash=hash_token(token),
            expires_at=expires_at,
        ))
        return token

    def create_session(self, user_id: int) -> str:
        """Create a session for a user with no prior sessions (registration)"""
        token = self._add_session(user_id)
        self.db.commit()
        return token

    def rotate_session(self, user_id: int) -> str:
        """
        Replace every session of a user with a single new one.

        Revoke-all and create happen in one transaction. The user row is locked
        first so concurrent logins for the same user serialize on backends that
        support SELECT ... FOR UPDATE (SQLite ignores it and locks the whole
        database on write instead).
        """
        try:
            self.db.query(User.id).filter(User.id == user_id).with_for_update().first()
            revoked = self._delete_user_sessions(user_id)
            token = self._add_session(user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if revoked:
            logger.info(f"Revoked {revoked} previous session(s) for user {user_id}")
        return token

    def resolve_session(self, token: str) -> Optional[int]:
        """Return the user id for a live session token, None otherwise"""
        payload = decode_session_token(token)
        if payload is None:
            return None

        session = self.db.query(UserSession).filter(
            UserSession.token_hash == hash_token(token)
        ).first()
        if session is None:
            return None
        if as_utc(session.expires_at) < utcnow():
            return None

        # The stored row is authoritative; the claim must agree with it
        if payload.get("sub") != str(session.user_id):
            return None
        return session.user_id

    def revoke_session(self, token: str) -> None:
        """Delete the session for a token. Revoking an unknown token is a no-op."""
        self.db.query(UserSession).filter(
            UserSession.token_hash == hash_token(token)
        ).delete(synchronize_session=False)
        self.db.commit()

    def _delete_user_sessions(self, user_id: int) -> int:
        return self.db.query(UserSession).filter(
            UserSession.user_id == user_id
        ).delete(synchronize_session=False)

    def revoke_all_sessions(self, user_id: int, commit: bool = True) -> int:
        revoked = self._delete_user_sessions(user_id)
        if commit:
            self.db.commit()
        return revoked

    def purge_expired(self) -> int:
        """Delete sessions whose expiry has passed"""
        purged = self.db.query(UserSession).filter(
            UserSession.expires_at < utcnow()
        ).delete(synchronize_session=False)
        self.db.commit()
        return purged
