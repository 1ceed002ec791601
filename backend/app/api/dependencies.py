from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.exceptions import InactiveAccount
from app.models.user import User
from app.services.bot_verification import BotVerifier, bot_verifier
from app.services.mail_service import Mailer, mailer
from app.services.password_reset_service import PasswordResetService
from app.services.session_service import SessionService
from app.services.user_service import UserService

# Extracts "Authorization: Bearer <token>"; auto_error=False so a missing header
# produces our own 401 instead of FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def get_bot_verifier() -> BotVerifier:
    return bot_verifier


def get_mailer() -> Mailer:
    return mailer


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_session_service(db: Session = Depends(get_db)) -> SessionService:
    return SessionService(db)


def get_password_reset_service(db: Session = Depends(get_db)) -> PasswordResetService:
    return PasswordResetService(db)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Raw bearer token from the Authorization header, 401 when absent"""
    if credentials is None or not credentials.credentials:
        raise _credentials_exception()
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_bearer_token),
    sessions: SessionService = Depends(get_session_service),
    users: UserService = Depends(get_user_service),
) -> User:
    """
    Resolve the bearer token to a user before a protected handler runs.

    Unknown, expired and revoked tokens all fail with 401; the handler is
    never invoked. Declared sync so FastAPI runs the lookups in its threadpool.
    """
    user_id = sessions.resolve_session(token)
    if user_id is None:
        raise _credentials_exception()

    # If the user was removed after the session was issued, this is None
    user = users.get_by_id(user_id)
    if user is None:
        raise _credentials_exception()

    if not user.is_active:
        raise InactiveAccount()

    return user
