import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.concurrency import run_in_threadpool
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_serializer
from pydantic.alias_generators import to_camel
from app.core.config import settings
from app.core.exceptions import BotGateFailure, InactiveAccount, InvalidCredentials, InvalidOrExpiredResetCode, ValidationError
from app.models.user import User
from app.api.dependencies import (
    get_bearer_token,
    get_bot_verifier,
    get_current_user,
    get_mailer,
    get_password_reset_service,
    get_session_service,
    get_user_service,
)
from app.services.bot_verification import BotVerifier
from app.services.mail_service import Mailer
from app.services.password_reset_service import PasswordResetService
from app.services.session_service import SessionService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_REQUEST_MESSAGE = "If an account exists for that email, a verification code has been sent"


class CamelModel(BaseModel):
    # Clients send and receive camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Requests
# -----------------------------

class RegisterRequest(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    username: str = Field(min_length=1)
    email: EmailStr
    password: str
    bot_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("botToken", "recaptchaToken"))


class LoginRequest(CamelModel):
    # "login" may be an email or a username
    login: Optional[str] = Field(default=None, validation_alias=AliasChoices("login", "email"))
    password: Optional[str] = None
    bot_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("botToken", "recaptchaToken"))


class ResetRequest(CamelModel):
    email: str = Field(min_length=1)
    bot_token: Optional[str] = Field(default=None, validation_alias=AliasChoices("botToken", "recaptchaToken"))


class ResetVerifyRequest(CamelModel):
    email: str = Field(min_length=1)
    code: str = Field(min_length=1)


class ResetConfirmRequest(CamelModel):
    email: str = Field(min_length=1)
    code: str = Field(min_length=1)
    new_password: str


# Responses
# -----------------------------

class UserSummary(CamelModel):
    id: int
    first_name: str
    last_name: str
    username: str
    email: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class UserProfile(UserSummary):
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("created_at", "updated_at")
    def serialize_timestamps(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class AuthData(CamelModel):
    token: str
    user: UserSummary


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    data: AuthData


class ProfileData(CamelModel):
    user: UserProfile


class ProfileResponse(CamelModel):
    success: bool = True
    data: ProfileData


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class ResetRequestResponse(MessageResponse):
    # Only ever populated outside production
    dev_code: Optional[str] = None


def _auth_response(message: str, token: str, user: User) -> AuthResponse:
    return AuthResponse(
        message=message,
        data=AuthData(token=token, user=UserSummary.model_validate(user)),
    )


async def _require_human(verifier: BotVerifier, token: Optional[str]) -> None:
    if not await verifier.verify(token):
        raise BotGateFailure()


def _deliver_reset_code(mail: Mailer, email: str, code: str) -> None:
    """Background delivery: any failure is logged, never surfaced to the client"""
    try:
        mail.send_reset_code(email, code, settings.RESET_CODE_EXPIRE_MINUTES)
    except Exception:
        logger.exception("Unexpected error delivering reset code email")


# REST api
# -----------------------------
# Handlers stay async so the bot check can await its HTTP call; database and
# bcrypt work goes through run_in_threadpool so it never runs on the event loop

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    verifier: BotVerifier = Depends(get_bot_verifier),
    users: UserService = Depends(get_user_service),
    sessions: SessionService = Depends(get_session_service),
):
    """Register a new user and open their first session"""
    await _require_human(verifier, payload.bot_token)

    return await run_in_threadpool(_register, users, sessions, payload)


def _register(users: UserService, sessions: SessionService, payload: RegisterRequest) -> AuthResponse:
    user = users.create(
        first_name=payload.first_name,
        last_name=payload.last_name,
        username=payload.username,
        email=payload.email,
        password=payload.password,
    )
    # A brand new user has no prior sessions to revoke
    token = sessions.create_session(user.id)
    return _auth_response("User registered successfully", token, user)


def _login(users: UserService, sessions: SessionService, identifier: str, password: str) -> AuthResponse:
    user = users.find_by_identifier(identifier)
    # Same error for unknown identifier and wrong password
    if user is None or not users.verify_password(user, password):
        raise InvalidCredentials()
    if not user.is_active:
        raise InactiveAccount()

    token = sessions.rotate_session(user.id)
    logger.info(f"User {user.id} logged in")
    return _auth_response("Login successful", token, user)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    verifier: BotVerifier = Depends(get_bot_verifier),
    users: UserService = Depends(get_user_service),
    sessions: SessionService = Depends(get_session_service),
):
    """Login with email or username; every earlier session of the user is revoked"""
    if not payload.login or not payload.password:
        raise ValidationError("Email/username and password are required")
    await _require_human(verifier, payload.bot_token)

    return await run_in_threadpool(_login, users, sessions, payload.login, payload.password)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    token: str = Depends(get_bearer_token),
    sessions: SessionService = Depends(get_session_service),
):
    """Revoke the presented token. Succeeds even if it was already revoked."""
    await run_in_threadpool(sessions.revoke_session, token)
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=ProfileResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return ProfileResponse(data=ProfileData(user=UserProfile.model_validate(current_user)))


@router.post(
    "/password-reset/request",
    response_model=ResetRequestResponse,
    response_model_exclude_none=True,
)
async def request_password_reset(
    payload: ResetRequest,
    background_tasks: BackgroundTasks,
    verifier: BotVerifier = Depends(get_bot_verifier),
    resets: PasswordResetService = Depends(get_password_reset_service),
    mail: Mailer = Depends(get_mailer),
):
    """
    Send a reset code to the email if it belongs to an account.

    The response never reveals whether the account exists or whether the
    email was delivered.
    """
    await _require_human(verifier, payload.bot_token)

    user, code = await run_in_threadpool(resets.request_reset, payload.email)
    response = ResetRequestResponse(message=RESET_REQUEST_MESSAGE)
    if user is None:
        return response

    background_tasks.add_task(_deliver_reset_code, mail, user.email, code)
    if not settings.is_production:
        response.dev_code = code
    return response


@router.post("/password-reset/verify", response_model=MessageResponse)
async def verify_reset_code(
    payload: ResetVerifyRequest,
    resets: PasswordResetService = Depends(get_password_reset_service),
):
    """Check a code without consuming it"""
    if not await run_in_threadpool(resets.verify_code, payload.email, payload.code):
        raise InvalidOrExpiredResetCode()
    return MessageResponse(message="Code verified")


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    payload: ResetConfirmRequest,
    resets: PasswordResetService = Depends(get_password_reset_service),
):
    """Set a new password with a valid code; all sessions of the user are revoked"""
    await run_in_threadpool(resets.reset_password, payload.email, payload.code, payload.new_password)
    return MessageResponse(message="Password updated successfully. Please log in again.")
