"""
Auth error taxonomy.

Every error is an HTTPException so services can raise them the same way the
rest of the backend raises HTTPException, and the boundary handler in
main.py turns them into a {"success": false, "message": ...} body.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Missing or malformed fields, or a password below the minimum length"""

    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class BotGateFailure(HTTPException):
    def __init__(self, detail: str = "Bot verification failed. Please complete the challenge again."):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class DuplicateIdentity(HTTPException):
    """Email or username already taken - `field` names which one collided"""

    MESSAGES = {
        "email": "Email already registered",
        "username": "Username already taken",
    }

    def __init__(self, field: str):
        self.field = field
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=self.MESSAGES.get(field, "Account already exists"),
        )


class InvalidCredentials(HTTPException):
    # Same message whether the identifier or the password was wrong
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidOrExpiredResetCode(HTTPException):
    # Unknown, used and expired codes are indistinguishable to the caller
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification code",
        )


class InactiveAccount(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
