from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from sqlalchemy.sql import func
from app.core.database import Base


class PasswordReset(Base):
    """
    A numeric password reset code sent to an email address.

    Linked to the user by email, not by foreign key. Records are never
    deleted: expiry is checked against expires_at when the code is used.
    """
    __tablename__ = "password_resets"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_password_resets_email_code", "email", "code"),
    )
