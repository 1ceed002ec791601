import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional
from app.core.config import settings

logger = logging.getLogger(__name__)


class Mailer(ABC):
    """Outbound transactional mail. Implementations must not raise to callers."""

    @abstractmethod
    def send_reset_code(self, email: str, code: str, expire_minutes: int) -> bool:
        """Deliver a reset code, returning whether it was handed to the transport"""


class SmtpMailer(Mailer):
    """Sends reset codes over SMTP with implicit TLS"""

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        from_name: str,
        timeout: float,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "SmtpMailer":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            from_name=settings.MAIL_FROM_NAME,
            timeout=settings.MAIL_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def build_reset_message(self, email: str, code: str, expire_minutes: int) -> EmailMessage:
        message = EmailMessage()
        message["From"] = f"{self.from_name} <{self.username}>"
        message["To"] = email
        message["Subject"] = "Your password reset code"
        message.set_content(
            f"Your verification code is: {code}\n\n"
            f"This code expires in {expire_minutes} minutes.\n"
            "If you did not request this change, ignore this email.\n"
        )
        message.add_alternative(
            f"""\
<div style="font-family: Arial, sans-serif; color: #111;">
  <h2>Reset your password</h2>
  <p>Your verification code is:</p>
  <div style="font-size: 24px; font-weight: bold; letter-spacing: 4px;">{code}</div>
  <p>This code expires in {expire_minutes} minutes.</p>
  <p>If you did not request this change, ignore this email.</p>
</div>
""",
            subtype="html",
        )
        return message

    def send_reset_code(self, email: str, code: str, expire_minutes: int) -> bool:
        if not self.configured:
            logger.warning("Reset code email skipped (missing SMTP_USERNAME/SMTP_PASSWORD)")
            return False

        message = self.build_reset_message(email, code, expire_minutes)
        try:
            with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            # Covers refused connections and socket timeouts as well
            logger.error(f"Reset code email to {email} failed: {e!r}")
            return False

        logger.info(f"Reset code email sent to {email}")
        return True


mailer = SmtpMailer.from_settings()
