"""
Bot-verification gate backed by Google reCAPTCHA.

verify() fails closed on every error path. The only fail-open path is a
missing secret outside production, so local development works without keys.
"""

import logging
from typing import Optional
import httpx
from app.core.config import settings

logger = logging.getLogger(__name__)


class BotVerifier:
    def __init__(
        self,
        secret: Optional[str],
        verify_url: str,
        timeout: float,
        production: bool,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret = secret
        self.verify_url = verify_url
        self.timeout = timeout
        self.production = production
        # Tests pass an httpx.MockTransport here
        self._transport = transport

    @classmethod
    def from_settings(cls, transport: Optional[httpx.AsyncBaseTransport] = None) -> "BotVerifier":
        return cls(
            secret=settings.RECAPTCHA_SECRET_KEY,
            verify_url=settings.RECAPTCHA_VERIFY_URL,
            timeout=settings.BOT_VERIFY_TIMEOUT_SECONDS,
            production=settings.is_production,
            transport=transport,
        )

    async def verify(self, token: Optional[str]) -> bool:
        if not token or not token.strip():
            return False

        if not self.secret:
            if self.production:
                logger.error("RECAPTCHA_SECRET_KEY is not configured; rejecting bot verification")
                return False
            logger.warning("RECAPTCHA_SECRET_KEY is not configured; skipping bot verification outside production")
            return True

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.verify_url,
                    data={"secret": self.secret, "response": token},
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Bot verification request failed: {e!r}")
            return False
        except ValueError as e:
            logger.error(f"Bot verification returned invalid JSON: {e}")
            return False

        if not isinstance(result, dict):
            logger.error("Bot verification returned an unexpected payload")
            return False
        if result.get("success") is not True:
            logger.info(f"Bot verification rejected token: {result.get('error-codes', [])}")
            return False
        return True


bot_verifier = BotVerifier.from_settings()
