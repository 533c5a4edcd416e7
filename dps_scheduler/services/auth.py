"""Session token management.

The scheduling API issues a session token in exchange for a captcha token.
There is no expiry timer: the token is refreshed once at the start of each
run and again whenever ``DpsClient`` sees a 401.
"""

from __future__ import annotations

import logging

from dps_scheduler.config import Settings
from dps_scheduler.errors import FatalError
from dps_scheduler.services.captcha import CaptchaTokenProvider, prompt_for_captcha_token
from dps_scheduler.services.dps_client import DpsClient

logger = logging.getLogger(__name__)


class AuthManager:
    """Owns the bearer token stored on the client's ``Session``."""

    def __init__(
        self,
        client: DpsClient,
        settings: Settings,
        captcha_provider: CaptchaTokenProvider | None = None,
    ):
        self._client = client
        self._captcha_provider = captcha_provider or prompt_for_captcha_token
        if settings.app.captcha_token and not client.session.captcha_token:
            client.session.captcha_token = settings.app.captcha_token
        client.on_unauthorized = self.refresh

    @property
    def token(self) -> str | None:
        return self._client.session.token

    async def refresh(self) -> None:
        """Fetch a new session token, or raise ``FatalError``."""
        session = self._client.session
        if not session.captcha_token:
            logger.info("No captcha token found! Will try to get one....")
            session.captcha_token = await self._captcha_provider()
        else:
            logger.info("Captcha token found, reusing it")

        if not session.captcha_token:
            raise FatalError("Failed to get a captcha token")

        # Any non-200 status has already been turned into FatalError by the client
        token = await self._client.authenticate(session.captcha_token)
        if not token:
            logger.error("Failed to get auth token")
            raise FatalError("Failed to get auth token")

        session.token = token
        logger.info("Refreshed auth token")
        logger.debug("Auth token: %s", token)
