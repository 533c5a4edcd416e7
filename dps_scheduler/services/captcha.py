"""Captcha token suppliers.

Solving the reCAPTCHA challenge is outside this package.  The engine only
needs an awaitable that returns an opaque token string; it may take as long
as it likes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

CaptchaTokenProvider = Callable[[], Awaitable[str]]


async def prompt_for_captcha_token() -> str:
    """Ask the operator to paste a token solved in a browser."""
    logger.info(
        "Solve the captcha on https://public.txdpsscheduler.com and paste the token."
    )
    token = await asyncio.to_thread(input, "Captcha token: ")
    return token.strip()

