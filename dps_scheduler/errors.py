"""Terminal outcomes and soft rejections raised inside the engine.

Nothing below the CLI entry point calls ``sys.exit``.  Fatal paths raise a
``SchedulerExit`` subclass instead, which propagates to ``main`` where it is
turned into a process exit code.
"""

from __future__ import annotations


class SchedulerExit(Exception):
    """Base class for conditions that end the process."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None):
        if exit_code is not None:
            self.exit_code = exit_code
        super().__init__(message)


class FatalError(SchedulerExit):
    """Unrecoverable fault (auth failure, retries exhausted, bad selection)."""

    exit_code = 1


class DeliberateStop(SchedulerExit):
    """The bot stops on purpose and a human has to adjust the configuration."""

    exit_code = 0


class BookingComplete(SchedulerExit):
    """A slot was booked.  The engine's job is done."""

    exit_code = 0

    def __init__(self, confirmation_number: str, url: str):
        self.confirmation_number = confirmation_number
        self.url = url
        super().__init__(f"Booked appointment {confirmation_number}")


class NotAvailable(Exception):
    """No slot at a location survived the preference filters this cycle."""
