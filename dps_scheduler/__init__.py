"""DPS Scheduler: an unattended Texas DPS appointment bot.

Architecture Overview
=====================

One **run** of the engine goes through four stages:

1. **auth**: exchange a captcha token for a session token.
2. **existing booking**: remember any appointment already on file so it can
   be cancelled right before a better one is booked.
3. **locations**: resolve the offices to watch, by distance or by a cached
   manual selection.
4. **polling**: check each office in turn, forever.  The first slot that
   matches the date, weekday and hour preferences is held and booked.

Key Design Decisions
--------------------
- **Serialized polling**: location checks go through a pausable queue with
  one task in flight, so the rate-limited API never sees bursts.
- **At-most-once booking**: two latches on ``RunState`` (hold, booking),
  each checked and set under a lock.
- **Resilience**: ``DpsClient`` retries transient failures a bounded number
  of times, backs off 10 s on every rate limit and re-authenticates on 401.
- **Exits as values**: fatal conditions raise ``SchedulerExit``; only the CLI
  turns one into a process exit code.

Package Structure
-----------------
- ``dps_scheduler/config.py``: settings from environment variables
- ``dps_scheduler/engine.py``: runs and the poll scheduler
- ``dps_scheduler/driver.py``: periodic trigger that prevents overlapping runs
- ``dps_scheduler/main.py``: CLI entry point
- ``dps_scheduler/server.py``: optional liveness server
- ``dps_scheduler/services/``: API client, auth, locations, availability,
  queue, booking transaction, metrics
- ``dps_scheduler/api/``: FastAPI routes and Pydantic schemas
"""

__version__ = "1.0.0"
