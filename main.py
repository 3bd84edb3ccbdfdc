"""
main.py - Dependency Wiring (Composition Root)
----------------------------------------------
Reads configuration, builds the concrete gateway, cache, change feed and
counter feed, and runs the live signup counter for a while. Optionally
submits one signup first, which exercises the whole path:

    submit -> gateway insert -> cache invalidated -> forced refresh -> count

Dependency graph:
                         main.py  (wires everything)
                            |
              +-------------+--------------+
              v             v              v
    SubmissionOrchestrator  LiveCounterFeed  PostgresChangeFeed
              |             |
              v             v
          CountCache <- with_retry
              |
              v
    PostgrestSignupGateway (httpx.AsyncClient)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx

from waitlist.application.count_cache import CountCache
from waitlist.application.counter_feed import LiveCounterFeed
from waitlist.application.formatting import format_signup_count
from waitlist.application.submission import SubmissionOrchestrator
from waitlist.config import ConfigurationError, Settings
from waitlist.domain.entities import (
    CounterDisplayState,
    CounterPhase,
    SignupRequest,
    SubmissionState,
)
from waitlist.infrastructure.change_feed import PostgresChangeFeed
from waitlist.infrastructure.postgrest_gateway import PostgrestSignupGateway

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger(__name__)

DEFAULT_DURATION = 60.0


def _read_settings() -> Settings:
    """Fails fast with a clear error if the backend is not configured."""
    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        log.error("%s", exc)
        sys.exit(1)
    logging.getLogger().setLevel(settings.log_level)
    return settings


def _log_counter_state(state: CounterDisplayState) -> None:
    if state.phase is CounterPhase.READY and state.committed_count is not None:
        log.info("Join %s developers already signed up", format_signup_count(state.committed_count))
    elif state.phase is CounterPhase.ERROR:
        log.warning("Unable to load signup count: %s", state.error_message)
    else:
        log.info("Counter %s", state.phase.value)


def _log_submission(state: SubmissionState, message: str | None) -> None:
    if state is SubmissionState.ERROR:
        log.error("Signup %s: %s", state.value, message)
    else:
        log.info("Signup %s%s", state.value, f": {message}" if message else "")


async def build_and_run(settings: Settings, duration: float, signup: SignupRequest | None) -> None:
    client = httpx.AsyncClient()
    try:
        gateway = PostgrestSignupGateway(
            base_url = settings.backend_url,
            api_key  = settings.api_key,
            client   = client,          # injected, closed below
            table    = settings.table,
            timeout  = settings.http_timeout,
        )
        cache = CountCache(gateway, default_ttl=settings.cache_ttl)

        change_feed = None
        if settings.database_url:
            change_feed = PostgresChangeFeed(settings.database_url, channel=settings.channel)
        else:
            log.info("DATABASE_URL not set - realtime updates disabled, polling only")

        feed = LiveCounterFeed(
            cache            = cache,
            on_value_change  = lambda value: log.debug("Displayed count %d", value),
            change_feed      = change_feed,
            on_state_change  = _log_counter_state,
            refresh_interval = settings.refresh_interval,
        )

        async with await feed.activate() as handle:
            if signup is not None:
                orchestrator = SubmissionOrchestrator(
                    gateway         = gateway,
                    cache           = cache,
                    on_state_change = _log_submission,
                    on_success      = handle.force_refresh,
                )
                await orchestrator.submit(signup)
                orchestrator.close()

            await asyncio.sleep(duration)
    finally:
        await client.aclose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Live waitlist signup counter"
    )
    parser.add_argument(
        "--duration",
        type    = float,
        default = DEFAULT_DURATION,
        help    = f"Seconds to keep the counter running (default: {DEFAULT_DURATION:.0f})",
    )
    parser.add_argument("--name", help="Submit a signup with this name before watching")
    parser.add_argument("--email", help="Email for the signup")
    parser.add_argument("--subscribe", action="store_true", help="Opt the signup in to updates")
    args = parser.parse_args()

    signup = None
    if args.name is not None or args.email is not None:
        signup = SignupRequest(name=args.name, email=args.email, subscribed=args.subscribe)

    settings = _read_settings()

    try:
        asyncio.run(build_and_run(settings, args.duration, signup))
    except ConfigurationError as exc:
        log.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        log.info("Stopped")
