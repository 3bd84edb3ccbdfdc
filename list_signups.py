import argparse
import asyncio
import logging
import sys

import httpx

from waitlist.config import ConfigurationError, Settings
from waitlist.infrastructure.postgrest_gateway import DEFAULT_LIST_LIMIT, PostgrestSignupGateway

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
log = logging.getLogger(__name__)


async def list_recent(settings: Settings, limit: int) -> bool:
    async with httpx.AsyncClient() as client:
        gateway = PostgrestSignupGateway(
            settings.backend_url,
            settings.api_key,
            client,
            table=settings.table,
            timeout=settings.http_timeout,
        )
        log.info("Fetching up to %d recent signups …", limit)
        result = await gateway.list_recent(limit)

    if not result.ok:
        log.error("Listing failed (%s): %s", result.error_kind.value, result.error_message)
        return False

    for i, signup in enumerate(result.value, start=1):
        log.info(
            "%3d. %s <%s> | updates=%s | %s",
            i,
            signup.full_name,
            signup.email,
            "yes" if signup.subscribed_to_updates else "no",
            signup.created_at.isoformat() if signup.created_at else "-",
        )
    log.info("%s", result.message)
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List the most recent waitlist signups")
    parser.add_argument("--limit", type=int, default=DEFAULT_LIST_LIMIT)
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        log.error("%s", exc)
        sys.exit(1)

    if not asyncio.run(list_recent(settings, args.limit)):
        sys.exit(1)
