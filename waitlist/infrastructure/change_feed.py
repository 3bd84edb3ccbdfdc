from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

from waitlist.config import DEFAULT_CHANNEL
from waitlist.domain.interfaces import ChangeFeedError, IChangeFeed, ISubscription

log = logging.getLogger(__name__)


class PostgresSubscription(ISubscription):
    """
    One LISTEN connection wired into the event loop.

    The connection's socket is registered with loop.add_reader(); when it
    becomes readable, poll() pulls pending notifications off the wire and
    the callback runs once per notification. Payloads are ignored.
    """

    def __init__(self, conn: Any, loop: asyncio.AbstractEventLoop, callback: Callable[[], None], channel: str) -> None:
        self._conn     = conn
        self._loop     = loop
        self._callback = callback
        self._channel  = channel
        self._fileno   = conn.fileno()
        self._closed   = False
        loop.add_reader(self._fileno, self._drain)

    @property
    def closed(self) -> bool:
        return self._closed

    def _drain(self) -> None:
        try:
            self._conn.poll()
        except psycopg2.Error as exc:
            # the poll loop in the counter feed keeps working without us
            log.warning("Change feed connection on %s lost: %s", self._channel, exc)
            self._loop.remove_reader(self._fileno)
            return

        while self._conn.notifies:
            notify = self._conn.notifies.pop(0)
            log.debug("NOTIFY %s from backend pid %s", notify.channel, notify.pid)
            if self._closed:
                continue
            try:
                self._callback()
            except Exception:
                log.exception("Change feed callback failed")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.remove_reader(self._fileno)
        self._conn.close()
        log.debug("Stopped listening on %s", self._channel)


class PostgresChangeFeed(IChangeFeed):
    """
    IChangeFeed backed by PostgreSQL LISTEN/NOTIFY.

    Expects a trigger on the signups table that runs
    `NOTIFY signups_changed` after every insert, update or delete
    (see schema.sql). Each subscription owns its own connection.
    """

    def __init__(self, dsn: str, channel: str = DEFAULT_CHANNEL, connect: Callable[[str], Any] = psycopg2.connect) -> None:
        self._dsn     = dsn
        self._channel = channel
        self._connect = connect

    async def subscribe(self, callback: Callable[[], None]) -> PostgresSubscription:
        loop = asyncio.get_running_loop()
        try:
            # psycopg2.connect blocks; keep it off the event loop
            conn = await asyncio.to_thread(self._connect, self._dsn)
        except (psycopg2.Error, OSError) as exc:
            raise ChangeFeedError(f"could not connect to listen on {self._channel}: {exc}") from exc

        try:
            conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cur:
                cur.execute(sql.SQL("LISTEN {}").format(sql.Identifier(self._channel)))
        except psycopg2.Error as exc:
            conn.close()
            raise ChangeFeedError(f"LISTEN {self._channel} failed: {exc}") from exc

        log.info("Listening for signup changes on channel %s", self._channel)
        return PostgresSubscription(conn, loop, callback, self._channel)
