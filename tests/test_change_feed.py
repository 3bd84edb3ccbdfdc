"""
Postgres change feed - Unit Tests
A socketpair stands in for the libpq socket so the event-loop reader is
exercised for real; the psycopg2 connection itself is a fake.
"""
import asyncio
import socket
from collections import namedtuple
from unittest.mock import MagicMock

import psycopg2
import pytest

from waitlist.domain.interfaces import ChangeFeedError
from waitlist.infrastructure.change_feed import PostgresChangeFeed

Notify = namedtuple("Notify", "pid channel payload")


class FakeConnection:
    def __init__(self, sock):
        self.sock = sock
        self.notifies = []
        self.closed = False
        self.isolation_level = None
        self.cursor_mock = MagicMock()
        self.cursor_mock.__enter__.return_value = self.cursor_mock

    def fileno(self):
        return self.sock.fileno()

    def set_isolation_level(self, level):
        self.isolation_level = level

    def cursor(self):
        return self.cursor_mock

    def poll(self):
        # one byte on the wire == one NOTIFY
        for _ in self.sock.recv(1024):
            self.notifies.append(Notify(4242, "signups_changed", ""))

    def close(self):
        self.closed = True


@pytest.fixture
def sockets():
    ours, theirs = socket.socketpair()
    ours.setblocking(False)
    yield ours, theirs
    ours.close()
    theirs.close()


class TestPostgresChangeFeed:
    @pytest.mark.asyncio
    async def test_listens_and_invokes_callback_per_notification(self, sockets):
        ours, theirs = sockets
        conn = FakeConnection(ours)
        feed = PostgresChangeFeed("postgresql://db/waitlist", connect=lambda dsn: conn)
        received = []
        got_two = asyncio.Event()

        def on_change():
            received.append(1)
            if len(received) == 2:
                got_two.set()

        subscription = await feed.subscribe(on_change)
        try:
            assert conn.isolation_level == psycopg2.extensions.ISOLATION_LEVEL_AUTOCOMMIT
            conn.cursor_mock.execute.assert_called_once()

            theirs.send(b"xx")
            await asyncio.wait_for(got_two.wait(), timeout=1.0)
            assert len(received) == 2
            assert conn.notifies == []
        finally:
            await subscription.close()

        assert conn.closed

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_stops_callbacks(self, sockets):
        ours, theirs = sockets
        conn = FakeConnection(ours)
        received = []
        subscription = await PostgresChangeFeed("dsn", connect=lambda dsn: conn).subscribe(lambda: received.append(1))

        await subscription.close()
        await subscription.close()
        theirs.send(b"x")
        await asyncio.sleep(0.02)

        assert subscription.closed
        assert received == []

    @pytest.mark.asyncio
    async def test_connect_failure_raises_change_feed_error(self):
        def refuse(dsn):
            raise psycopg2.OperationalError("could not connect to server")

        with pytest.raises(ChangeFeedError):
            await PostgresChangeFeed("dsn", connect=refuse).subscribe(lambda: None)

    @pytest.mark.asyncio
    async def test_listen_failure_closes_connection(self, sockets):
        ours, _ = sockets
        conn = FakeConnection(ours)
        conn.cursor_mock.execute.side_effect = psycopg2.ProgrammingError("permission denied")

        with pytest.raises(ChangeFeedError):
            await PostgresChangeFeed("dsn", connect=lambda dsn: conn).subscribe(lambda: None)
        assert conn.closed

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self, sockets):
        ours, theirs = sockets
        conn = FakeConnection(ours)
        calls = []

        def explode():
            calls.append(1)
            raise RuntimeError("ui gone")

        subscription = await PostgresChangeFeed("dsn", connect=lambda dsn: conn).subscribe(explode)
        try:
            theirs.send(b"xx")
            await asyncio.sleep(0.05)
            assert len(calls) == 2
        finally:
            await subscription.close()
