"""
Shared fakes. FakeGateway stands in for the PostgREST backend so the
application layer can be tested without any network.
"""
from __future__ import annotations

import asyncio

import pytest

from waitlist.domain.entities import ErrorKind, OperationResult, SignupRecord, SignupRequest
from waitlist.domain.interfaces import ISignupGateway


class FakeGateway(ISignupGateway):
    def __init__(self, count: int = 0) -> None:
        self.count = count
        self.records: list[SignupRecord] = []
        self.inserted: list[SignupRequest] = []
        self.insert_calls = 0
        self.count_calls = 0
        self.count_results: list[OperationResult[int]] = []
        self.insert_gate: asyncio.Event | None = None
        self.count_gate: asyncio.Event | None = None

    async def insert_signup(self, request: SignupRequest) -> OperationResult[SignupRecord]:
        self.insert_calls += 1
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        email = request.email.strip().lower()
        if any(r.email == email for r in self.records):
            return OperationResult.failure(ErrorKind.DUPLICATE_EMAIL, "This email is already registered.")
        self.inserted.append(request)
        record = SignupRecord(
            id=str(len(self.records) + 1),
            full_name=request.name.strip(),
            email=email,
            subscribed_to_updates=bool(request.subscribed),
            created_at=None,
        )
        self.records.append(record)
        self.count += 1
        return OperationResult.success(record, "Signup submitted successfully!")

    async def fetch_count(self) -> OperationResult[int]:
        self.count_calls += 1
        if self.count_gate is not None:
            await self.count_gate.wait()
        if self.count_results:
            return self.count_results.pop(0)
        return OperationResult.success(self.count)

    async def list_recent(self, limit: int = 100) -> OperationResult[list[SignupRecord]]:
        return OperationResult.success(list(reversed(self.records))[:limit])


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def gateway():
    return FakeGateway(count=10)


@pytest.fixture
def clock():
    return FakeClock()
