"""
Domain Layer - Interfaces
-------------------------
Abstract contracts the application layer depends on. The infrastructure
layer provides the concrete PostgREST gateway and the Postgres change feed;
tests provide in-memory fakes of the same shape.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable

from .entities import OperationResult, SignupRecord, SignupRequest


class ChangeFeedError(Exception):
    """Raised when a change-feed subscription cannot be established."""
    pass


class ISignupGateway(ABC):
    """
    Contract for the backend boundary.
    Implementations never raise for backend or transport failures; every
    outcome comes back as an OperationResult.
    """

    @abstractmethod
    async def insert_signup(self, request: SignupRequest) -> OperationResult[SignupRecord]:
        """Validate, normalize and insert one signup row."""
        ...

    @abstractmethod
    async def fetch_count(self) -> OperationResult[int]:
        """Invoke the backend's signup count function."""
        ...

    @abstractmethod
    async def list_recent(self, limit: int = 100) -> OperationResult[list[SignupRecord]]:
        """Return up to `limit` signups, most recent first."""
        ...


class ISubscription(ABC):
    """A live change-feed subscription. Closing it stops all callbacks."""

    @abstractmethod
    async def close(self) -> None:
        ...


class IChangeFeed(ABC):
    """
    Contract for push notifications about the signups table.
    Notifications carry no payload: the callback only learns that
    something changed.
    """

    @abstractmethod
    async def subscribe(self, callback: Callable[[], None]) -> ISubscription:
        """Start listening. Raises ChangeFeedError when the feed is unavailable."""
        ...
