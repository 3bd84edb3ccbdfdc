from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from waitlist.application.validation import normalize, validate
from waitlist.config import (
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_TABLE,
    require_api_key,
    require_backend_url,
)
from waitlist.domain.entities import ErrorKind, OperationResult, SignupRecord, SignupRequest
from waitlist.domain.interfaces import ISignupGateway

log = logging.getLogger(__name__)

COUNT_FUNCTION    = "get_signup_count"
UNIQUE_VIOLATION  = "23505"   # Postgres SQLSTATE for unique_violation
DEFAULT_LIST_LIMIT = 100

MSG_SIGNUP_OK      = "Signup submitted successfully!"
MSG_DUPLICATE      = "This email is already registered. Please use a different email address."
MSG_SIGNUP_FAILED  = "Failed to submit signup. Please try again later."
MSG_NO_DATA        = "No data returned from signup submission"
MSG_COUNT_OK       = "Signup count retrieved successfully"
MSG_COUNT_FAILED   = "Failed to fetch signup count"
MSG_COUNT_INVALID  = "Invalid signup count returned"
MSG_LIST_FAILED    = "Failed to fetch signups"
MSG_LIST_INVALID   = "Invalid signup list returned"
MSG_LIMIT_INVALID  = "Limit must be zero or greater"
MSG_NETWORK        = "Network error. Please check your connection and try again."


class PostgrestSignupGateway(ISignupGateway):
    """
    ISignupGateway over a PostgREST-style HTTP API (the hosted backend).

    Like the other infrastructure clients it receives an httpx.AsyncClient
    instead of creating one, so the caller owns the connection pool and
    tests can hand in a client backed by httpx.MockTransport.

    This layer never retries and never caches. Every call ends in exactly
    one OperationResult, including transport failures.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient,
        table: str = DEFAULT_TABLE,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ) -> None:
        # ConfigurationError here, not a stub that rejects every call later
        self._base_url = require_backend_url(base_url)
        key = require_api_key(api_key)
        self._client  = client
        self._table   = table
        self._timeout = timeout
        self._headers = {
            "apikey":        key,
            "Authorization": f"Bearer {key}",
            "Content-Type":  "application/json",
        }

    # Anti-Corruption Layer
    @staticmethod
    def _parse_datetime(value: str | None) -> datetime | None:
        if not value:
            return None
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    def _parse_row(self, row: Any) -> SignupRecord | None:
        """
        Translate one raw JSON row into a SignupRecord.
        Rows missing required columns are skipped, not fatal.
        """
        try:
            return SignupRecord(
                id                    = str(row["id"]),
                full_name             = row["full_name"],
                email                 = row["email"],
                subscribed_to_updates = bool(row.get("subscribed_to_updates", False)),
                created_at            = self._parse_datetime(row.get("created_at")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            log.debug("Skipping malformed signup row %r: %s", row, exc)
            return None

    @staticmethod
    def _json_or_none(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    def _is_duplicate(self, response: httpx.Response) -> bool:
        payload = self._json_or_none(response)
        if not isinstance(payload, dict):
            return False
        if str(payload.get("code")) == UNIQUE_VIOLATION:
            return True
        return "duplicate" in str(payload.get("message") or "").lower()

    async def _request(self, method: str, path: str, extra_headers: dict[str, str] | None = None, **kwargs: Any) -> httpx.Response:
        headers = dict(self._headers)
        if extra_headers:
            headers.update(extra_headers)
        return await self._client.request(
            method,
            f"{self._base_url}{path}",
            headers=headers,
            timeout=self._timeout,
            **kwargs,
        )

    # ISignupGateway implementation
    async def insert_signup(self, request: SignupRequest) -> OperationResult[SignupRecord]:
        checked = validate(request, first_only=True)
        if not checked.ok:
            return OperationResult.failure(checked.error_kind, checked.error_message, checked.details)

        signup = normalize(request)
        row = {
            "full_name":             signup.name,
            "email":                 signup.email,
            "subscribed_to_updates": signup.subscribed,
        }

        try:
            response = await self._request(
                "POST",
                f"/rest/v1/{self._table}",
                extra_headers={"Prefer": "return=representation"},
                json=row,
            )
        except httpx.RequestError as exc:
            log.warning("Signup insert could not reach backend: %s", exc)
            return OperationResult.failure(ErrorKind.NETWORK_ERROR, MSG_NETWORK)

        if response.is_error:
            if self._is_duplicate(response):
                log.info("Duplicate signup rejected for %s", signup.email)
                return OperationResult.failure(ErrorKind.DUPLICATE_EMAIL, MSG_DUPLICATE)
            log.error("Signup insert failed | status=%d | body=%.200s", response.status_code, response.text)
            return OperationResult.failure(ErrorKind.BACKEND_ERROR, MSG_SIGNUP_FAILED)

        body = self._json_or_none(response)
        rows = body if isinstance(body, list) else [body] if isinstance(body, dict) else []
        record = self._parse_row(rows[0]) if rows else None
        if record is None:
            log.error("Signup insert returned no usable row: %.200s", response.text)
            return OperationResult.failure(ErrorKind.INVALID_RESPONSE, MSG_NO_DATA)

        log.info("Signup stored | id=%s", record.id)
        return OperationResult.success(record, MSG_SIGNUP_OK)

    async def fetch_count(self) -> OperationResult[int]:
        try:
            response = await self._request("POST", f"/rest/v1/rpc/{COUNT_FUNCTION}", json={})
        except httpx.RequestError as exc:
            log.warning("Signup count could not reach backend: %s", exc)
            return OperationResult.failure(ErrorKind.NETWORK_ERROR, MSG_NETWORK)

        if response.is_error:
            log.error("Signup count failed | status=%d | body=%.200s", response.status_code, response.text)
            return OperationResult.failure(ErrorKind.BACKEND_ERROR, MSG_COUNT_FAILED)

        count = self._json_or_none(response)
        # bool is an int subclass; a JSON true is not a count
        if not isinstance(count, int) or isinstance(count, bool) or count < 0:
            log.error("Signup count payload rejected: %.100s", response.text)
            return OperationResult.failure(ErrorKind.INVALID_RESPONSE, MSG_COUNT_INVALID)

        return OperationResult.success(count, MSG_COUNT_OK)

    async def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> OperationResult[list[SignupRecord]]:
        if limit < 0:
            return OperationResult.failure(ErrorKind.VALIDATION_ERROR, MSG_LIMIT_INVALID)

        try:
            response = await self._request(
                "GET",
                f"/rest/v1/{self._table}",
                params={"select": "*", "order": "created_at.desc", "limit": str(limit)},
            )
        except httpx.RequestError as exc:
            log.warning("Signup listing could not reach backend: %s", exc)
            return OperationResult.failure(ErrorKind.NETWORK_ERROR, MSG_NETWORK)

        if response.is_error:
            log.error("Signup listing failed | status=%d | body=%.200s", response.status_code, response.text)
            return OperationResult.failure(ErrorKind.BACKEND_ERROR, MSG_LIST_FAILED)

        body = self._json_or_none(response)
        if not isinstance(body, list):
            log.error("Signup listing payload rejected: %.100s", response.text)
            return OperationResult.failure(ErrorKind.INVALID_RESPONSE, MSG_LIST_INVALID)

        records = [parsed for row in body[:limit] if (parsed := self._parse_row(row)) is not None]
        return OperationResult.success(records, f"Retrieved {len(records)} signups")
