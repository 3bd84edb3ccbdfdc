from __future__ import annotations
import asyncio
import logging
from typing import Callable

from waitlist.application.count_cache import CountCache
from waitlist.application.validation import validate
from waitlist.domain.entities import (
    ErrorKind,
    OperationResult,
    SignupRecord,
    SignupRequest,
    SubmissionState,
)
from waitlist.domain.interfaces import ISignupGateway

log = logging.getLogger(__name__)

SUCCESS_RESET_DELAY = 3.0

MSG_SUBMITTING = "Submitting your signup..."
MSG_SUCCESS    = "Signup submitted successfully!"
MSG_FAILED     = "Failed to submit signup"
MSG_UNEXPECTED = "An unexpected error occurred. Please try again."

StateCallback = Callable[[SubmissionState, "str | None"], None]


class SubmissionOrchestrator:
    """
    Drives one signup form: validate, insert, invalidate the count cache.

    States: idle -> submitting -> success | error. Success falls back to
    idle after `reset_delay` seconds; error stays until dismiss() or the
    next submit(). A submit() while another is in flight is a no-op, so a
    double click never inserts twice.
    """

    def __init__(
        self,
        gateway: ISignupGateway,
        cache: CountCache,
        on_state_change: StateCallback | None = None,
        on_success: Callable[[], object] | None = None,
        reset_delay: float = SUCCESS_RESET_DELAY,
    ) -> None:
        self._gateway         = gateway
        self._cache           = cache
        self._on_state_change = on_state_change
        self._on_success      = on_success
        self._reset_delay     = reset_delay
        self._state           = SubmissionState.IDLE
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def state(self) -> SubmissionState:
        return self._state

    def _set_state(self, state: SubmissionState, message: str | None = None) -> None:
        self._state = state
        log.debug("Submission state -> %s", state.value)
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(state, message)
        except Exception:
            log.exception("Submission state callback failed")

    def _cancel_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _reset_to_idle(self) -> None:
        self._reset_handle = None
        if self._state is SubmissionState.SUCCESS:
            self._set_state(SubmissionState.IDLE)

    async def submit(self, request: SignupRequest) -> OperationResult[SignupRecord] | None:
        """
        Submit one signup. Returns the gateway result, the validation
        failure, or None when the call was ignored because another
        submission is still in flight.
        """
        if self._state is SubmissionState.SUBMITTING:
            log.debug("Submission already in flight - ignoring duplicate submit")
            return None

        self._cancel_reset()

        checked = validate(request)
        if not checked.ok:
            self._set_state(SubmissionState.ERROR, checked.error_message)
            return checked

        self._set_state(SubmissionState.SUBMITTING, MSG_SUBMITTING)
        try:
            result = await self._gateway.insert_signup(request)
        except asyncio.CancelledError:
            self._set_state(SubmissionState.IDLE)
            raise
        except Exception as exc:
            log.error("Signup submission failed: %s", exc, exc_info=True)
            self._set_state(SubmissionState.ERROR, MSG_UNEXPECTED)
            return OperationResult.failure(ErrorKind.BACKEND_ERROR, MSG_UNEXPECTED)

        if not result.ok:
            self._set_state(SubmissionState.ERROR, result.error_message or MSG_FAILED)
            return result

        self._cache.invalidate()
        self._set_state(SubmissionState.SUCCESS, result.message or MSG_SUCCESS)
        if self._on_success is not None:
            try:
                self._on_success()
            except Exception:
                log.exception("Post-submission hook failed")
        self._reset_handle = asyncio.get_running_loop().call_later(self._reset_delay, self._reset_to_idle)
        return result

    def dismiss(self) -> None:
        """Return to idle from success or error."""
        if self._state in (SubmissionState.SUCCESS, SubmissionState.ERROR):
            self._cancel_reset()
            self._set_state(SubmissionState.IDLE)

    def close(self) -> None:
        self._cancel_reset()
