import pytest

from waitlist.domain.entities import ErrorKind, OperationResult


class TestOperationResult:
    def test_success_branch(self):
        result = OperationResult.success(3, "ok")
        assert result.ok and result.value == 3
        assert result.error_kind is None and result.error_message is None

    def test_failure_branch_carries_details(self):
        result = OperationResult.failure(ErrorKind.NETWORK_ERROR, "down")
        assert not result.ok and result.value is None
        assert result.details == ("down",)

    def test_both_branches_rejected(self):
        with pytest.raises(ValueError):
            OperationResult(ok=True, value=1, error_kind=ErrorKind.BACKEND_ERROR)
        with pytest.raises(ValueError):
            OperationResult(ok=False, value=1, error_kind=ErrorKind.BACKEND_ERROR, error_message="x")

    def test_failure_needs_kind(self):
        with pytest.raises(ValueError):
            OperationResult(ok=False, error_message="x")

    @pytest.mark.parametrize("kind, retryable", [
        (ErrorKind.NETWORK_ERROR, True),
        (ErrorKind.BACKEND_ERROR, True),
        (ErrorKind.INVALID_RESPONSE, False),
        (ErrorKind.DUPLICATE_EMAIL, False),
        (ErrorKind.VALIDATION_ERROR, False),
    ])
    def test_retryable_kinds(self, kind, retryable):
        assert kind.retryable is retryable
