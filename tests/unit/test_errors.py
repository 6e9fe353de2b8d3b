"""Tests for fc_common.errors and fc_common.response."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from src.fc_common.errors import (
    AUTHORIZATION,
    CONFLICT,
    FATAL,
    VALIDATION,
    AppError,
    BidTooLowError,
    EmptyTurnOrderError,
    ForbiddenError,
    InsufficientBudgetError,
    InvalidStateError,
    NotYourTurnError,
    RateLimitError,
    SessionCorruptedError,
    SessionFrozenError,
    SessionNotFoundError,
    TimerExpiredError,
    TimerOutOfRangeError,
)
from src.fc_common.response import ApiResponse, error_response, respond


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500
        assert err.is_fatal is False

    def test_custom_http_status(self) -> None:
        err = AppError(code=1001, message="Username taken", http_status=409)
        assert err.http_status == 409

    def test_is_exception(self) -> None:
        err = AppError(code=1001, message="test")
        assert isinstance(err, Exception)


class TestSpecificErrors:
    def test_bid_too_low(self) -> None:
        err = BidTooLowError(amount=18, current_price=20)
        assert err.code == 4001
        assert err.http_status == 422
        assert "18" in err.message
        assert "20" in err.message

    def test_insufficient_budget(self) -> None:
        err = InsufficientBudgetError(amount=120, available=80)
        assert err.code == 4002
        assert "120" in err.message
        assert "80" in err.message

    def test_timer_out_of_range(self) -> None:
        err = TimerOutOfRangeError(5, 10, 300)
        assert err.code == 4005
        assert "10-300" in err.message

    def test_session_not_found(self) -> None:
        err = SessionNotFoundError("S-1")
        assert err.code == 3001
        assert err.http_status == 404

    def test_session_frozen(self) -> None:
        err = SessionFrozenError("S-1", "bad turn index")
        assert err.code == 3002
        assert err.http_status == 423
        assert "bad turn index" in err.message

    def test_timer_expired(self) -> None:
        err = TimerExpiredError()
        assert err.code == 4202
        assert err.http_status == 409


class TestCategories:
    @pytest.mark.parametrize(
        ("err", "category"),
        [
            (BidTooLowError(1, 2), VALIDATION),
            (InsufficientBudgetError(2, 1), VALIDATION),
            (NotYourTurnError(), AUTHORIZATION),
            (ForbiddenError(), AUTHORIZATION),
            (InvalidStateError("x"), CONFLICT),
            (TimerExpiredError(), CONFLICT),
            (SessionCorruptedError("S", "x"), FATAL),
            (EmptyTurnOrderError(), FATAL),
        ],
    )
    def test_category(self, err: AppError, category: str) -> None:
        assert err.category == category

    def test_only_fatal_errors_freeze(self) -> None:
        assert SessionCorruptedError("S", "x").is_fatal
        assert EmptyTurnOrderError().is_fatal
        assert not InvalidStateError("x").is_fatal
        assert not RateLimitError().is_fatal


class TestApiResponse:
    def _request(self, request_id: str | None = None) -> MagicMock:
        request = MagicMock()
        request.state = SimpleNamespace(request_id=request_id) if request_id else SimpleNamespace()
        return request

    def test_success_echoes_request_id(self) -> None:
        resp = respond(self._request("req_abc"), {"id": "abc"}, "Bid placed")
        assert resp.code == 0
        assert resp.message == "Bid placed"
        assert resp.data == {"id": "abc"}
        assert resp.request_id == "req_abc"

    def test_error_from_app_error(self) -> None:
        resp = error_response(self._request(), BidTooLowError(18, 18))
        assert resp.code == 4001
        assert resp.data is None
        assert resp.request_id.startswith("req_")

    def test_envelope_carries_server_clock(self) -> None:
        d = respond(self._request(), {"price": 65}).model_dump()
        assert set(d) == {"code", "message", "data", "server_time", "server_time_ms", "request_id"}
        assert d["server_time_ms"] > 0
        assert ApiResponse.model_validate(d).server_time_ms == d["server_time_ms"]
