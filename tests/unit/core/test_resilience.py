"""Unit tests for geonotes.core.resilience."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import aiobreaker
import pytest

from geonotes.core.resilience import (
    ResilienceLogger,
    backoff_retrying,
    create_circuit_breaker,
    log_retry,
)


class TestResilienceLogger:
    def test_state_change_open(self):
        """Opening the circuit should log at error level."""
        rl = ResilienceLogger("geocoder")
        mock_cb = MagicMock()
        mock_cb.fail_counter = 5

        with patch("geonotes.core.resilience.logger") as mock_logger:
            rl.state_change(mock_cb, "closed", "open")
            mock_logger.error.assert_called_once()
            assert "circuit_breaker_opened" in str(mock_logger.error.call_args)

    def test_state_change_half_open(self):
        """Half-open should log at info level."""
        rl = ResilienceLogger("classifier")
        mock_cb = MagicMock()
        mock_cb.fail_counter = 3

        with patch("geonotes.core.resilience.logger") as mock_logger:
            rl.state_change(mock_cb, "open", "half-open")
            mock_logger.info.assert_called_once()
            assert "circuit_breaker_half_open" in str(mock_logger.info.call_args)

    def test_failure(self):
        """Recording a failure should log at warning level."""
        rl = ResilienceLogger("geocoder")
        mock_cb = MagicMock()
        mock_cb.fail_counter = 2

        with patch("geonotes.core.resilience.logger") as mock_logger:
            rl.failure(mock_cb, ConnectionError("timeout"))
            mock_logger.warning.assert_called_once()
            assert "circuit_breaker_failure" in str(mock_logger.warning.call_args)


class TestLogRetry:
    def test_emits_structured_event(self):
        mock_state = MagicMock()
        mock_state.attempt_number = 2
        mock_state.fn.__name__ = "subscribe"
        mock_state.outcome_timestamp = 1000.5
        mock_state.start_time = 1000.0
        mock_state.outcome.failed = True
        mock_state.outcome.exception.return_value = ConnectionError("fail")

        with patch("geonotes.core.resilience.logger") as mock_logger:
            log_retry(mock_state)
            call_args = mock_logger.warning.call_args
            assert "subscribe" in call_args[0][0]
            assert call_args[1]["extra"]["resilience_event"] == "retry_attempt"
            assert call_args[1]["extra"]["duration_ms"] == 500


class TestCreateCircuitBreaker:
    def test_configures_breaker(self):
        breaker = create_circuit_breaker("geocoder", fail_max=3, timeout_duration=45)

        assert isinstance(breaker, aiobreaker.CircuitBreaker)
        assert breaker.fail_max == 3
        assert breaker.timeout_duration == timedelta(seconds=45)


class TestBackoffRetrying:
    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = 0

        async for attempt in backoff_retrying(max_attempts=4, multiplier=0, maximum=0):
            with attempt:
                calls += 1
                if calls < 3:
                    raise ConnectionError("down")

        assert calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error_after_max_attempts(self):
        calls = 0

        with patch("geonotes.core.resilience.logger"):
            with pytest.raises(ConnectionError):
                async for attempt in backoff_retrying(max_attempts=3, multiplier=0, maximum=0):
                    with attempt:
                        calls += 1
                        raise ConnectionError("still down")

        assert calls == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        calls = 0

        with pytest.raises(ValueError):
            async for attempt in backoff_retrying(max_attempts=3, multiplier=0, maximum=0):
                with attempt:
                    calls += 1
                    raise ValueError("bug")

        assert calls == 1
