"""
Tests for breaker.py and errors.py - write circuit breaker and error labels.
"""

import time

import pytest

from rostersync.breaker import CircuitBreaker
from rostersync.errors import RegistryError, is_transient_error


def failing_write():
    raise RegistryError("Affinity request failed (500)", status=500)


class TestCircuitBreaker:
    """Test circuit breaker pattern."""

    def test_closed_state_allows_calls(self):
        """Circuit starts closed and allows calls."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=1)

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_opens_after_threshold(self):
        """Circuit opens after consecutive failures and refuses calls."""
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)

        for _ in range(3):
            with pytest.raises(RegistryError, match="500"):
                breaker.call(failing_write)

        assert breaker.is_open

        calls = []
        with pytest.raises(RegistryError, match="Circuit breaker is OPEN after 3") as excinfo:
            breaker.call(lambda: calls.append(1))
        assert calls == []
        assert "retry" not in str(excinfo.value).lower()

    def test_success_resets_count(self):
        """A success in between keeps the circuit closed."""
        breaker = CircuitBreaker(failure_threshold=2)

        with pytest.raises(RegistryError):
            breaker.call(failing_write)
        breaker.call(lambda: None)
        with pytest.raises(RegistryError):
            breaker.call(failing_write)

        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 1

    def test_unexpected_exceptions_not_counted(self):
        """Only the expected exception type counts as a failure."""
        breaker = CircuitBreaker(failure_threshold=1)

        def broken():
            raise ValueError("bad option id")

        with pytest.raises(ValueError):
            breaker.call(broken)

        assert breaker.state == CircuitBreaker.CLOSED

    def test_disabled_with_zero_threshold(self):
        """A threshold of zero never opens."""
        breaker = CircuitBreaker(failure_threshold=0)

        for _ in range(10):
            with pytest.raises(RegistryError, match="500"):
                breaker.call(failing_write)

        assert not breaker.is_open

    def test_half_open_failure_reopens(self):
        """One failed trial call after the timeout opens the circuit again."""
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.1)

        for _ in range(2):
            with pytest.raises(RegistryError):
                breaker.call(failing_write)

        time.sleep(0.15)

        with pytest.raises(RegistryError, match="500"):
            breaker.call(failing_write)
        assert breaker.is_open

    def test_closes_on_success_in_half_open(self):
        """Successful call in half-open state closes circuit."""
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=0.1)

        for _ in range(2):
            with pytest.raises(RegistryError):
                breaker.call(failing_write)

        time.sleep(0.15)

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitBreaker.CLOSED

    def test_manual_reset(self):
        """Manual reset should close the circuit."""
        breaker = CircuitBreaker(failure_threshold=1)

        with pytest.raises(RegistryError):
            breaker.call(failing_write)
        assert breaker.is_open

        breaker.reset()
        assert breaker.state == CircuitBreaker.CLOSED
        assert breaker.failure_count == 0


class TestRegistryError:
    """Test error labelling."""

    def test_status_decides_transient(self):
        assert RegistryError("x", status=429).transient
        assert not RegistryError("503 in the message", status=404).transient

    def test_to_dict(self):
        error = RegistryError("Affinity request failed (400)", status=400, payload={"errors": []})
        assert error.to_dict() == {
            "message": "Affinity request failed (400)",
            "status": 400,
            "payload": {"errors": []},
            "transient": False,
        }

    def test_message_keywords(self):
        assert is_transient_error(ConnectionError("Connection reset by peer"))
        assert is_transient_error(RegistryError("Affinity request timed out"))
        assert not is_transient_error(ValueError("Invalid data"))
        assert not is_transient_error(Exception("401 Unauthorized"))
