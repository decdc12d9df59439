"""
TalentDesk Backend: Email Service Unit Tests
============================================

What:  Circuit breaker transitions and the delivery error mapping.
How:   The provider call (`_send_with_retry`) is patched, or served by an
       httpx MockTransport; no network traffic is made.
"""

import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from talentdesk.config import settings
from talentdesk.exceptions import CircuitBreakerOpenError, EmailDeliveryError
from talentdesk.services.email_service import (
    CircuitBreaker,
    EmailService,
    OutgoingEmail,
    PermanentProviderError,
    TransientProviderError,
    build_invite_email,
)

MESSAGE = OutgoingEmail(to="jane@acme.io", subject="Hello", text="Hi Jane")


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.can_execute() is True

    def test_opens_after_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED

        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_half_open_after_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=30)
        cb.record_failure()
        cb.last_failure_time = time.time() - 31

        assert cb.can_execute() is True
        assert cb.state == CircuitBreaker.HALF_OPEN

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=30)
        cb.state = CircuitBreaker.HALF_OPEN
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN

    def test_success_resets(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()

        assert cb.failure_count == 0
        assert cb.state == CircuitBreaker.CLOSED


class TestSend:
    async def test_log_mode_returns_synthetic_id(self):
        service = EmailService()
        with patch.object(settings, "email_delivery_mode", "log"):
            message_id = await service.send(MESSAGE)
        assert message_id.startswith("log-")

    async def test_provider_success(self):
        service = EmailService()
        service._send_with_retry = AsyncMock(return_value="msg_123")
        with patch.object(settings, "email_delivery_mode", "resend"):
            assert await service.send(MESSAGE) == "msg_123"
        assert service.circuit_breaker.failure_count == 0

    async def test_transient_failure_counts_against_breaker(self):
        service = EmailService()
        service._send_with_retry = AsyncMock(side_effect=TransientProviderError("HTTP 503"))
        with patch.object(settings, "email_delivery_mode", "resend"):
            with pytest.raises(EmailDeliveryError):
                await service.send(MESSAGE)
        assert service.circuit_breaker.failure_count == 1

    async def test_rejection_does_not_trip_breaker(self):
        service = EmailService()
        service._send_with_retry = AsyncMock(side_effect=PermanentProviderError("HTTP 422"))
        with patch.object(settings, "email_delivery_mode", "resend"):
            with pytest.raises(EmailDeliveryError):
                await service.send(MESSAGE)
        assert service.circuit_breaker.failure_count == 0

    async def test_open_breaker_short_circuits(self):
        service = EmailService()
        service._send_with_retry = AsyncMock()
        service.circuit_breaker.state = CircuitBreaker.OPEN
        service.circuit_breaker.last_failure_time = time.time()

        with patch.object(settings, "email_delivery_mode", "resend"):
            with pytest.raises(CircuitBreakerOpenError):
                await service.send(MESSAGE)
        service._send_with_retry.assert_not_called()


class TestProviderResponse:
    @pytest.fixture
    def provider(self):
        """Routes the service's httpx client to a canned provider reply."""
        real_client = httpx.AsyncClient

        def serve(response: httpx.Response):
            return patch(
                "talentdesk.services.email_service.httpx.AsyncClient",
                lambda **kwargs: real_client(transport=httpx.MockTransport(lambda request: response), **kwargs),
            )

        return serve

    async def test_message_id_from_json(self, provider):
        with provider(httpx.Response(200, json={"id": "msg_1"})):
            assert await EmailService()._send_with_retry(MESSAGE) == "msg_1"

    @pytest.mark.parametrize(
        "response",
        [httpx.Response(200, text="OK"), httpx.Response(202, json=["queued"])],
    )
    async def test_accepted_without_json_object(self, provider, response):
        """A 2xx without a JSON object is still a delivery."""
        with provider(response):
            assert await EmailService()._send_with_retry(MESSAGE) == ""

    async def test_rejection_not_retried(self, provider):
        with provider(httpx.Response(422, json={"message": "invalid to"})):
            with pytest.raises(PermanentProviderError, match="422"):
                await EmailService()._send_with_retry(MESSAGE)


def test_invite_email_contains_link_and_expiry():
    message = build_invite_email(
        to="new@acme.io",
        invite_url="https://talentdesk.test/invite/abc",
        role="RECRUITER",
        invited_by="Owner",
        expires_in_days=7,
    )
    assert message.to == "new@acme.io"
    assert "https://talentdesk.test/invite/abc" in message.text
    assert "Recruiter" in message.text
    assert "7 days" in message.html
