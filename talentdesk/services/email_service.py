"""
TalentDesk Backend: Email Delivery Service
==========================================

What:  Sends candidate emails and invitation emails.
How:   Two delivery modes selected by EMAIL_DELIVERY_MODE:
           log     write the message to the application log and succeed
                   (development, tests)
           resend  POST to the Resend HTTP API with httpx
       Provider calls are wrapped in tenacity retries with exponential
       backoff and jitter, behind a circuit breaker.

Resilience chain:
    can_execute() → open circuit raises CircuitBreakerOpenError (503)
    provider call fails → tenacity retries (RETRY_MAX_ATTEMPTS)
    all retries fail → record_failure() → EmailDeliveryError
    threshold consecutive failures → circuit OPEN for CB_RECOVERY_TIMEOUT
    after the timeout one trial call is let through (HALF_OPEN)

Only transport errors and 5xx/429 responses are retried; a 4xx from the
provider (bad address, unverified sender) fails immediately.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from html import escape
from typing import Optional

import httpx
from tenacity import (
    RetryError,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from talentdesk.config import settings
from talentdesk.exceptions import CircuitBreakerOpenError, EmailDeliveryError

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    CLOSED → (failure_threshold consecutive failures) → OPEN
    OPEN → (recovery_timeout elapsed) → HALF_OPEN
    HALF_OPEN → success → CLOSED; failure → OPEN

    Not shared between worker processes; each worker trips independently.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has
            not elapsed.
        """
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(recovery_time=int(self.recovery_timeout - elapsed))
            logger.info("Email circuit breaker transitioning to HALF_OPEN after %.1fs", elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Email circuit breaker transitioning to CLOSED (provider recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        if self.state == self.HALF_OPEN:
            logger.warning("Email circuit breaker returning to OPEN (trial call failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Email circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Email Service
# ══════════════════════════════════════════════════════════════════════════

class TransientProviderError(Exception):
    """5xx or 429 from the provider; worth retrying."""


class PermanentProviderError(Exception):
    """4xx from the provider; retrying cannot help."""


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


class EmailService:
    def __init__(self):
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

    async def send(self, message: OutgoingEmail) -> str:
        """
        Delivers one message and returns the provider message id.

        Raises:
            CircuitBreakerOpenError: the provider has been failing repeatedly
            EmailDeliveryError: the provider rejected the message or stayed
                unreachable after all retries
        """
        if settings.email_delivery_mode == "log":
            message_id = f"log-{uuid.uuid4()}"
            logger.info(
                "Email (log mode) to=%s subject=%r id=%s\n%s",
                message.to,
                message.subject,
                message_id,
                message.text,
            )
            return message_id

        self.circuit_breaker.can_execute()
        try:
            message_id = await self._send_with_retry(message)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            cause = e.last_attempt.exception() if e.last_attempt else None
            logger.error("Email delivery retries exhausted for %s: %s", message.to, cause)
            raise EmailDeliveryError(
                message="Failed to send email",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"attempts": settings.retry_max_attempts},
            )
        except (TransientProviderError, httpx.TransportError) as e:
            self.circuit_breaker.record_failure()
            logger.error("Email delivery failed for %s: %s", message.to, str(e))
            raise EmailDeliveryError(
                message="Failed to send email",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"error": str(e)},
            )
        except PermanentProviderError as e:
            # The provider is up; a rejected message does not trip the breaker
            logger.error("Email provider rejected message to %s: %s", message.to, str(e))
            raise EmailDeliveryError(message="Failed to send email", context={"error": str(e)})

        self.circuit_breaker.record_success()
        return message_id

    @retry(
        retry=retry_if_exception_type((TransientProviderError, httpx.TransportError)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(self, message: OutgoingEmail) -> str:
        payload = {
            "from": settings.email_from,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
        }
        if message.html:
            payload["html"] = message.html

        start_time = time.time()
        async with httpx.AsyncClient(timeout=settings.email_timeout_seconds) as client:
            response = await client.post(
                settings.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
            )
        duration_ms = (time.time() - start_time) * 1000

        if response.status_code == 429 or response.status_code >= 500:
            logger.warning(
                "Email provider returned %d after %.0fms", response.status_code, duration_ms
            )
            raise TransientProviderError(f"Provider returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise PermanentProviderError(
                f"Provider returned HTTP {response.status_code}: {response.text[:200]}"
            )

        # Accepted either way; a missing id only loses the provider reference
        try:
            message_id = str(response.json().get("id", ""))
        except (ValueError, AttributeError):
            logger.warning("Email provider returned %d without a JSON body", response.status_code)
            message_id = ""
        logger.info("Email sent to %s in %.0fms (id=%s)", message.to, duration_ms, message_id)
        return message_id


def build_invite_email(
    to: str,
    invite_url: str,
    role: str,
    invited_by: Optional[str],
    expires_in_days: int,
) -> OutgoingEmail:
    inviter = invited_by or "Your team"
    role_label = role.capitalize()
    text = (
        f"{inviter} has invited you to join TalentDesk as {role_label}.\n\n"
        f"Accept the invitation and set your password here:\n{invite_url}\n\n"
        f"This link expires in {expires_in_days} days. If you were not expecting "
        "this invitation you can ignore this email."
    )
    html = (
        f"<p>{escape(inviter)} has invited you to join <strong>TalentDesk</strong> as "
        f"<strong>{role_label}</strong>.</p>"
        f'<p><a href="{escape(invite_url)}">Accept invitation</a></p>'
        f"<p>This link expires in {expires_in_days} days.</p>"
    )
    return OutgoingEmail(
        to=to,
        subject="You've been invited to TalentDesk",
        text=text,
        html=html,
    )


email_service = EmailService()
