"""
Match notification email sender backed by Resend.
"""

from __future__ import annotations

from typing import Protocol

from civicmatch.config import settings
from civicmatch.db.helpers import DatabaseError
from civicmatch.features.weekly_matching.domain.errors import ConfigurationError, DispatchFailure
from civicmatch.features.weekly_matching.domain.models import MatchNotification, SendResult
from civicmatch.features.weekly_matching.repository.email_log_repository import (
    EmailLogRepository,
)
from civicmatch.infrastructure.observability.logging import get_logger
from civicmatch.services.email.resend_client import ResendClient, ResendError

from .email_template import TEMPLATE_VERSION, render_match_email

logger = get_logger(__name__)


class EmailLog(Protocol):
    async def log_sent(
        self,
        user_id: str,
        message_id: str | None,
        recipient_email: str,
        subject: str,
        template_version: str,
    ) -> None: ...


class MatchEmailService:
    """
    Sends weekly match emails.

    ``enabled=False`` turns every send into a failed result without network
    traffic; ``test_mode=True`` logs the email and reports success.
    """

    def __init__(
        self,
        client: ResendClient | None,
        from_email: str | None = None,
        enabled: bool | None = None,
        test_mode: bool | None = None,
        email_log: EmailLog | None = None,
    ):
        self.client = client
        self.from_email = from_email or settings.RESEND_FROM_EMAIL
        self.enabled = settings.EMAIL_ENABLED if enabled is None else enabled
        self.test_mode = settings.EMAIL_TEST_MODE if test_mode is None else test_mode
        self.email_log = email_log

    def validate_config(self) -> None:
        if self.enabled and not self.test_mode and self.client is None:
            raise ConfigurationError("RESEND_API_KEY not set; cannot send match emails")

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()

    async def send_match_notification(
        self, recipient_email: str, payload: MatchNotification
    ) -> SendResult:
        """
        Raises:
            DispatchFailure: Provider rejected the email or was unreachable
        """
        if not self.enabled:
            logger.info("Email disabled, skipping match email", user_id=payload.recipient.user_id)
            return SendResult(success=False, error="Email disabled")

        rendered = render_match_email(payload)

        if self.test_mode:
            logger.info(
                "Email test mode, not sending",
                user_id=payload.recipient.user_id,
                recipient=recipient_email,
                subject=rendered.subject,
            )
            return SendResult(success=True, message_id="test-mode")

        if self.client is None:
            raise DispatchFailure("Email client not configured", recoverable=False)

        try:
            message_id = await self.client.send_email(
                from_email=self.from_email,
                to=recipient_email,
                subject=rendered.subject,
                html=rendered.html,
                text=rendered.text,
                tags={"category": "weekly_match"},
            )
        except ResendError as e:
            raise DispatchFailure(
                str(e), operation="send_match_notification", recoverable=e.recoverable
            ) from e

        logger.info(
            "Match email sent",
            user_id=payload.recipient.user_id,
            matched_user_id=payload.match.user_id,
            message_id=message_id,
        )
        await self._log_delivery(payload, recipient_email, rendered.subject, message_id)
        return SendResult(success=True, message_id=message_id)

    async def _log_delivery(
        self, payload: MatchNotification, recipient_email: str, subject: str, message_id: str
    ) -> None:
        if self.email_log is None:
            return
        try:
            await self.email_log.log_sent(
                user_id=payload.recipient.user_id,
                message_id=message_id,
                recipient_email=recipient_email,
                subject=subject,
                template_version=TEMPLATE_VERSION,
            )
        except DatabaseError as e:
            # Log failures never change the send result.
            logger.warning(
                "Failed to write email log",
                user_id=payload.recipient.user_id,
                error=str(e),
            )


def build_match_email_service() -> MatchEmailService:
    client = ResendClient(settings.RESEND_API_KEY) if settings.RESEND_API_KEY else None
    return MatchEmailService(client=client, email_log=EmailLogRepository())
