"""
Delivery log for match notification emails (``email_logs`` table).
"""

from __future__ import annotations

from psycopg.types.json import Jsonb

from civicmatch.db.helpers import execute_query
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WEEKLY_MATCH_EMAIL_TYPE = "weekly_match"


class EmailLogRepository:
    @staticmethod
    async def log_sent(
        user_id: str,
        message_id: str | None,
        recipient_email: str,
        subject: str,
        template_version: str,
        email_type: str = WEEKLY_MATCH_EMAIL_TYPE,
    ) -> None:
        await execute_query(
            """
            INSERT INTO email_logs (user_id, email_type, resend_id, status, data)
            VALUES (%s, %s, %s, 'sent', %s)
            """,
            (
                user_id,
                email_type,
                message_id,
                Jsonb(
                    {
                        "template_version": template_version,
                        "recipient_email": recipient_email,
                        "subject": subject,
                    }
                ),
            ),
        )
        logger.debug("Email delivery logged", user_id=user_id, email_type=email_type)
