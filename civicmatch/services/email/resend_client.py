"""
Resend API client.
Low-level transactional email delivery over HTTP with retry and backoff.
"""

import asyncio

import httpx

from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class ResendError(Exception):
    """Custom exception for Resend API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_name: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_name = error_name
        self.recoverable = recoverable


class ResendClient:
    """Sends single emails through the Resend REST API."""

    def __init__(self, api_key: str, backoff_factor: float = BACKOFF_FACTOR):
        if not api_key:
            raise ValueError("Resend API key is required")
        self._api_key = api_key
        self.backoff_factor = backoff_factor
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def _post_with_retry(self, payload: dict) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.post(
                    RESEND_API_URL, headers=self._headers(), json=payload
                )
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    wait_time = self.backoff_factor * (2 ** (attempt - 1))
                    logger.warning(
                        "Resend transient status, retrying",
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                return response

            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise ResendError(f"Resend request failed: {e}") from e
                wait_time = self.backoff_factor * (2 ** (attempt - 1))
                logger.warning(
                    "Resend request error, retrying",
                    attempt=attempt,
                    wait_time=wait_time,
                    error=str(e),
                )
                await asyncio.sleep(wait_time)

        raise ResendError("Resend retry loop exhausted")

    async def send_email(
        self,
        *,
        from_email: str,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
        tags: dict[str, str] | None = None,
    ) -> str:
        """
        Send one email.

        Returns:
            str: Resend message id

        Raises:
            ResendError: If the API rejects the message or cannot be reached
        """
        payload: dict = {"from": from_email, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text
        if tags:
            payload["tags"] = [{"name": name, "value": value} for name, value in tags.items()]

        response = await self._post_with_retry(payload)

        try:
            data = response.json() if response.text else {}
        except ValueError:
            data = {}

        if not response.is_success:
            error_name = data.get("name") if isinstance(data, dict) else None
            message = data.get("message") if isinstance(data, dict) else None
            logger.error(
                "Resend API send failed",
                status_code=response.status_code,
                error_name=error_name,
                error_message=message,
            )
            raise ResendError(
                message or f"Resend API error (HTTP {response.status_code})",
                status_code=response.status_code,
                error_name=error_name,
                recoverable=response.status_code in RETRY_STATUS_CODES,
            )

        message_id = data.get("id") if isinstance(data, dict) else None
        if not message_id:
            raise ResendError("Resend response did not include a message id", recoverable=False)
        return message_id
