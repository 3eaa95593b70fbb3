"""Email provider API client (Resend-compatible) for lifecycle notifications."""

import logging
import re
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(address: str) -> bool:
    """Basic shape check before handing an address to the provider."""
    return bool(address) and EMAIL_PATTERN.match(address) is not None


class EmailClient:
    """
    Async client for the transactional email API.

    Used for:
    - Deletion notices
    - Scheduled deletion warnings and reminders
    - Restoration confirmations
    """

    def __init__(self, base_url: str, api_key: str, from_email: str):
        self.base_url = base_url
        self.api_key = api_key
        self.from_email = from_email
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=30.0,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def send_email(self, to: str, subject: str, html: str) -> tuple[bool, str]:
        """
        Send a single HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html: Rendered HTML body

        Returns:
            Tuple of (success, message). Message is the provider's email ID on success.
        """
        if not validate_email(to):
            return False, f"Invalid email format: {to!r}"

        if not self.is_configured:
            return False, "Email service is not properly configured"

        try:
            client = await self._get_client()
            response = await client.post(
                "/emails",
                json={
                    "from": self.from_email,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
            )

            if response.status_code in (200, 201, 202):
                email_id = ""
                try:
                    email_id = response.json().get("id", "")
                except ValueError:
                    pass
                logger.info(f"Sent email '{subject}' to {to} (id={email_id or 'unknown'})")
                return True, email_id or "sent"

            error_msg = f"Send failed with status {response.status_code}"
            try:
                error_data = response.json()
                if "message" in error_data:
                    error_msg = error_data["message"]
            except ValueError:
                pass
            logger.error(f"Failed to send email '{subject}' to {to}: {error_msg}")
            return False, error_msg

        except httpx.RequestError as e:
            logger.error(f"Request error sending email to {to}: {e}")
            return False, f"Request error: {e}"
