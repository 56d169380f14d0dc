"""
Transactional email through the Resend HTTP API
Sending is best effort: callers get a boolean and failures are logged
"""

import logging
from typing import Optional

import requests

from pumpdispatch.config import settings

logger = logging.getLogger(__name__)

class EmailService:
    """Thin client for the transactional email endpoint"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.sender = sender or settings.RESEND_FROM
        self.api_url = api_url or settings.EMAIL_API_URL
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        """Send one email; returns False instead of raising"""
        if not to or not subject or not html:
            logger.warning("Email not sent: missing recipient, subject or body")
            return False

        if not self.configured:
            logger.warning("Email not sent: RESEND_API_KEY or RESEND_FROM is not set")
            return False

        payload = {
            "from": self.sender,
            "to": to,
            "subject": subject,
            "html": html,
            "text": text,
        }

        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Email send error to {to}: {e}")
            return False

        if not response.ok:
            logger.warning(f"Email send failed to {to}: HTTP {response.status_code} {response.text[:500]}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True

def get_email_service() -> EmailService:
    """FastAPI dependency so tests can swap the email client"""
    return EmailService()
