# storefront/services/email_client.py
import requests

from storefront.domain.errors import ConfigurationError
from storefront.utils.retry import http_retry
from storefront.utils.settings import EMAIL_API_URL, EMAIL_FROM, RESEND_API_KEY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class EmailClient:
    """Transactional email over the Resend HTTP API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        sender: str | None = None,
        timeout: int = 5,
    ):
        self.api_key = api_key if api_key is not None else RESEND_API_KEY
        self.base_url = (base_url or EMAIL_API_URL).rstrip("/")
        self.sender = sender or EMAIL_FROM
        self.timeout = timeout

    @http_retry()
    def send(self, to: str, subject: str, body: str) -> dict:
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")

        logger.info(f"EmailClient POST {self.base_url} to={to}")
        resp = requests.post(
            self.base_url,
            json={"from": self.sender, "to": [to], "subject": subject, "text": body},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()
