"""Twilio SMS delivery over its REST API."""

import logging
from typing import Any, Dict, Optional

import httpx

from boardroom.config import TwilioConfig

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioError(RuntimeError):
    """Twilio rejected the message or could not be reached."""


class TwilioClient:
    def __init__(
        self,
        config: TwilioConfig,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.config = config
        self._http = http_client or httpx.Client(timeout=timeout)

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self.config.account_sid}/Messages.json"

    def send(self, to: str, body: str) -> Dict[str, Any]:
        """Send one SMS. Returns the Twilio message resource (``sid``, ``status``...)."""
        data = {"To": to, "From": self.config.from_number or "", "Body": body}
        try:
            response = self._http.post(
                self.messages_url,
                auth=(self.config.account_sid or "", self.config.auth_token or ""),
                data=data,
            )
        except httpx.HTTPError as e:
            raise TwilioError(f"Twilio request failed: {e}") from e

        if response.status_code not in (200, 201):
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            raise TwilioError(f"Twilio returned {response.status_code}: {detail}")

        result = response.json()
        logger.info(f"SMS sent to {to} (sid={result.get('sid')}, status={result.get('status')})")
        return result

    def close(self) -> None:
        self._http.close()
