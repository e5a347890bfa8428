"""Twilio WhatsApp transport for parent reports."""

import logging
import re
from typing import Optional, Protocol

import httpx

from eduimprove.config import settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(number: str, country_code: Optional[str] = None) -> str:
    """Digits only, prefixed with the country code when it is missing."""
    country_code = country_code or settings.whatsapp_country_code
    digits = _NON_DIGITS.sub("", number or "")
    if not digits.startswith(country_code):
        digits = country_code + digits
    return digits


class MessageTransport(Protocol):
    async def send(self, to: str, body: str) -> bool: ...


class TwilioWhatsApp:
    """Sends WhatsApp messages through the Twilio REST API.

    send() reports failure as False (missing credentials, HTTP error,
    network error) so a batch can carry on with the next recipient.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.twilio_account_sid
        self.auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self.from_number = from_number if from_number is not None else settings.twilio_whatsapp_from
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, to: str, body: str) -> bool:
        if not self.configured:
            logger.error("Twilio credentials not configured")
            return False

        formatted_to = normalize_phone(to)
        url = TWILIO_MESSAGES_URL.format(sid=self.account_sid)
        data = {
            "From": f"whatsapp:{self.from_number}",
            "To": f"whatsapp:+{formatted_to}",
            "Body": body,
        }

        try:
            if self._client is not None:
                response = await self._post(self._client, url, data)
            else:
                async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
                    response = await self._post(client, url, data)
        except httpx.HTTPError as e:
            logger.error(f"Error sending WhatsApp to {formatted_to}: {e}")
            return False

        if response.status_code >= 400:
            logger.error("Twilio error: %s %s", response.status_code, response.text)
            return False

        logger.info(f"WhatsApp sent successfully to {formatted_to}")
        return True

    async def _post(self, client: httpx.AsyncClient, url: str, data: dict) -> httpx.Response:
        return await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
