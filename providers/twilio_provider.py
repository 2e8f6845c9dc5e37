"""Twilio SMS gateway over the REST API."""

import logging
from typing import Optional

import requests

from config import settings
from contracts import GatewayError

from .base import SmsDelivery, SmsGateway

logger = logging.getLogger(__name__)


class TwilioGateway(SmsGateway):
    """Gateway for Twilio Programmable Messaging."""

    # Twilio error codes with a clearer operator-facing message
    ERROR_MESSAGES = {
        21211: "The destination phone number is invalid.",
        21408: "Permission to send SMS to this region is not enabled.",
        21608: "The destination number is not verified (trial accounts only reach verified numbers).",
    }

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        """Initialize Twilio gateway.

        Args:
            account_sid: Account SID. Uses settings.twilio_account_sid if not provided.
            auth_token: Auth token. Uses settings.twilio_auth_token if not provided.
            from_number: Sender number. Uses settings.twilio_from_number if not provided.
        """
        self.account_sid = account_sid or settings.twilio_account_sid
        self.auth_token = auth_token or settings.twilio_auth_token
        self.from_number = from_number or settings.twilio_from_number
        self.api_url = (api_url or settings.twilio_api_url).rstrip("/")
        self.timeout = timeout or settings.gateway_timeout_seconds

    @property
    def name(self) -> str:
        return "twilio"

    def _check_configured(self) -> None:
        if not self.account_sid or not self.auth_token:
            raise GatewayError("Twilio is not configured: account SID and auth token are required")
        if not self.account_sid.startswith("AC"):
            raise GatewayError('Invalid Twilio account SID: must start with "AC"')
        if not self.from_number:
            raise GatewayError("Twilio sender number is not configured")

    def send(self, to: str, body: str) -> SmsDelivery:
        self._check_configured()
        if not to:
            raise GatewayError("Destination phone number is required")
        if not body or not body.strip():
            raise GatewayError("SMS body cannot be empty")

        try:
            r = requests.post(
                f"{self.api_url}/Accounts/{self.account_sid}/Messages.json",
                auth=(self.account_sid, self.auth_token),
                data={"To": to, "From": self.from_number, "Body": body.strip()},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"Twilio request failed: {e}") from e

        data = {}
        try:
            data = r.json()
        except ValueError:
            pass

        if r.status_code >= 400:
            code = data.get("code")
            message = self.ERROR_MESSAGES.get(code) or data.get("message") or f"HTTP {r.status_code}"
            raise GatewayError(f"Twilio error: {message}", details={"twilio_code": code})

        delivery = SmsDelivery(
            sid=data.get("sid", ""),
            status=data.get("status", "queued"),
            to=data.get("to", to),
            sender=data.get("from", self.from_number),
            body=data.get("body", body.strip()),
            provider=self.name,
        )
        logger.info("SMS sent via Twilio sid=%s to=%s status=%s", delivery.sid, delivery.to, delivery.status)
        return delivery

    def is_available(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.account_sid.startswith("AC"))
