"""Base SMS gateway interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SmsDelivery:
    """Standardized acknowledgement from any SMS gateway."""
    sid: str
    status: str
    to: str
    sender: str
    body: str
    provider: str


class SmsGateway(ABC):
    """Abstract base class for outbound SMS gateways."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Gateway name (twilio, console)."""
        pass

    @abstractmethod
    def send(self, to: str, body: str) -> SmsDelivery:
        """Deliver one text message.

        Args:
            to: Destination number in E.164 format
            body: Message text

        Returns:
            SmsDelivery with the provider's message id and status

        Raises:
            GatewayError: if the gateway is not configured or rejects the message
        """
        pass

    def is_available(self) -> bool:
        """Check if this gateway is available (credentials set, etc.)."""
        return True
