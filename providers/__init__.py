"""Outbound SMS gateway abstraction."""

from .base import SmsDelivery, SmsGateway
from .console_provider import ConsoleGateway
from .twilio_provider import TwilioGateway
from .factory import get_gateway, list_gateways

__all__ = [
    "SmsDelivery",
    "SmsGateway",
    "ConsoleGateway",
    "TwilioGateway",
    "get_gateway",
    "list_gateways",
]
