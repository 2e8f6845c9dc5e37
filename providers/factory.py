"""Factory for creating SMS gateways."""

from typing import Dict, Optional, Type

from config import settings

from .base import SmsGateway
from .console_provider import ConsoleGateway
from .twilio_provider import TwilioGateway


# Registry of available gateways
GATEWAYS: Dict[str, Type[SmsGateway]] = {
    "twilio": TwilioGateway,
    "console": ConsoleGateway,
    "log": ConsoleGateway,
}


def get_gateway(gateway_name: Optional[str] = None) -> SmsGateway:
    """Get an SMS gateway instance.

    Args:
        gateway_name: Explicit gateway name (twilio, console). Defaults to settings.sms_provider.

    Returns:
        SmsGateway instance

    Examples:
        get_gateway("twilio")
        get_gateway()  # settings.sms_provider
    """
    key = (gateway_name or settings.sms_provider).lower()
    if key not in GATEWAYS:
        raise ValueError(
            f"Unknown SMS gateway: {gateway_name}. "
            f"Available: {list(GATEWAYS.keys())}"
        )
    return GATEWAYS[key]()


def list_gateways() -> Dict[str, bool]:
    """List all gateways and their availability.

    Returns:
        Dict mapping gateway name to availability status
    """
    result = {}
    for name, gateway_class in GATEWAYS.items():
        # Skip aliases
        if name in ["log"]:
            continue
        try:
            result[name] = gateway_class().is_available()
        except Exception:
            result[name] = False
    return result
