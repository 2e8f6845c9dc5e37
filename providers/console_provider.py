"""Console SMS gateway for local runs: logs messages instead of sending them."""

import logging

from contracts import new_id

from .base import SmsDelivery, SmsGateway

logger = logging.getLogger(__name__)


class ConsoleGateway(SmsGateway):
    """Writes outbound texts to the log and reports them as sent."""

    def __init__(self, sender: str = "console"):
        self.sender = sender
        self.sent = []

    @property
    def name(self) -> str:
        return "console"

    def send(self, to: str, body: str) -> SmsDelivery:
        delivery = SmsDelivery(
            sid=f"CN{new_id()}",
            status="sent",
            to=to,
            sender=self.sender,
            body=body.strip(),
            provider=self.name,
        )
        self.sent.append(delivery)
        logger.info("SMS to %s: %s", to, delivery.body)
        return delivery
