"""
Outbound WhatsApp messages. The real provider is an external collaborator;
the default gateway only validates the number and logs the message.
"""
import logging
import re
import uuid

from errors import DispatchFailed

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9][0-9]{7,14}$")


class MessageGateway:
    """Send one message; return a provider reference or raise DispatchFailed."""

    def send(self, phone: str, message: str) -> str:
        raise NotImplementedError


class LoggingWhatsAppGateway(MessageGateway):
    def send(self, phone: str, message: str) -> str:
        if not phone:
            raise DispatchFailed("Student has no WhatsApp number")
        if not E164_PATTERN.match(phone):
            raise DispatchFailed(f"WhatsApp number {phone} is not in E.164 format")

        reference = uuid.uuid4().hex
        logger.info("Sending WhatsApp to %s (ref %s): %s", phone, reference, message.splitlines()[0])
        return reference


_default_gateway = LoggingWhatsAppGateway()


def get_message_gateway() -> MessageGateway:
    return _default_gateway


def dispatch(gateway: MessageGateway, phone: str, message: str) -> str:
    """Send through any gateway; provider errors of every kind surface as DispatchFailed."""
    try:
        return gateway.send(phone, message)
    except DispatchFailed:
        raise
    except Exception as e:
        logger.exception("Gateway error while sending to %s", phone)
        raise DispatchFailed(f"Message gateway error: {e}") from e
