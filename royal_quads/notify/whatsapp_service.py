import logging

from twilio.rest import Client

from ..config import settings

logger = logging.getLogger(__name__)


def whatsapp_enabled() -> bool:
    return bool(settings.TWILIO_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_WHATSAPP_FROM)


def to_international(phone: str) -> str:
    """07xx / 2547xx / +2547xx -> +2547xx"""
    phone = phone.strip().replace(" ", "")
    if phone.startswith("+"):
        return phone
    if phone.startswith("254"):
        return "+" + phone
    if phone.startswith("0"):
        return "+254" + phone[1:]
    return phone


def send_whatsapp(to_phone: str, message: str) -> bool:
    if not whatsapp_enabled():
        logger.debug("WhatsApp not configured, skipping message to %s", to_phone)
        return False

    client = Client(settings.TWILIO_SID, settings.TWILIO_AUTH_TOKEN)
    try:
        client.messages.create(
            body=message,
            from_=f'whatsapp:{settings.TWILIO_WHATSAPP_FROM}',
            to=f'whatsapp:{to_international(to_phone)}'
        )
    except Exception as e:
        logger.warning("WhatsApp to %s failed: %s", to_phone, e)
        return False
    return True


def render_waitlist_message(customer_name: str, duration: int) -> str:
    return (
        f"Hi {customer_name}, a quad is ready for your {duration} min ride at Royal Quads. "
        f"Please come to the booking desk."
    )
