import logging

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema

from ..config import settings

logger = logging.getLogger(__name__)


def mail_enabled() -> bool:
    return bool(settings.MAIL_USERNAME and settings.MAIL_PASSWORD)


def _connection() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USERNAME,
        MAIL_PASSWORD=settings.MAIL_PASSWORD,
        MAIL_FROM=settings.MAIL_FROM or settings.MAIL_USERNAME,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_SERVER,
        MAIL_STARTTLS=True,
        MAIL_SSL_TLS=False,
        USE_CREDENTIALS=True,
    )


def render_booking_email(booking: dict) -> str:
    promo = f"<p>Promo: {booking['promoCode']}</p>" if booking.get("promoCode") else ""
    return f"""
    <html>
    <body>
        <h2>New booking {booking['receiptId']}</h2>
        <p>Quad: <b>{booking['quadName']}</b></p>
        <p>Customer: {booking['customerName']} ({booking['customerPhone']})</p>
        <p>Duration: {booking['duration']} min</p>
        <p>Price: KES {booking['price']}</p>
        {promo}
        <p>Started: {booking['startTime']}</p>
    </body>
    </html>
    """


def render_damage_email(report: dict) -> str:
    return f"""
    <html>
    <body>
        <h2>Severe damage reported on {report['quadName']}</h2>
        <p>{report['description']}</p>
        <p>Customer: {report.get('customerName') or '-'}</p>
        <p>Estimated repair: KES {report['repairCost']}</p>
    </body>
    </html>
    """


async def notify_owner(subject: str, html_body: str) -> bool:
    if not mail_enabled():
        logger.debug("Mail not configured, skipping '%s'", subject)
        return False

    message = MessageSchema(
        subject=subject,
        recipients=[settings.ADMIN_EMAIL or settings.MAIL_USERNAME],
        body=html_body,
        subtype="html"
    )
    try:
        await FastMail(_connection()).send_message(message)
    except Exception as e:
        logger.error("Failed to send e-mail '%s': %s", subject, e)
        return False
    return True
