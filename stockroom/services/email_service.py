import logging

import httpx

from stockroom.config import settings
from stockroom.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


def _build_payload(email: str, code: str, ttl_minutes: int) -> dict:
    text = f"Your password reset code is: {code}. It is valid for {ttl_minutes} minutes."
    html = f"<p>Your password reset code is: <strong>{code}</strong>. It is valid for {ttl_minutes} minutes.</p>"
    return {
        "personalizations": [{"to": [{"email": email}]}],
        "from": {"email": settings.MAIL_FROM},
        "subject": "Password reset code",
        "content": [
            {"type": "text/plain", "value": text},
            {"type": "text/html", "value": html},
        ],
    }


def send_reset_code(email: str, code: str, ttl_minutes: int | None = None) -> None:
    """Deliver a reset code through the SendGrid v3 mail API."""
    if not settings.SENDGRID_API_KEY or not settings.MAIL_FROM:
        raise EmailDeliveryError("Email delivery is not configured")

    payload = _build_payload(email, code, ttl_minutes or settings.RESET_CODE_TTL_MINUTES)
    headers = {"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"}
    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(settings.SENDGRID_API_URL, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error("Reset email to %s failed: %s", email, e)
        raise EmailDeliveryError("Failed to send email") from e
    if not resp.is_success:
        logger.error("Reset email to %s rejected: %s %s", email, resp.status_code, resp.text)
        raise EmailDeliveryError("Failed to send email")
    logger.info("Reset code sent to %s", email)
