# Overview: Outbound email delivery (password reset links).

"""
Email Service

Single contract used by the rest of the app:

    send_password_reset_email(address, display_name, link)

Backends (MAIL_BACKEND):
- "log": writes the message to the application log (development default)
- "sendgrid": POSTs to the SendGrid v3 mail API with httpx

Delivery failures raise EmailDeliveryError; callers decide whether to
swallow them.
"""

from __future__ import annotations

from html import escape

import httpx
from flask import current_app


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the delivery backend."""


def render_password_reset_email(display_name: str, link: str, ttl_minutes: int) -> tuple[str, str]:
    subject = "Password reset request"
    hours = ttl_minutes // 60
    window = f"{hours} hour{'s' if hours != 1 else ''}" if ttl_minutes % 60 == 0 else f"{ttl_minutes} minutes"
    html = (
        f"<p>Hi {escape(display_name)},</p>"
        "<p>We received a request to reset your password. Click the link below to choose a new one:</p>"
        f'<p><a href="{escape(link, quote=True)}">Reset your password</a></p>'
        f"<p>This link expires in {window}. If you did not request a reset, you can ignore this email.</p>"
    )
    return subject, html


def _send_with_sendgrid(*, to_address: str, subject: str, html: str) -> None:
    config = current_app.config
    api_key = config.get("SENDGRID_API_KEY")
    if not api_key:
        raise EmailDeliveryError("SENDGRID_API_KEY is not configured")

    body = {
        "personalizations": [{"to": [{"email": to_address}]}],
        "from": {"email": config["MAIL_FROM_EMAIL"], "name": config.get("MAIL_FROM_NAME")},
        "subject": subject,
        "content": [{"type": "text/html", "value": html}],
    }
    try:
        response = httpx.post(
            config["SENDGRID_API_URL"],
            json=body,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=config.get("MAIL_TIMEOUT_SECONDS", 10),
        )
    except httpx.HTTPError as exc:
        raise EmailDeliveryError(f"SendGrid request failed: {exc}") from exc

    if response.status_code >= 300:
        raise EmailDeliveryError(f"SendGrid returned {response.status_code}: {response.text[:200]}")


def send_email(*, to_address: str, subject: str, html: str) -> None:
    backend = current_app.config.get("MAIL_BACKEND", "log")
    if backend == "sendgrid":
        _send_with_sendgrid(to_address=to_address, subject=subject, html=html)
    elif backend == "log":
        current_app.logger.info("Email to=%s subject=%r\n%s", to_address, subject, html)
    else:
        raise EmailDeliveryError(f"Unknown MAIL_BACKEND: {backend}")


def send_password_reset_email(address: str, display_name: str, link: str) -> None:
    ttl = current_app.config.get("PASSWORD_RESET_TOKEN_TTL_MINUTES", 60)
    subject, html = render_password_reset_email(display_name, link, ttl)
    send_email(to_address=address, subject=subject, html=html)
