"""Email service for outbound account notifications."""

import asyncio
from typing import Any, Mapping

import structlog

from modulehub.config import get_settings
from modulehub.services.background import run_in_background

logger = structlog.get_logger(__name__)

# template id -> (subject, plain-text body); bodies use str.format_map fields
TEMPLATES: dict[str, tuple[str, str]] = {
    "user_welcome": (
        "Welcome to Module Hub!",
        "Hi,\n\n"
        "Thanks for signing up for a Module Hub account. We're excited to have you on board!\n\n"
        "For future reference, your user ID number is {userID}.\n\n"
        "Please send a request to the `PUT /v1/users/activated` endpoint with the "
        "following JSON body to activate your account:\n\n"
        '{{"token": "{activationToken}"}}\n\n'
        "Please note that this is a one-time use token and it will expire shortly.\n\n"
        "Thanks,\n\n"
        "The Module Hub Team",
    ),
}


def render(template: str, data: Mapping[str, Any]) -> tuple[str, str]:
    """Render a template into (subject, body).

    Raises:
        KeyError: If the template id is unknown or a payload field is missing
    """
    subject, body = TEMPLATES[template]
    return subject, body.format_map(data)


class EmailService:
    """Delivers templated emails over SMTP. Delivery is best-effort."""

    async def send(self, to_email: str, template: str, data: Mapping[str, Any]) -> bool:
        """Send a templated email.

        Returns True on success, False on any failure (which is logged).
        """
        settings = get_settings()

        if not settings.email_enabled:
            logger.info("email_delivery_disabled", to=to_email, template=template)
            return False

        try:
            import aiosmtplib

            subject, body = render(template, data)

            message = (
                f"From: {settings.email_from}\r\n"
                f"To: {to_email}\r\n"
                f"Subject: {subject}\r\n"
                f"Content-Type: text/plain; charset=utf-8\r\n"
                f"\r\n"
                f"{body}"
            )

            await aiosmtplib.send(
                message,
                sender=settings.email_from,
                recipients=[to_email],
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                use_tls=settings.smtp_use_tls,
            )

            logger.info("email_sent", to=to_email, template=template)
            return True

        except Exception as e:
            logger.error(
                "email_send_failed",
                to=to_email,
                template=template,
                error=str(e),
            )
            return False

    def dispatch_welcome(self, user_id: int, to_email: str, activation_token: str) -> asyncio.Task:
        """Queue the welcome email carrying an activation token.

        Returns immediately; the outcome never reaches the caller.
        """
        data = {
            "activationToken": activation_token,
            "userID": user_id,
        }
        return run_in_background(
            self.send(to_email, "user_welcome", data),
            name="user_welcome_email",
        )
