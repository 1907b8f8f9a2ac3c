import logging
import smtplib
from email.message import EmailMessage
from app.core.config import Settings, settings
from app.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)

PASSWORD_RESET_SUBJECT = "Password Reset Request - DriveX"


def render_password_reset_body(reset_url: str) -> str:
    return (
        "Hello,\n"
        "\n"
        "You have requested to reset your password for your DriveX account.\n"
        "\n"
        "Click the link below to reset your password:\n"
        f"{reset_url}\n"
        "\n"
        "Security information:\n"
        "- This link will expire in 1 hour\n"
        "- You can only use this link once\n"
        "- If you didn't request this reset, please ignore this email\n"
        "\n"
        "Best regards,\n"
        "The DriveX Team\n"
        "\n"
        "---\n"
        "This is an automated message, please do not reply to this email.\n"
    )


class EmailService:
    def __init__(self, config: Settings):
        self._config = config

    def send_password_reset(self, to_email: str, reset_url: str) -> None:
        """Send the reset link, or log the whole message when no SMTP relay is configured"""
        body = render_password_reset_body(reset_url)

        if not self._config.is_smtp_configured():
            logger.info(
                f"SMTP not configured, password reset email for {to_email} was not sent.\n"
                f"Subject: {PASSWORD_RESET_SUBJECT}\n{body}"
            )
            return

        message = EmailMessage()
        message["From"] = self._config.MAIL_USERNAME
        message["To"] = to_email
        message["Subject"] = PASSWORD_RESET_SUBJECT
        message.set_content(body)

        try:
            with smtplib.SMTP(
                self._config.MAIL_HOST,
                self._config.MAIL_PORT,
                timeout=self._config.HTTP_TIMEOUT_SECONDS,
            ) as smtp:
                if self._config.MAIL_USE_TLS:
                    smtp.starttls()
                smtp.login(self._config.MAIL_USERNAME, self._config.MAIL_PASSWORD)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send password reset email to {to_email}: {e}")
            raise EmailDeliveryError("Failed to send password reset email") from e

        logger.info(f"Password reset email sent to: {to_email}")


email_service = EmailService(settings)
