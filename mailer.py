import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

import config

logger = logging.getLogger(__name__)


class Mailer:
    """Sends one-time login codes over SMTP."""

    def __init__(self, host: str, port: int, user: Optional[str] = None, password: Optional[str] = None,
                 sender: str = config.SMTP_FROM):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender

    def send_otp(self, recipient: str, code: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = "Your LivestockMart login code"
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.set_content(
            f"Your one-time login code is {code}. It expires in {config.OTP_EXPIRE_MINUTES} minutes."
        )
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(msg)
        logger.info(f"OTP email sent to {recipient}")


def get_mailer() -> Optional[Mailer]:
    if not config.SMTP_HOST:
        return None
    return Mailer(config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USER, config.SMTP_PASSWORD)
