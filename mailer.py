import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def send(self, to: str, subject: str, text: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.settings.mail_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text)

        if not self.settings.smtp_host:
            # No relay configured: keep the message visible for local testing.
            logger.info(f"mail_preview: to={to} subject={subject!r}\n{text}")
            return

        host = self.settings.smtp_host
        port = self.settings.smtp_port
        timeout = 10
        if port == 465:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(host, port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host, port, timeout=timeout)
        with smtp:
            if port != 465:
                smtp.starttls()
            if self.settings.smtp_user:
                smtp.login(self.settings.smtp_user, self.settings.smtp_password)
            smtp.send_message(msg)
        logger.info(f"mail_sent: to={to} subject={subject!r}")
