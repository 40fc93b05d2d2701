"""SMTP delivery for confirmation and reminder email."""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import make_msgid

from boardroom.config import SmtpConfig

logger = logging.getLogger(__name__)


class SMTPClient:
    """Thin wrapper over smtplib; one connection per message."""

    def __init__(self, config: SmtpConfig, timeout: float = 30.0):
        self.config = config
        self.timeout = timeout

    def build_message(
        self, to: str, subject: str, html: str, text: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["Message-ID"] = make_msgid()
        message["From"] = self.config.from_address or self.config.username or ""
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "", subtype="plain")
        if html:
            message.add_alternative(html, subtype="html")
        return message

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.config.use_ssl:
            return smtplib.SMTP_SSL(
                self.config.host, self.config.port, context=context, timeout=self.timeout
            )
        server = smtplib.SMTP(self.config.host, self.config.port, timeout=self.timeout)
        server.starttls(context=context)
        return server

    def send_message(self, message: EmailMessage) -> str:
        """Send ``message`` and return its Message-ID.

        Raises:
            smtplib.SMTPException: On any protocol or authentication failure
        """
        with self._connect() as server:
            server.login(self.config.username or "", self.config.password or "")
            server.send_message(message)

        message_id = message["Message-ID"]
        logger.info(f"Email sent to {message['To']} ({message_id})")
        return message_id
