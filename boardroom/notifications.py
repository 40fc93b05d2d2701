"""
Booking notifications

Message templates for confirmations and reminders, plus the ``Notifier``
that delivers them over email (SMTP) and SMS (Twilio).
"""

import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from boardroom.config import ServerConfig
from boardroom.models import Booking, Reminder, ReminderType, User
from boardroom.sms_client import TwilioClient, TwilioError
from boardroom.smtp_client import SMTPClient

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """A channel is not configured or its provider rejected the message."""


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


# Templates


def format_when(instant: datetime, tz: ZoneInfo) -> str:
    return instant.astimezone(tz).strftime("%a %d %b %Y, %I:%M %p")


def _title(booking: Optional[Booking]) -> str:
    return booking.display_title if booking else "your meeting"


def confirmation_subject(booking: Booking) -> str:
    return f"Boardroom booking confirmed: {booking.display_title}"


def confirmation_html(user: User, booking: Booking, tz: ZoneInfo) -> str:
    link = (
        f"<p><b>Meeting link:</b> {escape(booking.meeting_link)}</p>"
        if booking.meeting_link
        else ""
    )
    return f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.6">
      <h2>Booking confirmed</h2>
      <p>Hello {escape(user.name)},</p>
      <p>Your boardroom booking has been confirmed.</p>
      <ul>
        <li><b>Meeting:</b> {escape(booking.display_title)}</li>
        <li><b>Start:</b> {format_when(booking.start_at, tz)}</li>
        <li><b>End:</b> {format_when(booking.end_at, tz)}</li>
        <li><b>Duration:</b> {booking.duration_minutes} minutes</li>
      </ul>
      {link}
      <p>Thanks.</p>
    </div>
    """


def confirmation_text(user: User, booking: Booking, tz: ZoneInfo) -> str:
    lines = [
        f"Hello {user.name},",
        "",
        "Your boardroom booking has been confirmed.",
        f"Meeting: {booking.display_title}",
        f"Start: {format_when(booking.start_at, tz)}",
        f"End: {format_when(booking.end_at, tz)}",
        f"Duration: {booking.duration_minutes} minutes",
    ]
    if booking.meeting_link:
        lines.append(f"Meeting link: {booking.meeting_link}")
    return "\n".join(lines)


def confirmation_sms(booking: Booking, tz: ZoneInfo) -> str:
    return f'Booking confirmed: "{booking.display_title}" on {format_when(booking.start_at, tz)}.'


def reminder_sms_text(
    reminder_type: Union[ReminderType, str], booking: Optional[Booking]
) -> str:
    title = _title(booking)
    if reminder_type is ReminderType.STARTS_20:
        return f'Reminder: "{title}" starts in 20 minutes.'
    if reminder_type is ReminderType.JOIN_NOW:
        return f'Now: "{title}" is starting.'
    if reminder_type is ReminderType.ENDING_10:
        return f'Heads up: "{title}" ends in 10 minutes.'
    return f'Reminder: "{title}".'


def reminder_email(
    reminder_type: Union[ReminderType, str],
    booking: Optional[Booking],
    user: Optional[User],
    tz: ZoneInfo,
) -> Tuple[str, str, str]:
    """Subject, HTML and plain-text body for a reminder email."""
    headline = reminder_sms_text(reminder_type, booking)
    subject = f"Boardroom reminder: {_title(booking)}"

    greeting = f"Hello {user.name}," if user and user.name else "Hello,"
    lines = [greeting, "", headline]
    if booking:
        lines.append(
            f"When: {format_when(booking.start_at, tz)} - {format_when(booking.end_at, tz)}"
        )
        if booking.meeting_link:
            lines.append(f"Meeting link: {booking.meeting_link}")
    text = "\n".join(lines)
    html = "".join(f"<p>{escape(line)}</p>" for line in lines if line)
    return subject, f'<div style="font-family: Arial, sans-serif">{html}</div>', text


class Notifier:
    """Email and SMS delivery. Raises ``NotificationError`` on any failure."""

    def __init__(
        self,
        tz: ZoneInfo,
        smtp: Optional[SMTPClient] = None,
        sms: Optional[TwilioClient] = None,
    ):
        self.tz = tz
        self.smtp = smtp
        self.sms = sms

    @classmethod
    def from_config(cls, config: ServerConfig) -> "Notifier":
        smtp = SMTPClient(config.smtp) if config.smtp.configured else None
        sms = TwilioClient(config.twilio) if config.twilio.configured else None
        if not smtp:
            logger.warning("SMTP not configured; email notifications will fail")
        if not sms:
            logger.warning("Twilio not configured; SMS notifications will fail")
        return cls(config.tz, smtp=smtp, sms=sms)

    def send_email(self, to: str, subject: str, html: str, text: str) -> DeliveryResult:
        if not self.smtp:
            raise NotificationError("Email is not configured (SMTP_USER/SMTP_PASS)")
        message = self.smtp.build_message(to, subject, html, text)
        try:
            message_id = self.smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email to {to} failed: {e}")
            raise NotificationError(f"Email to {to} failed: {e}") from e
        return DeliveryResult(ok=True, provider_message_id=message_id)

    def close(self) -> None:
        # SMTP connections are per message; only the Twilio HTTP client persists
        if self.sms:
            self.sms.close()

    def send_sms(self, to: str, message: str) -> DeliveryResult:
        if not self.sms:
            raise NotificationError(
                "SMS is not configured (TWILIO_SID/TWILIO_AUTH_TOKEN/TWILIO_PHONE)"
            )
        try:
            result = self.sms.send(to, message)
        except TwilioError as e:
            logger.error(f"SMS to {to} failed: {e}")
            raise NotificationError(str(e)) from e
        return DeliveryResult(ok=True, provider_message_id=result.get("sid"))

    def send_reminder_email(
        self, reminder: Reminder, booking: Optional[Booking], user: User
    ) -> DeliveryResult:
        subject, html, text = reminder_email(reminder.type, booking, user, self.tz)
        return self.send_email(user.email or "", subject, html, text)

    def send_reminder_sms(
        self, reminder: Reminder, booking: Optional[Booking], user: User
    ) -> DeliveryResult:
        return self.send_sms(user.phone or "", reminder_sms_text(reminder.type, booking))

    def send_booking_confirmation(self, user: User, booking: Booking) -> List[str]:
        """Best-effort confirmation on every channel the user has.

        Never raises; failures come back as warnings.
        """
        warnings: List[str] = []
        if user.email:
            try:
                self.send_email(
                    user.email,
                    confirmation_subject(booking),
                    confirmation_html(user, booking, self.tz),
                    confirmation_text(user, booking, self.tz),
                )
            except NotificationError as e:
                logger.warning(f"Confirmation email for booking {booking.id} failed: {e}")
                warnings.append(f"Confirmation email not sent: {e}")
        if user.phone:
            try:
                self.send_sms(user.phone, confirmation_sms(booking, self.tz))
            except NotificationError as e:
                logger.warning(f"Confirmation SMS for booking {booking.id} failed: {e}")
                warnings.append(f"Confirmation SMS not sent: {e}")
        return warnings
