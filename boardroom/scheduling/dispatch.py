"""
Reminder dispatch tick

One tick fetches a bounded batch of due reminders, delivers each on the
channels its type calls for, and records SENT or FAILED. Ticks never overlap:
a tick that finds another one running is skipped.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from boardroom.config import ReminderConfig
from boardroom.db.types import DatabaseInterface
from boardroom.models import Booking, Reminder, User
from boardroom.notifications import DeliveryResult, Notifier
from boardroom.scheduling.channels import Channel, channels_for
from boardroom.scheduling.reminders import ReminderScheduler

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TickResult:
    started_at: datetime
    skipped: bool = False
    due: int = 0
    sent: int = 0
    failed: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "skipped": self.skipped,
            "due": self.due,
            "sent": self.sent,
            "failed": self.failed,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class _Outcome:
    ok: bool
    meta: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def _describe_booking(booking: Optional[Booking]) -> str:
    if not booking:
        return "booking missing"
    return f"{booking.display_title} | {booking.start_at.isoformat()} - {booking.end_at.isoformat()}"


class ReminderDispatcher:
    """Runs dispatch ticks. Owns the guard that keeps ticks from overlapping."""

    def __init__(
        self,
        db: DatabaseInterface,
        notifier: Notifier,
        config: ReminderConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.notifier = notifier
        self.config = config
        self.scheduler = ReminderScheduler(db)
        self.clock = clock
        self.last_tick: Optional[TickResult] = None
        self._guard = threading.Lock()

    @property
    def running(self) -> bool:
        return self._guard.locked()

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        now = now or self.clock()

        if not self._guard.acquire(blocking=False):
            logger.warning("Reminder tick skipped: previous run still in progress")
            return TickResult(started_at=now, skipped=True)

        started = time.monotonic()
        result = TickResult(started_at=now)
        try:
            logger.info(f"Reminder tick {now.isoformat()}")
            due = self.scheduler.fetch_due(now, self.config.batch_size)
            result.due = len(due)
            logger.info(f"Due reminders: {len(due)}")

            for reminder in due:
                if self._process(reminder):
                    result.sent += 1
                else:
                    result.failed += 1
        except Exception as e:
            logger.exception(f"Reminder tick error: {e}")
            result.error = str(e)
        finally:
            result.duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"Reminder tick done in {result.duration_ms}ms")
            self._guard.release()

        self.last_tick = result
        return result

    def _process(self, reminder: Reminder) -> bool:
        """Deliver one reminder and record the outcome. Never raises."""
        try:
            booking = self.db.get_booking(reminder.booking_id)
            user = self.db.get_user(reminder.user_id)
            if not user:
                logger.warning(
                    f"Reminder {reminder.id}: user {reminder.user_id} not found"
                )
            if not booking:
                logger.warning(
                    f"Reminder {reminder.id}: booking {reminder.booking_id} not found"
                )

            who = user.describe() if user else "unknown user"
            logger.info(
                f"[REMINDER] {reminder.type_name} | {who} | {_describe_booking(booking)}"
            )

            outcome = self._deliver(reminder, booking, user)
        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"Reminder {reminder.id} failed: {error}")
            self._record_failure(reminder, error, {})
            return False

        if outcome.ok:
            try:
                recorded = self.db.mark_reminder_sent(
                    reminder.id, self.clock(), outcome.meta
                )
            except Exception:
                logger.exception(f"Reminder {reminder.id} delivered but not marked sent")
                return True
            if recorded:
                logger.info(f"Reminder {reminder.id} sent")
            else:
                logger.info(f"Reminder {reminder.id} no longer pending; left unchanged")
            return True

        logger.warning(f"Reminder {reminder.id} failed: {outcome.error}")
        self._record_failure(reminder, outcome.error or "Send failed", outcome.meta)
        return False

    def _record_failure(
        self, reminder: Reminder, error: str, meta: Dict[str, Any]
    ) -> None:
        try:
            self.db.mark_reminder_failed(reminder.id, self.clock(), error, meta)
        except Exception:
            logger.exception(f"Could not record failure of reminder {reminder.id}")

    def _deliver(
        self, reminder: Reminder, booking: Optional[Booking], user: Optional[User]
    ) -> _Outcome:
        channels = channels_for(reminder.type, self.config)
        results: Dict[Channel, DeliveryResult] = {}

        # A channel is only attempted when the user has an address for it
        if user and user.email and Channel.EMAIL in channels:
            results[Channel.EMAIL] = self.notifier.send_reminder_email(
                reminder, booking, user
            )
        if user and user.phone and Channel.SMS in channels:
            results[Channel.SMS] = self.notifier.send_reminder_sms(
                reminder, booking, user
            )

        meta: Dict[str, Any] = {
            "email_message_id": _message_id(results.get(Channel.EMAIL)),
            "sms_message_id": _message_id(results.get(Channel.SMS)),
        }
        if not results:
            logger.warning(
                f"Reminder {reminder.id}: no contact details for "
                f"{', '.join(sorted(c.value for c in channels))}; nothing sent"
            )
            meta["channels_attempted"] = []
            return _Outcome(ok=True, meta=meta)

        meta["channels_attempted"] = sorted(c.value for c in results)
        failures = [r.error or "Send failed" for r in results.values() if not r.ok]
        if failures:
            return _Outcome(ok=False, meta=meta, error="; ".join(failures))
        return _Outcome(ok=True, meta=meta)


def _message_id(result: Optional[DeliveryResult]) -> Optional[str]:
    return result.provider_message_id if result else None
