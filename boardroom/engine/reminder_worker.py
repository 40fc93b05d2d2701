import logging
import os
import sys
import threading
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from croniter import croniter

from boardroom.config import load_config
from boardroom.engine.database import create_database
from boardroom.notifications import Notifier
from boardroom.scheduling.dispatch import ReminderDispatcher

logger = logging.getLogger(__name__)


class ReminderWorker:
    """Fires dispatch ticks on a cron schedule evaluated in the business timezone."""

    def __init__(self, dispatcher: ReminderDispatcher, schedule: str, tz: ZoneInfo):
        self.dispatcher = dispatcher
        self.schedule = schedule
        self.tz = tz
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def next_fire_time(self, after: Optional[datetime] = None) -> datetime:
        base = after or datetime.now(self.tz)
        return croniter(self.schedule, base.astimezone(self.tz)).get_next(datetime)

    def run(self):
        logger.info(f"Reminder worker started ({self.schedule}) TZ={self.tz}")

        while not self._stop.is_set():
            fire_at = self.next_fire_time()
            delay = (fire_at - datetime.now(self.tz)).total_seconds()
            if self._stop.wait(max(delay, 0)):
                break
            # tick() logs and contains its own errors
            self.dispatcher.tick()

        logger.info("Reminder worker stopped")

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run, name="reminder-worker", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float = 10.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)

    config = load_config(os.environ.get("CONFIG_PATH"))
    db = create_database(config.database)
    db.initialize()
    logger.info(f"Database initialized: {config.database.backend.value}")

    notifier = Notifier.from_config(config)
    dispatcher = ReminderDispatcher(db, notifier, config.reminders)
    worker = ReminderWorker(dispatcher, config.reminders.schedule, config.tz)

    try:
        worker.run()
    except KeyboardInterrupt:
        logger.info("Shutting down reminder worker...")
        worker.stop()
    finally:
        notifier.close()
        db.close()
        logger.info("Reminder worker shutdown complete")


if __name__ == "__main__":
    main()
