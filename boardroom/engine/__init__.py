from boardroom.engine.database import MemoryDatabase, PostgresDatabase, create_database
from boardroom.engine.reminder_worker import ReminderWorker

__all__ = [
    "MemoryDatabase",
    "PostgresDatabase",
    "create_database",
    "ReminderWorker",
]
