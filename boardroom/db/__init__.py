from boardroom.db.types import DatabaseInterface, DuplicateRoomError

__all__ = ["DatabaseInterface", "DuplicateRoomError"]
