"""Meeting-room booking engine: free slots, buffered conflicts and reminders."""

__version__ = "0.1.0"
