"""
Scheduling core

- Interval arithmetic (intervals.py)
- Work window for a calendar date (work_window.py)
- Free gaps and bookable slots (slots.py)
- Buffered conflict detection (conflicts.py)
- Reminder derivation and persistence (reminders.py)
- Reminder-type delivery channels (channels.py)
- Reminder dispatch tick (dispatch.py)
"""
