"""
Date-check subsystem.

Components:
- date_conditions.py: pure overdue/completion predicates
- periodic.py: ticker shared by the schedulers
- date_scheduler.py: periodic task/project scan that records conditions
- reminder_scheduler.py: periodic scan that fires due task reminders
- confirmation.py: single-item confirmation workflow (open/resolve/close)
- events.py: in-process event bus for workflow events
"""
