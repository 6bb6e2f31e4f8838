"""
Tracker subsystem.

Components:
- tracker_models.py: data structures (Task, Project, Reminder, statuses)
- tracker_store.py: SQLite-backed storage implementing EntityGateway
"""
