"""
Notification subsystem.

Components:
- notification_models.py: data structures (Notification, NotificationDraft, CheckType)
- notification_prefs.py: category + per-type preference filter
- notification_ledger.py: recipient resolution, de-duplicated creation, watermark writes
- notification_store.py: SQLite-backed storage implementing NotificationRepo
"""
