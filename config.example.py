# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
See src/duecheck/config.py for parsing and defaults.
"""

ENV_VARS = {
    # App / logging
    "DUECHECK_APP_NAME": "App display name (default: duecheck).",
    "DUECHECK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Acting user
    "DUECHECK_USER_ID": "User the scans run for (default: local-user).",
    "DUECHECK_TEAM_ID": "Restrict project scans to one team (optional).",
    "DUECHECK_TEAM_IDS": "Comma/space separated team ids whose projects are also scanned.",
    # Calendar
    "DUECHECK_TIMEZONE": "IANA zone for whole-day dates and day offsets (default: UTC).",
    # Scan cadence
    "DUECHECK_SCAN_INTERVAL_SECONDS": "Date scan interval (default: 60).",
    "DUECHECK_REMINDER_INTERVAL_SECONDS": "Reminder scan interval (default: 60).",
    "DUECHECK_REMINDERS_ENABLED": "Run the reminder scheduler (true/false, default: true).",
    # Connectors
    "DUECHECK_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    # Paths (gitignored)
    "DUECHECK_DATA_DIR": "Local data directory, also holds duecheck.log (default: .local/duecheck).",
    "DUECHECK_TRACKER_DB_PATH": "Tracker SQLite path (default: <data_dir>/tracker.sqlite3).",
    "DUECHECK_NOTIFICATIONS_DB_PATH": (
        "Notification SQLite path (default: <data_dir>/notifications.sqlite3)."
    ),
}
