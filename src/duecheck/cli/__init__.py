"""
Console frontend.

Components:
- bootstrap.py: builds AppState from Settings
- commands.py: slash command registry
- main.py: entrypoint (`duecheck` script)
"""
