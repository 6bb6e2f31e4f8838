"""
duecheck: date-check and reminder service for a task/project tracker.

Subpackages:
- tracker/: task/project models and the SQLite tracker store
- notifications/: notification models, preference filter, ledger and store
- checks/: condition evaluator, periodic scanners, confirmation workflow
- cli/: console entrypoint and slash commands
"""
