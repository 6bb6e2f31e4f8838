"""
Connectors.

Components:
- console_connector.py: async console REPL + console end date editor
"""
