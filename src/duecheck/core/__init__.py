"""
Core wiring.

Components:
- ports.py: Protocols the checks depend on (gateway, notification repo, editor)
- state.py: AppState container assembled by cli/bootstrap.py
"""
