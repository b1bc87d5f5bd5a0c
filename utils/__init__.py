# utils/__init__.py
"""Port checks, single instance lock and remote control helpers."""
