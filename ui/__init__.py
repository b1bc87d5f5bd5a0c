# ui/__init__.py
"""PySide6 window, tray icon and theming."""
