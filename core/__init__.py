# core/__init__.py
"""Identity subsystem: cache, resolvers, toggle flow and control endpoint."""
