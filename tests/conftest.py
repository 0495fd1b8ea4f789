"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings.
"""
import os

# In-memory SQLite for the module-level engine; tests build their own engines per case
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__DEFAULT_PROVIDER", "sandbox")
