"""
Thinking Monitor - Core Package
===============================

Configuration, schemas and the monitor engine.
"""

from thinking_monitor.core.config import settings

__all__ = ["settings"]
