"""
Thinking Monitor
================

Real-time ingestion and aggregation engine for agent lifecycle events.
"""

__version__ = "0.1.0"
