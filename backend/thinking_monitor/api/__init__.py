"""
Thinking Monitor - API Package
==============================

HTTP and WebSocket transport over the monitor engine.
"""
