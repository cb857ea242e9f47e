"""
Backend package initializer.

Exposes the application source tree (backend/src) as a Python package so the
terminal client and tests can import modules via the ``backend.src`` namespace.
"""

__all__ = ["src", "portfolio_groups"]
