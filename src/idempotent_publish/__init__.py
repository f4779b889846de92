"""
Idempotent newsletter publishing.

This package makes the "publish a newsletter issue" action safe to retry:
the issue and its delivery queue are written at most once per
(caller, idempotency key), and every retry receives the byte-identical
response of the first execution.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
