"""A thread-safe mempool ordering transactions by application-assigned priority."""

__version__ = "0.1.0"

__all__ = ["__version__"]