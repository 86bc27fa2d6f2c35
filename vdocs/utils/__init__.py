"""
Utilities package for vdocs.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of engine logic.
"""

from vdocs.utils.logging import JsonFormatter, configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
    "JsonFormatter",
]
