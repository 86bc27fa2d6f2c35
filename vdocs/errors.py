"""
Error taxonomy for the vdocs engine.

Structural problems (unknown names, cycles, missing plans) are raised.
Rejected input (validation, immutable fields) is returned to the caller as
an `ErrorRecord` in the second slot of a `(document, error)` tuple.
"""

from __future__ import annotations

import graphlib
from dataclasses import dataclass
from typing import Any, Optional, Sequence


class ModelError(Exception):
    """Base class for every error raised or returned by the engine."""


class StructuralError(ModelError):
    """A model, query or mutation plan references something that does not exist."""


class CycleError(StructuralError, graphlib.CycleError):
    """Query populations form a cycle through their `require` edges."""

    def __init__(self, members: Sequence[str]) -> None:
        self.members = list(members)
        super().__init__(
            "Cannot fetch a query with circular requires: " + " -> ".join(self.members)
        )


class ValidationError(ModelError):
    """Input failed a mutation or initializer schema."""

    def __init__(self, report: Any = None, message: str = "Invalid") -> None:
        super().__init__(message)
        self.report = report


class ImmutableFieldError(ModelError):
    """A named mutation targeted a field that cannot be modified."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Property '{field}' cannot be modified")
        self.field = field


class RemovedDocumentError(ModelError):
    """The document was removed and can no longer be mutated or removed."""

    def __init__(self) -> None:
        super().__init__("Cannot operate on a removed document")


class NotFoundError(ModelError):
    """A required source returned no data."""

    def __init__(self, source: str, selector: Any = None) -> None:
        super().__init__(f"Required source '{source}' returned no data")
        self.source = source
        self.selector = selector


class StoreError(ModelError):
    """Base class for errors raised by a store implementation."""


class UnsupportedOperatorError(StoreError):
    """A query document used an operator the matcher does not implement."""

    def __init__(self, operator: str) -> None:
        super().__init__(f"Unsupported query operator '{operator}'")
        self.operator = operator


@dataclass
class ErrorRecord:
    """
    Error returned alongside a missing document.

    `data` holds the validator report for `ValidationError`, otherwise None.
    """

    err: ModelError
    data: Optional[Any] = None


__all__ = [
    "ModelError",
    "StructuralError",
    "CycleError",
    "ValidationError",
    "ImmutableFieldError",
    "RemovedDocumentError",
    "NotFoundError",
    "StoreError",
    "UnsupportedOperatorError",
    "ErrorRecord",
]
