"""
vdocs - composable virtual documents over record stores.

A model describes one logical document assembled from several sources:

- Sources: collections of a record store, or other models
- Queries: dependency-ordered populations that fetch each source
- Mutations: per-field write plans, grouped into one write per source
- Validation: declarative type descriptors checked before any write

Documents expose the projected data and carry enough context to mutate,
remove, or re-read themselves.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from vdocs.config import Settings, get_settings
from vdocs.document import Document
from vdocs.errors import (
    CycleError,
    ErrorRecord,
    ImmutableFieldError,
    ModelError,
    NotFoundError,
    RemovedDocumentError,
    StoreError,
    StructuralError,
    UnsupportedOperatorError,
    ValidationError,
)
from vdocs.infrastructure.memory_store import MemoryStore
from vdocs.model import Model
from vdocs.query import Query, QueryResult
from vdocs.sources import ModelSource, Source, StoreSource
from vdocs.utils.logging import configure_logging, get_logger
from vdocs.validator import Primitive, parse_type, register_type, validate

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Engine
    "Model",
    "Query",
    "QueryResult",
    "Document",
    # Sources and stores
    "Source",
    "StoreSource",
    "ModelSource",
    "MemoryStore",
    # Validation
    "Primitive",
    "parse_type",
    "register_type",
    "validate",
    # Errors
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
    # Logging
    "configure_logging",
    "get_logger",
]
