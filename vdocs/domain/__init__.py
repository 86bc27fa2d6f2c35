"""
Domain package for vdocs.

Exports the declarative records models, queries and mutation plans are built
from. Keep this package focused on data definitions and validation concerns.
"""

from vdocs.domain.models import (
    CREATE,
    DELETE,
    READ,
    READ_MANY,
    REMOVE,
    UPDATE,
    FieldDescriptor,
    MutationMethod,
    MutationPlan,
    Population,
    SourceBinding,
    ValidationIssue,
    ValidationReport,
)

__all__ = [
    "CREATE",
    "DELETE",
    "READ",
    "READ_MANY",
    "REMOVE",
    "UPDATE",
    "FieldDescriptor",
    "MutationMethod",
    "MutationPlan",
    "Population",
    "SourceBinding",
    "ValidationIssue",
    "ValidationReport",
]
