"""
Declarative records for vdocs.

Defines the immutable building blocks a model is assembled from: query
populations, mutation methods and plans, field descriptors, source bindings
and validation reports. Callers may register plain mappings; they are
coerced into these models at registration time, so malformed declarations
fail early with pydantic's ValidationError.
"""
from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

READ = "read"
READ_MANY = "readMany"
CREATE = "create"
UPDATE = "update"
REMOVE = "remove"
DELETE = "delete"

_FROZEN = {
    "frozen": True,
    "arbitrary_types_allowed": True,
}


def positional_arity(fn: Callable[..., Any]) -> Optional[int]:
    """
    Number of required positional parameters of `fn`.

    Parameters with a default do not count, so `datetime.now` has arity 0.
    Returns None when `fn` takes `*args` or its signature cannot be read.
    """
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return None
    if any(p.kind == p.VAR_POSITIONAL for p in params):
        return None
    return sum(
        1
        for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    )


class Population(BaseModel):
    """
    One entry of a query: how to fetch a source from previously fetched data.
    """

    name: str = Field(..., description="Name of the source being populated.")
    operation: Literal["read", "readMany", "update", "create", "remove"] = Field(
        READ, description="Fetch operation forwarded to the source."
    )
    require: Tuple[str, ...] = Field((), description="Populations fetched beforehand.")
    selector: Callable[[Dict[str, Any]], Any] = Field(
        ..., description="Maps the raw accumulator to an opaque selector."
    )

    model_config = _FROZEN


class MutationMethod(BaseModel):
    """
    A single step of a mutation plan.

    Data form: `data(value, raw)` produces the payload of one write whose
    selector comes from the default query population of `source`.
    Operations form: `operations(value, raw)` returns complete write
    operations `{name, selector?, data?}`; `result` reshapes their results.
    """

    source: str
    operation: Literal["update", "create", "delete"] = UPDATE
    data: Optional[Callable[..., Any]] = None
    operations: Optional[Callable[..., Any]] = None
    result: Optional[Callable[[List[Any]], Any]] = None

    model_config = _FROZEN

    @field_validator("operation", mode="before")
    @classmethod
    def _normalize_operation(cls, value: Any) -> Any:
        return DELETE if value == REMOVE else value

    @model_validator(mode="after")
    def _check_form(self) -> "MutationMethod":
        if (self.data is None) == (self.operations is None):
            raise ValueError(
                f"Mutation method for source '{self.source}' needs exactly one of "
                "'data' or 'operations'"
            )
        return self


class MutationPlan(BaseModel):
    """Ordered methods plus the runtime schema their input must satisfy."""

    methods: Tuple[MutationMethod, ...] = ()
    input_schema: Optional[Any] = Field(None, description="Runtime schema for the input value.")

    model_config = _FROZEN

    @classmethod
    def build(cls, methods: Any, schema: Optional[Any] = None) -> "MutationPlan":
        """Accept one method or a sequence of methods (mappings or models)."""
        if methods is None:
            methods = []
        elif isinstance(methods, (dict, MutationMethod)):
            methods = [methods]
        coerced = [
            m if isinstance(m, MutationMethod) else MutationMethod(**m) for m in methods
        ]
        return cls(methods=tuple(coerced), input_schema=schema)

    def sources(self) -> List[str]:
        seen: List[str] = []
        for method in self.methods:
            if method.source not in seen:
                seen.append(method.source)
        return seen


class FieldDescriptor(BaseModel):
    """
    Declarative description of one field of the logical document.
    """

    type: Any = Field(None, description="Type descriptor (tag, Python type or nested form).")
    required: bool = False
    data: Optional[Callable[[Dict[str, Any]], Any]] = None
    mutation: Any = Field(None, description="Mutation declaration or name of a mutation.")
    default: Any = None
    modify: Optional[bool] = None
    meta: Optional[Dict[str, Any]] = None

    model_config = _FROZEN

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    @property
    def declares_mutation(self) -> bool:
        return self.mutation is not None

    def resolve_default(self, payload: Any = None) -> Any:
        """Return the default, calling a producer with the input when it requires one."""
        value = self.default
        if not callable(value):
            return value
        return value(payload) if positional_arity(value) else value()


class SourceBinding(BaseModel):
    """A named source registered on a model."""

    name: str
    source: Any
    required: bool = True
    many: bool = False
    bound: bool = False

    model_config = _FROZEN


class ValidationIssue(BaseModel):
    """A single validator finding."""

    reason: str = Field(..., description="Failed rule, e.g. 'optional', 'type', 'pattern'.")
    property: str = Field(..., description="Path from the root, e.g. '@.name.first'.")
    message: str

    model_config = {"frozen": True}


class ValidationReport(BaseModel):
    """Outcome of validating a value against a runtime schema."""

    valid: bool
    error: List[ValidationIssue] = Field(default_factory=list)

    model_config = {"frozen": True}

    def format(self) -> str:
        return "; ".join(f"{issue.property} {issue.message}" for issue in self.error)


__all__ = [
    "READ",
    "READ_MANY",
    "CREATE",
    "UPDATE",
    "REMOVE",
    "DELETE",
    "Population",
    "MutationMethod",
    "MutationPlan",
    "FieldDescriptor",
    "SourceBinding",
    "ValidationIssue",
    "ValidationReport",
    "positional_arity",
]
