"""
MongoDB-style query-document matching for the in-memory store.

Query documents are evaluated with `mongoquery`, which covers the comparison,
logical, element, evaluation and array operators over dotted paths. On top of
it a selector may be a Python predicate, `None` (match every record), or a
query document with a top-level `$where` predicate.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping

from mongoquery import Query, QueryError

from vdocs.errors import UnsupportedOperatorError
from vdocs.infrastructure.abstract import Selector

WHERE = "$where"


def compile_selector(selector: Selector) -> Callable[[Mapping[str, Any]], bool]:
    """Return a predicate equivalent to `selector`."""
    if selector is None:
        return lambda record: True
    if callable(selector):
        return lambda record: bool(selector(record))
    if isinstance(selector, Mapping):
        return _compile_document(selector)
    raise TypeError(f"Selector must be a predicate or a query document, got {type(selector).__name__}")


def _compile_document(query: Mapping[str, Any]) -> Callable[[Mapping[str, Any]], bool]:
    definition: Dict[str, Any] = dict(query)
    where = definition.pop(WHERE, None)
    if where is not None and not callable(where):
        raise UnsupportedOperatorError(f"{WHERE} (expects a callable)")
    compiled = Query(definition)

    def predicate(record: Mapping[str, Any]) -> bool:
        try:
            matched = compiled.match(record)
        except QueryError as exc:
            raise UnsupportedOperatorError(str(exc)) from exc
        return matched and (where is None or bool(where(record)))

    return predicate


def matches(query: Mapping[str, Any], record: Mapping[str, Any]) -> bool:
    """Evaluate a query document against one record."""
    return _compile_document(query)(record)


__all__ = ["compile_selector", "matches"]
