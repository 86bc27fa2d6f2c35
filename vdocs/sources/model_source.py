"""
Model-backed source adapter.

Lets one model be used as a source of another. Reads run the inner model's
query and hand back projected data; writes go through the inner model's
create, mutate and delete pipelines. An error record returned by the inner
model is raised here so the outer model sees it at the source boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List

from vdocs.domain.models import CREATE, DELETE, READ, READ_MANY, REMOVE, UPDATE
from vdocs.errors import StructuralError
from vdocs.sources.abstract import AbstractSource, WriteOperation

if TYPE_CHECKING:
    from vdocs.model import Model


class ModelSource(AbstractSource):
    """Expose `model` through the source capability using query `query`."""

    def __init__(self, model: "Model", query: str = "default", name: str = "model") -> None:
        self.model = model
        self.query = query
        self.name = name

    async def fetch(self, operation: str, selector: Any) -> Any:
        if operation not in (READ, READ_MANY):
            raise StructuralError(f"Source '{self.name}' cannot fetch with operation '{operation}'")
        found = await self.model.query(self.query, selector)
        if isinstance(found, list):
            return [doc.data for doc in found if doc.found]
        if not found.found:
            return [] if operation == READ_MANY else None
        return [found.data] if operation == READ_MANY else found.data

    async def _do_operation(self, operation: WriteOperation) -> Any:
        name = operation.get("name")
        if name == CREATE:
            doc, error = await self.model.create(operation.get("data"))
            if error is not None:
                raise error.err
            return doc.data
        if name == UPDATE:
            doc = await self.model.query(self.query, operation.get("selector"))
            if isinstance(doc, list):
                raise StructuralError(f"Source '{self.name}' cannot update through a multi-document query")
            updated, error = await doc.mutate(operation.get("data") or {})
            if error is not None:
                raise error.err
            return updated.data
        if name in (REMOVE, DELETE):
            return await self.model.delete(operation.get("selector"), self.query)
        raise StructuralError(f"Source '{self.name}' does not support operation '{name}'")


__all__ = ["ModelSource"]
