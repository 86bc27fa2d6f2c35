"""
Materialized documents.

A document is the projected result of one query execution. It remembers
the query and input that produced it so it can apply mutations, remove
itself, or be re-read.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from vdocs.errors import ErrorRecord, NotFoundError, RemovedDocumentError

if TYPE_CHECKING:
    from vdocs.model import Model
    from vdocs.query import QueryResult
    from vdocs.sources.abstract import DeletedEntry

_UNSET = object()


class Document:
    """
    A view over one logical document.

    Attributes
    ----------
    model : Model
        The model that produced the document.
    query : str
        Name of the query used for subsequent operations.
    is_new : bool
        True for a document returned by `Model.create` until `commit()`.
    changes : dict
        Per-source write results of the mutation that produced the document.
    """

    def __init__(
        self,
        model: "Model",
        query: str,
        result: "QueryResult",
        data: Any,
        is_new: bool = False,
        changes: Optional[Dict[str, List[Any]]] = None,
    ) -> None:
        self.model = model
        self.query = query
        self.result = result
        self._data = data
        self.is_new = is_new
        self.changes = changes or {}
        self.removed = False

    @property
    def data(self) -> Any:
        """Shallow copy of the projected data; None when a required source was empty."""
        if isinstance(self._data, dict):
            return dict(self._data)
        if isinstance(self._data, list):
            return list(self._data)
        return self._data

    @property
    def input(self) -> Any:
        return self.result.input

    @property
    def raw(self) -> Dict[str, Any]:
        return self.result.data

    @property
    def selectors(self) -> Dict[str, Any]:
        return self.result.selectors

    @property
    def found(self) -> bool:
        return self.result.missing is None

    def ensure_found(self) -> "Document":
        if not self.found:
            missing = self.result.missing
            raise NotFoundError(missing, self.result.get_selector(missing))
        return self

    def _check_live(self) -> None:
        if self.removed:
            raise RemovedDocumentError()

    async def mutate(
        self, patch: Union[Mapping[str, Any], str, Tuple[str, Any]], value: Any = _UNSET
    ) -> Tuple[Optional["Document"], Optional[ErrorRecord]]:
        """
        Apply a bulk patch (a mapping) or a named mutation.

        A named mutation is given as `mutate(name, value)` or
        `mutate((name, value))`.
        """
        self._check_live()
        raw = self.raw if self.found else None
        if isinstance(patch, tuple):
            patch, value = patch
        if isinstance(patch, str):
            if value is _UNSET:
                raise TypeError(f"Named mutation '{patch}' needs a value")
            return await self.model.named_mutate(patch, self.input, self.query, value, raw)
        return await self.model.mutate(self.input, self.query, patch, raw)

    async def remove(self) -> List["DeletedEntry"]:
        self._check_live()
        entries = await self.model.delete(self.input, self.query)
        self.removed = True
        return entries

    async def commit(self) -> "Document":
        """Re-read the document through the default query."""
        self._check_live()
        fresh = await self.model.query("default", self.input)
        self.is_new = False
        if isinstance(fresh, Document):
            fresh.is_new = False
        return fresh

    def __repr__(self) -> str:
        return f"Document(query={self.query!r}, input={self.input!r}, found={self.found}, removed={self.removed})"


__all__ = ["Document"]
