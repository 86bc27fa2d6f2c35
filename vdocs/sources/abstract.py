"""
Source capability for vdocs.

A source is anything exposing `fetch(operation, selector)` and
`mutate(operations)`. Store-backed and model-backed adapters satisfy the
same capability, so a model can use another model wherever it uses a store
collection. Implement the `Source` protocol directly or subclass
`AbstractSource`.
"""

from __future__ import annotations

import abc
from typing import Any, List, Protocol, Sequence, TypedDict, runtime_checkable


class WriteOperation(TypedDict, total=False):
    """
    One write forwarded to a source.

    `name` is one of create, update, remove (delete is accepted as an alias).
    """

    name: str
    selector: Any
    data: Any


class DeletedEntry(TypedDict):
    """Records removed from one source while deleting a document."""

    source: str
    deleted: Any


@runtime_checkable
class Source(Protocol):
    """
    Common interface all sources must implement.

    Attributes
    ----------
    name : str
        A short identifier used in logs.
    """

    name: str

    async def fetch(self, operation: str, selector: Any) -> Any:
        """
        Fetch data for a query population.

        Parameters
        ----------
        operation : str
            `read` for a single value, `readMany` for a list.
        selector : Any
            Opaque selector produced by the population.
        """
        ...

    async def mutate(self, operations: Sequence[WriteOperation]) -> List[Any]:
        """Run writes in order and return results aligned with `operations`."""
        ...


class AbstractSource(abc.ABC):
    """
    Optional ABC helper for class-based sources.

    Subclasses set `name` and implement `fetch` and `_do_operation`;
    `mutate` runs operations one after another.
    """

    name: str

    @abc.abstractmethod
    async def fetch(self, operation: str, selector: Any) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def _do_operation(self, operation: WriteOperation) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    async def mutate(self, operations: Sequence[WriteOperation]) -> List[Any]:
        results: List[Any] = []
        for operation in operations:
            results.append(await self._do_operation(operation))
        return results


__all__ = [
    "WriteOperation",
    "DeletedEntry",
    "Source",
    "AbstractSource",
]
