"""
Store contract for vdocs.

A store is associative storage of record collections. Concrete stores (the
in-memory store shipped here, or any durable backend) implement the
`RecordStore` protocol; the `AbstractRecordStore` ABC is an optional helper
for class-based implementations.
"""

from __future__ import annotations

import abc
from typing import Any, Callable, Dict, List, Mapping, Protocol, Union, runtime_checkable

Record = Dict[str, Any]
Selector = Union[None, Callable[[Mapping[str, Any]], bool], Mapping[str, Any]]


@runtime_checkable
class RecordStore(Protocol):
    """
    Common interface all stores must implement.

    Every method is a coroutine; selectors are either predicates over a
    record or MongoDB-style query documents.
    """

    async def create(self, collection: str, data: Union[Record, List[Record]]) -> Any:
        """Insert one record or a list of records, assigning missing keys."""
        ...

    async def read(self, collection: str, selector: Selector) -> List[Record]:
        """Return every record matching `selector`, in collection order."""
        ...

    async def update(self, collection: str, selector: Selector, patch: Mapping[str, Any]) -> List[Record]:
        """Apply `patch` to every matching record and return the updated records."""
        ...

    async def delete(self, collection: str, selector: Selector) -> List[Record]:
        """Remove every matching record and return the removed records."""
        ...


class AbstractRecordStore(abc.ABC):
    """
    Optional ABC helper for class-based stores.
    """

    @abc.abstractmethod
    async def create(self, collection: str, data: Union[Record, List[Record]]) -> Any:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def read(self, collection: str, selector: Selector) -> List[Record]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def update(self, collection: str, selector: Selector, patch: Mapping[str, Any]) -> List[Record]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, collection: str, selector: Selector) -> List[Record]:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "Record",
    "Selector",
    "RecordStore",
    "AbstractRecordStore",
]
