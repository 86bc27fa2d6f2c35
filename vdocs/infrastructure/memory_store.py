"""
In-memory record store for vdocs.

Keeps each collection as an ordered list of dict records. Updates replace a
matching record with a new dict, so records handed out earlier are never
modified in place. The store imposes no locking; concurrent callers may
observe interleaved writes.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from vdocs.config import get_settings
from vdocs.infrastructure.abstract import AbstractRecordStore, Record, Selector
from vdocs.infrastructure.matcher import compile_selector
from vdocs.utils.logging import get_logger

log = get_logger(__name__)

PUSH = "$push"


class MemoryStore(AbstractRecordStore):
    """
    Associative storage of record collections held in process memory.

    Example
    -------
        store = MemoryStore({"posts": [{"id": 1, "title": "Post 1"}]})
        await store.read("posts", {"id": 1})
    """

    def __init__(
        self,
        init_data: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None,
        key_field: Optional[str] = None,
    ) -> None:
        self.key_field = key_field or get_settings().key_field
        self._data: Dict[str, List[Record]] = {
            name: [dict(record) for record in records]
            for name, records in (init_data or {}).items()
        }

    @property
    def data(self) -> Dict[str, List[Record]]:
        """Snapshot of every collection."""
        return {name: list(records) for name, records in self._data.items()}

    def collection(self, name: str) -> List[Record]:
        """Snapshot of one collection; empty when it does not exist."""
        return list(self._data.get(name, []))

    @staticmethod
    def new_key() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def is_key_value(value: Any) -> bool:
        """Whether `value` looks like a key generated by this store."""
        if not isinstance(value, str):
            return False
        try:
            return uuid.UUID(value).version == 4
        except ValueError:
            return False

    async def create(self, collection: str, data: Union[Record, List[Record]]) -> Any:
        items = data if isinstance(data, list) else [data]
        created = [{self.key_field: self.new_key(), **item} for item in items]
        self._data.setdefault(collection, []).extend(created)
        log.debug(
            "Records created",
            extra={"collection": collection, "count": len(created)},
        )
        return created if isinstance(data, list) else created[0]

    async def read(self, collection: str, selector: Selector) -> List[Record]:
        if collection not in self._data:
            return []
        predicate = compile_selector(selector)
        return [record for record in self._data[collection] if predicate(record)]

    async def update(self, collection: str, selector: Selector, patch: Mapping[str, Any]) -> List[Record]:
        predicate = compile_selector(selector)
        updated: List[Record] = []
        records: List[Record] = []
        for record in self._data.get(collection, []):
            if predicate(record):
                record = _apply_patch(record, patch)
                updated.append(record)
            records.append(record)
        if collection in self._data:
            self._data[collection] = records
        log.debug(
            "Records updated",
            extra={"collection": collection, "count": len(updated)},
        )
        return updated

    async def delete(self, collection: str, selector: Selector) -> List[Record]:
        predicate = compile_selector(selector)
        deleted: List[Record] = []
        kept: List[Record] = []
        for record in self._data.get(collection, []):
            (deleted if predicate(record) else kept).append(record)
        if collection in self._data:
            self._data[collection] = kept
        log.debug(
            "Records deleted",
            extra={"collection": collection, "count": len(deleted)},
        )
        return deleted


def _apply_patch(record: Record, patch: Mapping[str, Any]) -> Record:
    """Shallow field-wise assignment plus `$push` appends."""
    result = dict(record)
    for key, value in patch.items():
        if key != PUSH:
            result[key] = value
            continue
        for field, pushed in value.items():
            current = result.get(field)
            additions = list(pushed) if isinstance(pushed, list) else [pushed]
            result[field] = (list(current) if isinstance(current, list) else []) + additions
    return result


__all__ = ["MemoryStore"]
