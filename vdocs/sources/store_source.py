"""
Store-backed source adapter.

Binds a logical source to one collection of a record store. Transient store
failures (connection, timeout, OS errors) are retried with tenacity when
`store_retry_attempts` is above one; the final error propagates unchanged.
"""

from __future__ import annotations

from typing import Any, List, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from vdocs.config import get_settings
from vdocs.domain.models import CREATE, DELETE, READ, READ_MANY, REMOVE, UPDATE
from vdocs.errors import StructuralError
from vdocs.infrastructure.abstract import RecordStore
from vdocs.sources.abstract import AbstractSource, WriteOperation
from vdocs.utils.logging import get_logger

log = get_logger(__name__)

_TRANSIENT_ERRORS = (ConnectionError, TimeoutError, OSError)


class StoreSource(AbstractSource):
    """
    Read and write records of one store collection.

    `read` returns the first matching record (or None); `readMany` returns
    every matching record.
    """

    def __init__(
        self,
        store: RecordStore,
        collection: str,
        retry_attempts: Optional[int] = None,
        retry_wait_max: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.collection = collection
        self.name = collection
        self.retry_attempts = retry_attempts or settings.store_retry_attempts
        self.retry_wait_max = (
            settings.store_retry_wait_max if retry_wait_max is None else retry_wait_max
        )

    async def _call(self, method: str, *args: Any) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0, max=self.retry_wait_max),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    log.warning(
                        f"Retrying store {method}",
                        extra={
                            "collection": self.collection,
                            "attempt": attempt.retry_state.attempt_number,
                        },
                    )
                return await getattr(self.store, method)(self.collection, *args)

    async def fetch(self, operation: str, selector: Any) -> Any:
        if operation == READ_MANY:
            return await self._call("read", selector)
        if operation == READ:
            records = await self._call("read", selector)
            return records[0] if records else None
        raise StructuralError(f"Source '{self.name}' cannot fetch with operation '{operation}'")

    async def _do_operation(self, operation: WriteOperation) -> Any:
        name = operation.get("name")
        selector = operation.get("selector")
        if name == CREATE:
            return await self._call("create", operation.get("data"))
        if name == UPDATE:
            return await self._call("update", selector, operation.get("data") or {})
        if name in (REMOVE, DELETE):
            return await self._call("delete", selector)
        raise StructuralError(f"Source '{self.name}' does not support operation '{name}'")

    async def mutate(self, operations: List[WriteOperation]) -> List[Any]:  # type: ignore[override]
        results = await super().mutate(operations)
        log.debug(
            "Source mutated",
            extra={"collection": self.collection, "operations": [op.get("name") for op in operations]},
        )
        return results


__all__ = ["StoreSource"]
