"""
Query engine for vdocs.

A query is a set of populations, each naming a source, the fetch operation,
the populations it requires and a selector built from the data fetched so
far. Execution resolves populations in dependency order (ties broken by
declaration order), fans out sequence selectors and collects everything into
a raw accumulator keyed by source name.

Usage:
    query = (
        Query()
        .set_input_constructor(lambda raw: raw["post"]["id"])
        .add_population(name="post", selector=lambda raw: {"id": raw["input"]})
        .add_population(
            name="author",
            require=["post"],
            selector=lambda raw: {"id": raw["post"]["author"]},
        )
    )
    result = await query.exec(model, 1)
"""

from __future__ import annotations

import asyncio
import graphlib
import heapq
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from vdocs.config import get_settings
from vdocs.domain.models import READ, READ_MANY, Population
from vdocs.errors import CycleError, StructuralError
from vdocs.utils.logging import get_logger

if TYPE_CHECKING:
    from vdocs.model import Model

log = get_logger(__name__)

Raw = Dict[str, Any]


def _default_input_constructor(raw: Mapping[str, Any]) -> Any:
    return raw.get("input")


class QueryResult:
    """Input, per-source selectors and raw data collected by one execution."""

    def __init__(
        self,
        input: Any,
        selectors: Mapping[str, Any],
        data: Mapping[str, Any],
        missing: Optional[str] = None,
    ) -> None:
        self.input = input
        self._selectors = dict(selectors)
        self._data = dict(data)
        self.missing = missing

    @property
    def data(self) -> Raw:
        return dict(self._data)

    @property
    def selectors(self) -> Dict[str, Any]:
        return dict(self._selectors)

    def get_selector(self, source: str) -> Any:
        return self._selectors.get(source)

    def __repr__(self) -> str:
        return f"QueryResult(input={self.input!r}, sources={list(self._selectors)!r}, missing={self.missing!r})"


class Query:
    """
    Ordered populations plus the functions that map raw data back to input.

    Parameters
    ----------
    multi : bool
        Mark the query as producing several documents. A multi query needs a
        document mapping (see `map_document`) before it is executed.
    """

    def __init__(self, multi: bool = False) -> None:
        self.multi = multi
        self._populations: Dict[str, Population] = {}
        self._order: Optional[List[str]] = None
        self.input_constructor: Callable[[Mapping[str, Any]], Any] = _default_input_constructor
        self.input_mapper: Optional[Callable[[Any], Mapping[str, Any]]] = None
        self.document_mapping: Optional[Callable[[Raw], Any]] = None

    @classmethod
    def create(cls, multi: bool = False) -> "Query":
        return cls(multi=multi)

    def copy(self) -> "Query":
        """Shallow copy sharing the (immutable) populations."""
        query = Query(multi=self.multi)
        query.input_constructor = self.input_constructor
        query.input_mapper = self.input_mapper
        query.document_mapping = self.document_mapping
        for population in self._populations.values():
            query.add_population(population)
        return query

    # ---------------------------------------------------------------- builders

    def add_population(self, population: Union[Population, Mapping[str, Any], None] = None, **kwargs: Any) -> "Query":
        if population is None:
            population = Population(**kwargs)
        elif not isinstance(population, Population):
            population = Population(**{**population, **kwargs})
        self._populations[population.name] = population
        self._order = None
        return self

    def set_input_constructor(self, constructor: Callable[[Mapping[str, Any]], Any]) -> "Query":
        self.input_constructor = constructor
        return self

    def map_input(self, mapper: Callable[[Any], Mapping[str, Any]]) -> "Query":
        """Register `input -> mapping` whose entries seed the raw accumulator."""
        self.input_mapper = mapper
        return self

    def map_document(self, mapping: Callable[[Raw], Any]) -> "Query":
        """Split the raw accumulator into one raw mapping per document."""
        self.document_mapping = mapping
        self.multi = True
        return self

    # ----------------------------------------------------------------- lookups

    @property
    def populations(self) -> List[Population]:
        return list(self._populations.values())

    def population(self, name: str) -> Optional[Population]:
        return self._populations.get(name)

    def sorted_names(self) -> List[str]:
        """
        Population names in dependency order.

        Raises
        ------
        StructuralError
            A population requires a name that is not declared on this query.
        CycleError
            The `require` edges form a cycle.
        """
        if self._order is not None:
            return list(self._order)

        graph: Dict[str, List[str]] = {}
        for name, population in self._populations.items():
            for required in population.require:
                if required not in self._populations:
                    raise StructuralError(
                        f"Population '{name}' requires undeclared population '{required}'"
                    )
            graph[name] = list(population.require)

        sorter = graphlib.TopologicalSorter(graph)
        try:
            sorter.prepare()
        except graphlib.CycleError as exc:
            raise CycleError(exc.args[1]) from exc

        index = {name: position for position, name in enumerate(self._populations)}
        ready: List[tuple] = []
        order: List[str] = []
        while sorter.is_active():
            for name in sorter.get_ready():
                heapq.heappush(ready, (index[name], name))
            _, name = heapq.heappop(ready)
            order.append(name)
            sorter.done(name)

        self._order = order
        return list(order)

    def get_selectors(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        """Evaluate the selectors whose required populations are present in `raw`."""
        return {
            population.name: population.selector(raw)
            for population in self._populations.values()
            if all(required in raw for required in population.require)
        }

    def create_result(self, selectors: Mapping[str, Any], raw: Mapping[str, Any]) -> QueryResult:
        return QueryResult(self.input_constructor(raw), selectors, raw)

    # --------------------------------------------------------------- execution

    async def fetch_source(self, model: "Model", name: str, raw: Mapping[str, Any]) -> Tuple[Any, Any]:
        """Resolve one population against `raw`; returns `(selector, value)`."""
        population = self._populations.get(name)
        if population is None:
            raise StructuralError(f"Query has no population for source '{name}'")
        binding = model.get_source(name)
        operation = population.operation
        if binding.many and operation == READ:
            operation = READ_MANY

        selector = population.selector(raw)
        log.debug("Fetching population", extra={"source": name, "operation": operation})
        if isinstance(selector, list):
            value = await self._fan_out(binding.source, operation, selector)
        else:
            value = await binding.source.fetch(operation, selector)
        return selector, value

    async def exec(self, model: "Model", input: Any) -> Union[QueryResult, List[QueryResult]]:
        """
        Fetch every population for `input`.

        Returns a single `QueryResult`, or one per document for a multi query.
        When a required source comes back empty, execution stops and the
        result's `missing` names that source.
        """
        order = self.sorted_names()
        bindings = {name: model.get_source(name) for name in order}

        raw: Raw = {"input": input}
        if self.input_mapper is not None:
            raw.update(self.input_mapper(input))
        selectors: Dict[str, Any] = {}

        for name in order:
            selectors[name], raw[name] = await self.fetch_source(model, name, raw)
            if bindings[name].required and raw[name] is None:
                log.warning("Required source returned no data", extra={"source": name})
                if self.multi:
                    return []
                return QueryResult(input, selectors, raw, missing=name)

        if self.multi:
            return self._split(model, raw)
        return QueryResult(input, selectors, raw)

    async def _fan_out(self, source: Any, operation: str, selector: List[Any]) -> List[Any]:
        log.debug(
            "Fanning out selector",
            extra={"source": getattr(source, "name", None), "count": len(selector)},
        )
        if get_settings().fanout_concurrency:
            return list(await asyncio.gather(*(source.fetch(operation, item) for item in selector)))
        results = []
        for item in selector:
            results.append(await source.fetch(operation, item))
        return results

    def _split(self, model: "Model", raw: Raw) -> List[QueryResult]:
        if self.document_mapping is None:
            raise StructuralError("Multi-document query has no document mapping")
        documents = self.document_mapping(raw)
        if not isinstance(documents, (list, tuple)):
            raise StructuralError("Document mapping must return a sequence")
        default = model.get_query("default")
        results = []
        for item in documents:
            document_raw = {"input": default.input_constructor(item), **item}
            results.append(
                default.create_result(default.get_selectors(document_raw), document_raw)
            )
        return results


__all__ = ["Query", "QueryResult"]
