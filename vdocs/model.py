"""
Model orchestration for vdocs.

A model assembles sources, queries, mutation plans and a field descriptor
into one logical document type. Reads run a query and project the raw data
through the data map; writes filter, default, validate and group the
incoming values before forwarding them to the sources, then re-query.

Usage:
    Post = (
        Model()
        .add_source("post", StoreSource(store, "posts"))
        .add_query("default", Query().add_population(name="post", selector=by_id))
        .describe({
            "title": {
                "type": str,
                "data": lambda raw: raw["post"]["title"],
                "mutation": {"method": {"source": "post", "data": lambda t: {"title": t}}},
            },
        })
    )
    doc = await Post.get(1)
    doc, error = await doc.mutate({"title": "New title"})

Rejected input never raises: `create`, `mutate` and `named_mutate` return a
`(document, error)` tuple whose second slot holds an `ErrorRecord`.
Structural mistakes (unknown names, cycles, missing plans) raise.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from vdocs.document import Document
from vdocs.domain.models import (
    CREATE,
    DELETE,
    REMOVE,
    UPDATE,
    FieldDescriptor,
    MutationMethod,
    MutationPlan,
    SourceBinding,
    positional_arity,
)
from vdocs.errors import (
    ErrorRecord,
    ImmutableFieldError,
    StructuralError,
    ValidationError,
)
from vdocs.query import Query, QueryResult
from vdocs.sources.abstract import DeletedEntry, WriteOperation
from vdocs.sources.model_source import ModelSource
from vdocs.utils.logging import get_logger
from vdocs.validator import object_schema, parse_type, validate

log = get_logger(__name__)

PUSH = "$push"

MutateResult = Tuple[Optional[Document], Optional[ErrorRecord]]


def _invoke(fn: Callable[..., Any], *args: Any) -> Any:
    """Call `fn` with as many leading positional arguments as it requires."""
    arity = positional_arity(fn)
    return fn(*args) if arity is None else fn(*args[:arity])


def _merge(current: Any, data: Any) -> Any:
    """Combine two contributions to the same write; the later one wins on collisions."""
    if current is None:
        return data
    if isinstance(current, list) and isinstance(data, list):
        return current + data
    if isinstance(current, Mapping) and isinstance(data, Mapping):
        merged = {**current, **data}
        if isinstance(current.get(PUSH), Mapping) and isinstance(data.get(PUSH), Mapping):
            merged[PUSH] = {**current[PUSH], **data[PUSH]}
        return merged
    return data


def _split_mutation(declaration: Any) -> Tuple[Any, Any]:
    """Return `(methods, type)` from a descriptor's `mutation` entry."""
    if isinstance(declaration, Mapping) and ("method" in declaration or "methods" in declaration):
        return declaration.get("methods", declaration.get("method")), declaration.get("type")
    return declaration, None


def _identity(raw: Dict[str, Any]) -> Any:
    return raw


class Model:
    """
    A composable virtual document type.

    Every registration method returns the model so declarations can be
    chained. All data operations are coroutines.
    """

    def __init__(self) -> None:
        self._sources: Dict[str, SourceBinding] = {}
        self._bound: List[str] = []
        self._queries: Dict[str, Query] = {}
        self._mutations: Dict[str, MutationPlan] = {}
        self._descriptor: Dict[str, FieldDescriptor] = {}
        self._field_schemas: Dict[str, Any] = {}
        self._initializer: Optional[MutationPlan] = None
        self._initializer_query = "default"
        self._initializer_types: Dict[str, Any] = {}
        self._remove: Optional[MutationPlan] = None
        self._data_map: Callable[[Dict[str, Any]], Any] = _identity

    # ----------------------------------------------------------- registration

    def add_source(self, name: str, source: Any, required: bool = True, many: bool = False) -> "Model":
        """
        Register a source under `name`.

        Parameters
        ----------
        source : Source | Model | list
            A source adapter, another model (wrapped in a `ModelSource`), or
            a one-element list `[source]` marking the source as many.
        required : bool
            Stop the query with an empty document when this source has no data.
        many : bool
            Fetch with `readMany` where a population asks for `read`.
        """
        if isinstance(source, list):
            if len(source) != 1:
                raise StructuralError(f"Source '{name}' list form takes exactly one source")
            source, many = source[0], True
        if isinstance(source, Model):
            source = source.as_source(name=name)
        self._sources[name] = SourceBinding(
            name=name,
            source=source,
            required=required,
            many=many,
            bound=name in self._bound,
        )
        return self

    def add_bound_source(self, name: str, source: Any, required: bool = True, many: bool = False) -> "Model":
        """Register a source whose records are deleted along with the document."""
        self.add_source(name, source, required=required, many=many)
        return self.bind_sources([name])

    def bind_sources(self, names: Union[str, Sequence[str]]) -> "Model":
        for name in [names] if isinstance(names, str) else names:
            if name not in self._bound:
                self._bound.append(name)
            if name in self._sources:
                self._sources[name] = self._sources[name].model_copy(update={"bound": True})
        return self

    def add_query(self, name: str, query: Query) -> "Model":
        self._queries[name] = query
        return self

    def add_mutation(self, name: str, methods: Any, type: Any = None) -> "Model":
        """Register a named mutation; `type` is the descriptor its value must satisfy."""
        schema = parse_type(type) if type is not None else None
        self._mutations[name] = MutationPlan.build(methods, schema)
        return self

    def set_initializer(self, methods: Any, query_name: str = "default", type: Optional[Mapping[str, Any]] = None) -> "Model":
        """
        Register the plan `create` runs.

        Each method's `data(input, raw)` receives the whole validated input.
        `type` maps field names to descriptors overriding the descriptor types
        for creation.
        """
        self._initializer = MutationPlan.build(methods)
        self._initializer_query = query_name
        self._initializer_types = dict(type or {})
        return self

    def set_remove(self, methods: Any) -> "Model":
        """Register the plan `delete` runs before deleting bound sources."""
        self._remove = MutationPlan.build(methods)
        return self

    def map(self, data_map: Callable[[Dict[str, Any]], Any]) -> "Model":
        self._data_map = data_map
        return self

    def describe(self, descriptor: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Set the field descriptor, or return a reflective view of it.

        With a descriptor, derives the data map from fields declaring `data`,
        registers a mutation per field declaring `mutation`, and records each
        field's runtime schema. Without one, returns
        `{field: {type, mutable, meta?}}`.
        """
        if descriptor is None:
            view: Dict[str, Any] = {}
            for key, field in self._descriptor.items():
                entry: Dict[str, Any] = {"type": field.type, "mutable": self.is_modifiable(key)}
                if field.meta is not None:
                    entry["meta"] = field.meta
                view[key] = entry
            return view

        fields = {
            key: value if isinstance(value, FieldDescriptor) else FieldDescriptor(**value)
            for key, value in descriptor.items()
        }
        self._descriptor = fields
        projected = [key for key, field in fields.items() if field.data is not None]
        self._data_map = lambda raw: {key: fields[key].data(raw) for key in projected}

        self._field_schemas = {}
        for key, field in fields.items():
            declared = field.type
            if field.declares_mutation and not isinstance(field.mutation, str):
                methods, mutation_type = _split_mutation(field.mutation)
                if mutation_type is not None:
                    declared = mutation_type
                self._mutations[key] = MutationPlan.build(
                    methods, parse_type(declared, field.required)
                )
            self._field_schemas[key] = parse_type(declared, field.required)
        return self

    def as_source(self, query: str = "default", name: str = "model") -> ModelSource:
        return ModelSource(self, query=query, name=name)

    # ---------------------------------------------------------------- lookups

    def get_source(self, name: str) -> SourceBinding:
        try:
            return self._sources[name]
        except KeyError:
            raise StructuralError(f"Unknown source '{name}'") from None

    def get_query(self, name: str) -> Query:
        try:
            return self._queries[name]
        except KeyError:
            raise StructuralError(f"Unknown query '{name}'") from None

    def get_mutation(self, name: str) -> MutationPlan:
        plan = self._mutation_for(name)
        if plan is None:
            raise StructuralError(f"Unknown mutation '{name}'")
        return plan

    def _mutation_for(self, key: str) -> Optional[MutationPlan]:
        field = self._descriptor.get(key)
        if field is not None and isinstance(field.mutation, str):
            return self._mutations.get(field.mutation)
        return self._mutations.get(key)

    def is_modifiable(self, key: str) -> bool:
        """A key is modifiable when a mutation exists for it and it is not marked `modify: False`."""
        if self._mutation_for(key) is None:
            return False
        field = self._descriptor.get(key)
        return field is None or field.modify is not False

    def _field_schema(self, key: str) -> Any:
        if key in self._field_schemas:
            field = self._descriptor[key]
            if isinstance(field.mutation, str):
                plan = self._mutation_for(key)
                if plan is not None and plan.input_schema is not None:
                    return plan.input_schema
            return self._field_schemas[key]
        plan = self._mutation_for(key)
        if plan is not None and plan.input_schema is not None:
            return plan.input_schema
        return parse_type(None)

    def _resolve_defaults(self, keys: Sequence[str], payload: Any) -> Dict[str, Any]:
        return {
            key: self._descriptor[key].resolve_default(payload)
            for key in keys
            if key in self._descriptor and self._descriptor[key].has_default
        }

    # ------------------------------------------------------------------ reads

    async def query(self, name: str, input: Any) -> Union[Document, List[Document]]:
        """Execute query `name`; a multi query yields one document per element."""
        result = await self.get_query(name).exec(self, input)
        if isinstance(result, list):
            return [self._document("default", item) for item in result]
        return self._document(name, result)

    async def get(self, input: Any) -> Union[Document, List[Document]]:
        return await self.query("default", input)

    def _document(
        self,
        query_name: str,
        result: QueryResult,
        is_new: bool = False,
        changes: Optional[Dict[str, List[Any]]] = None,
    ) -> Document:
        data = None if result.missing is not None else self._data_map(result.data)
        return Document(self, query_name, result, data, is_new=is_new, changes=changes)

    async def _raw_for(self, query_name: str, input: Any) -> Dict[str, Any]:
        result = await self.get_query(query_name).exec(self, input)
        if isinstance(result, list):
            raise StructuralError(f"Query '{query_name}' yields several documents")
        return result.data

    async def _requery(self, query_name: str, input: Any, changes: Dict[str, List[Any]]) -> Any:
        fresh = await self.query(query_name, input)
        if isinstance(fresh, Document):
            fresh.changes = changes
        return fresh

    # ----------------------------------------------------------------- writes

    def _write_selector(self, source: str, query_name: str, input: Any, raw: Mapping[str, Any]) -> Any:
        query = self._queries.get(query_name)
        population = query.population(source) if query is not None else None
        if population is None:
            query = self.get_query("default")
            population = query.population(source)
        if population is None:
            raise StructuralError(f"Source '{source}' has no population in the default query")
        seed = dict(raw)
        if query.input_mapper is not None:
            seed.update(query.input_mapper(input))
        seed["input"] = input
        return population.selector(seed)

    def _write_operation(
        self,
        source: str,
        operation: str,
        data: Any,
        query_name: str,
        input: Any,
        raw: Mapping[str, Any],
    ) -> WriteOperation:
        if operation == CREATE:
            return {"name": CREATE, "data": data}
        if operation == DELETE:
            return {"name": REMOVE, "selector": data}
        return {
            "name": UPDATE,
            "selector": self._write_selector(source, query_name, input, raw),
            "data": data,
        }

    async def _run_method(
        self,
        method: MutationMethod,
        value: Any,
        query_name: str,
        input: Any,
        raw: Mapping[str, Any],
    ) -> Any:
        binding = self.get_source(method.source)
        if method.operations is not None:
            results = await binding.source.mutate(list(_invoke(method.operations, value, raw)))
            return method.result(results) if method.result is not None else results
        operation = self._write_operation(
            method.source,
            method.operation,
            _invoke(method.data, value, raw),
            query_name,
            input,
            raw,
        )
        results = await binding.source.mutate([operation])
        return method.result(results[0]) if method.result is not None else results[0]

    async def _run_grouped(
        self,
        payload: Mapping[str, Any],
        query_name: str,
        input: Any,
        raw: Mapping[str, Any],
    ) -> Dict[str, List[Any]]:
        """Collapse per-field data-form methods into one write per (source, operation)."""
        order: List[str] = []
        groups: Dict[str, Dict[str, Any]] = {}
        trailing: Dict[str, List[Tuple[MutationMethod, Any]]] = {}

        for key, value in payload.items():
            plan = self._mutation_for(key)
            if plan is None:
                continue
            for method in plan.methods:
                if method.source not in order:
                    order.append(method.source)
                if method.operations is not None:
                    trailing.setdefault(method.source, []).append((method, value))
                    continue
                bucket = groups.setdefault(method.source, {})
                bucket[method.operation] = _merge(
                    bucket.get(method.operation), _invoke(method.data, value, raw)
                )

        changes: Dict[str, List[Any]] = {}
        for source in order:
            binding = self.get_source(source)
            results: List[Any] = []
            for operation, data in groups.get(source, {}).items():
                write = self._write_operation(source, operation, data, query_name, input, raw)
                results.extend(await binding.source.mutate([write]))
            for method, value in trailing.get(source, []):
                results.append(await self._run_method(method, value, query_name, input, raw))
            changes[source] = results
        return changes

    async def mutate(
        self,
        input: Any,
        query_name: Optional[str],
        data: Mapping[str, Any],
        raw: Optional[Mapping[str, Any]] = None,
    ) -> MutateResult:
        """
        Apply a bulk patch to the document identified by `input`.

        Keys that are not modifiable are dropped. Defaults of modifiable
        fields fill the gaps, the result is validated, and the writes are
        grouped per source and operation before the document is re-queried.
        """
        query_name = query_name or "default"
        self.get_query(query_name)

        patch = {key: value for key, value in data.items() if self.is_modifiable(key)}
        dropped = [key for key in data if key not in patch]
        if dropped:
            log.debug("Dropped non-modifiable keys", extra={"keys": dropped})
        defaults = [key for key in self._descriptor if key not in patch and self.is_modifiable(key)]
        payload = {**self._resolve_defaults(defaults, data), **patch}

        schema = object_schema({key: self._field_schema(key) for key in payload})
        report = validate(schema, payload)
        if not report.valid:
            log.warning("Mutation rejected", extra={"reason": report.format()})
            return None, ErrorRecord(ValidationError(report), report)

        if raw is None:
            raw = await self._raw_for(query_name, input)
        changes = await self._run_grouped(payload, query_name, input, raw)
        log.info("Document mutated", extra={"sources": list(changes), "fields": list(payload)})
        return await self._requery(query_name, input, changes), None

    async def named_mutate(
        self,
        name: str,
        input: Any,
        query_name: Optional[str],
        value: Any,
        raw: Optional[Mapping[str, Any]] = None,
    ) -> MutateResult:
        """
        Run the mutation `name` with `value`, then write the defaults of the
        other modifiable fields.
        """
        query_name = query_name or "default"
        self.get_query(query_name)

        if name in self._descriptor and not self.is_modifiable(name):
            log.warning("Immutable field", extra={"field": name})
            return None, ErrorRecord(ImmutableFieldError(name))
        plan = self.get_mutation(name)

        schema = plan.input_schema if plan.input_schema is not None else self._field_schema(name)
        report = validate(schema, value)
        if not report.valid:
            log.warning("Mutation rejected", extra={"mutation": name, "reason": report.format()})
            return None, ErrorRecord(ValidationError(report), report)

        if raw is None:
            raw = await self._raw_for(query_name, input)
        changes: Dict[str, List[Any]] = {}
        for method in plan.methods:
            result = await self._run_method(method, value, query_name, input, raw)
            changes.setdefault(method.source, []).append(result)

        others = [key for key in self._descriptor if key != name and self.is_modifiable(key)]
        defaults = self._resolve_defaults(others, value)
        if defaults:
            for source, results in (await self._run_grouped(defaults, query_name, input, raw)).items():
                changes.setdefault(source, []).extend(results)

        log.info("Named mutation applied", extra={"mutation": name, "sources": list(changes)})
        return await self._requery(query_name, input, changes), None

    def _create_schema(self) -> Dict[str, Any]:
        properties = {key: self._field_schema(key) for key in self._descriptor}
        for key, declared in self._initializer_types.items():
            field = self._descriptor.get(key)
            properties[key] = parse_type(declared, field.required if field else False)
        return object_schema(properties)

    def _creation_methods(self, payload: Mapping[str, Any]) -> Dict[str, List[Tuple[MutationMethod, Any]]]:
        """Initializer methods per source, or the descriptor's create/update methods."""
        methods: Dict[str, List[Tuple[MutationMethod, Any]]] = {}
        if self._initializer is not None:
            for method in self._initializer.methods:
                methods.setdefault(method.source, []).append((method, payload))
            return methods
        for key, value in payload.items():
            plan = self._mutation_for(key)
            if plan is None:
                continue
            for method in plan.methods:
                if method.data is not None and method.operation in (CREATE, UPDATE):
                    methods.setdefault(method.source, []).append((method, value))
        return methods

    async def create(self, data: Optional[Mapping[str, Any]] = None) -> MutateResult:
        """
        Create the records of a new document.

        Sources are visited in the initializer query's order: sources with
        creation methods are created (a many source receives the
        concatenated list), the others are read through their population.
        Populations see the validated input as `raw["input"]`, extended by
        the query's input mapper.

        Raises
        ------
        StructuralError
            Without an initializer, when no field of the input declares a
            mutation; or when a creation method targets a source the query
            does not populate.
        """
        data = dict(data or {})
        query = self.get_query(self._initializer_query)
        missing = [key for key in self._descriptor if key not in data]
        payload = {**data, **self._resolve_defaults(missing, data)}

        report = validate(self._create_schema(), payload)
        if not report.valid:
            log.warning("Creation rejected", extra={"reason": report.format()})
            return None, ErrorRecord(ValidationError(report), report)

        methods = self._creation_methods(payload)
        if not methods:
            raise StructuralError("Model has no initializer and the input sets no field with a mutation")
        order = query.sorted_names()
        unknown = [source for source in methods if source not in order]
        if unknown:
            raise StructuralError(
                f"Sources {unknown} have no population in query '{self._initializer_query}'"
            )

        raw: Dict[str, Any] = {"input": payload}
        if query.input_mapper is not None:
            raw.update(query.input_mapper(payload))
        selectors: Dict[str, Any] = {}
        changes: Dict[str, List[Any]] = {}
        missing_source: Optional[str] = None
        for name in order:
            binding = self.get_source(name)
            if name not in methods:
                selectors[name], raw[name] = await query.fetch_source(self, name, raw)
            else:
                raw[name], changes[name] = await self._create_source(binding, methods[name], raw)
            if binding.required and raw[name] is None:
                log.warning("Required source returned no data", extra={"source": name})
                missing_source = name
                break

        input = query.input_constructor(raw)
        document_raw = {**raw, "input": input}
        if missing_source is None:
            selectors = {**query.get_selectors(document_raw), **selectors}
        result = QueryResult(input, selectors, document_raw, missing_source)
        log.info("Document created", extra={"sources": list(changes)})
        return self._document(self._initializer_query, result, is_new=True, changes=changes), None

    async def _create_source(
        self,
        binding: SourceBinding,
        methods: List[Tuple[MutationMethod, Any]],
        raw: Dict[str, Any],
    ) -> Tuple[Any, List[Any]]:
        record: Any = None
        results: List[Any] = []
        for method, value in methods:
            if method.data is None:
                continue
            contribution = _invoke(method.data, value, raw)
            if binding.many:
                record = (record or []) + (contribution if isinstance(contribution, list) else [contribution])
            else:
                record = {**(record or {}), **contribution}
        if record is not None:
            created = await binding.source.mutate([{"name": CREATE, "data": record}])
            results.extend(created)
            record = created[0]

        for method, value in methods:
            if method.operations is None:
                continue
            outcome = await binding.source.mutate(list(_invoke(method.operations, value, raw)))
            outcome = method.result(outcome) if method.result is not None else outcome
            results.append(outcome)
            if record is None:
                record = outcome[0] if isinstance(outcome, list) and len(outcome) == 1 else outcome
        return record, results

    async def delete(self, input: Any, query_name: Optional[str] = "default") -> List[DeletedEntry]:
        """
        Delete the document identified by `input`.

        Runs the remove plan, then deletes the matching records of every
        bound source. Returns one `{source, deleted}` entry per step.
        """
        query_name = query_name or "default"
        raw = await self._raw_for(query_name, input)
        entries: List[DeletedEntry] = []

        if self._remove is not None:
            for method in self._remove.methods:
                binding = self.get_source(method.source)
                if method.operations is not None:
                    writes = list(_invoke(method.operations, input, raw))
                else:
                    writes = [
                        self._write_operation(
                            method.source,
                            method.operation,
                            _invoke(method.data, input, raw),
                            query_name,
                            input,
                            raw,
                        )
                    ]
                results = await binding.source.mutate(writes)
                removed = method.result(results) if method.result is not None else results
                entries.append({"source": method.source, "deleted": removed})

        for name in self._bound:
            binding = self.get_source(name)
            selector = self._write_selector(name, query_name, input, raw)
            selectors = selector if isinstance(selector, list) else [selector]
            deleted: List[Any] = []
            for result in await binding.source.mutate([{"name": REMOVE, "selector": s} for s in selectors]):
                deleted.extend(result if isinstance(result, list) else [result])
            entries.append({"source": name, "deleted": deleted})

        log.info("Document deleted", extra={"sources": [entry["source"] for entry in entries]})
        return entries


__all__ = ["Model"]
