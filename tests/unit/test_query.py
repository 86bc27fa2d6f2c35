from __future__ import annotations

import graphlib

import pytest

from vdocs import CycleError, Model, Query, StoreSource, StructuralError

POST_ID = 1


def by_input(raw):
    return {"id": raw["input"]}


def blog_query() -> Query:
    return (
        Query()
        .set_input_constructor(lambda raw: raw["post"]["id"])
        .add_population(name="author", require=["post"], selector=lambda raw: {"id": raw["post"]["author"]})
        .add_population(name="post", selector=by_input)
        .add_population(
            name="tags",
            require=["post"],
            selector=lambda raw: [{"id": tag} for tag in raw["post"]["tags"]],
        )
    )


def blog_sources(store) -> Model:
    return (
        Model()
        .add_source("post", StoreSource(store, "posts"))
        .add_source("author", StoreSource(store, "users"))
        .add_source("tags", StoreSource(store, "tags"))
    )


def test_sorted_names_respects_requires_and_declaration_order():
    query = blog_query().add_population(name="extra", selector=lambda raw: None)
    assert query.sorted_names() == ["post", "author", "tags", "extra"]


def test_sorted_names_cache_is_invalidated_by_add_population():
    query = blog_query()
    assert "links" not in query.sorted_names()
    query.add_population(name="links", require=["tags"], selector=lambda raw: None)
    assert query.sorted_names()[-1] == "links"


def test_cycle_raises_cycle_error():
    query = (
        Query()
        .add_population(name="post", require=["author"], selector=lambda raw: None)
        .add_population(name="author", require=["post"], selector=lambda raw: None)
    )
    with pytest.raises(CycleError) as excinfo:
        query.sorted_names()

    assert isinstance(excinfo.value, graphlib.CycleError)
    assert isinstance(excinfo.value, StructuralError)
    assert set(excinfo.value.members) == {"post", "author"}
    assert "circular requires" in str(excinfo.value)


def test_requiring_undeclared_population_is_structural():
    query = Query().add_population(name="author", require=["post"], selector=lambda raw: None)
    with pytest.raises(StructuralError):
        query.sorted_names()


@pytest.mark.asyncio
async def test_exec_fetches_in_dependency_order(blog_store):
    result = await blog_query().exec(blog_sources(blog_store), POST_ID)

    assert result.input == POST_ID
    assert result.missing is None
    assert result.data["post"]["title"] == "Post 1"
    assert result.data["author"]["username"] == "jdoe"
    assert [call[1] for call in blog_store.calls] == ["posts", "users", "tags", "tags"]
    assert result.get_selector("post") == {"id": POST_ID}


@pytest.mark.asyncio
async def test_sequence_selector_preserves_order(blog_store):
    query = Query().add_population(name="tags", selector=lambda raw: [{"id": 2}, {"id": 1}])
    model = Model().add_source("tags", StoreSource(blog_store, "tags"))

    result = await query.exec(model, None)

    assert [tag["id"] for tag in result.data["tags"]] == [2, 1]


@pytest.mark.asyncio
async def test_concurrent_fan_out_keeps_selector_order(blog_store, monkeypatch):
    monkeypatch.setenv("VDOCS_FANOUT_CONCURRENCY", "true")
    query = Query().add_population(name="tags", selector=lambda raw: [{"id": 2}, {"id": 1}, {"id": 2}])
    model = Model().add_source("tags", StoreSource(blog_store, "tags"))

    result = await query.exec(model, None)

    assert [tag["id"] for tag in result.data["tags"]] == [2, 1, 2]


@pytest.mark.asyncio
async def test_missing_required_source_stops_execution(blog_store):
    result = await blog_query().exec(blog_sources(blog_store), 99)

    assert result.missing == "post"
    assert result.input == 99
    assert "author" not in result.data
    assert len(blog_store.calls) == 1


@pytest.mark.asyncio
async def test_optional_source_may_be_empty(blog_store):
    query = Query().add_population(name="post", selector=by_input)
    model = Model().add_source("post", StoreSource(blog_store, "posts"), required=False)

    result = await query.exec(model, 99)

    assert result.missing is None
    assert result.data["post"] is None


@pytest.mark.asyncio
async def test_many_source_reads_every_match(blog_store):
    query = Query().add_population(name="links", selector=lambda raw: {"post": raw["input"]})
    model = Model().add_source("links", [StoreSource(blog_store, "tagLinks")])

    result = await query.exec(model, POST_ID)

    assert [link["tag"] for link in result.data["links"]] == [1, 2]


@pytest.mark.asyncio
async def test_map_input_seeds_raw(blog_store):
    query = (
        Query()
        .map_input(lambda slug: {"lookup": {"title": slug}})
        .add_population(name="post", selector=lambda raw: raw["lookup"])
    )
    model = Model().add_source("post", StoreSource(blog_store, "posts"))

    result = await query.exec(model, "Post 2")

    assert result.data["post"]["id"] == 2


@pytest.mark.asyncio
async def test_unknown_source_raises_before_fetching(blog_store):
    query = Query().add_population(name="post", selector=by_input).add_population(name="ghost", selector=by_input)
    model = Model().add_source("post", StoreSource(blog_store, "posts"))

    with pytest.raises(StructuralError):
        await query.exec(model, POST_ID)
    assert blog_store.calls == []


@pytest.mark.asyncio
async def test_multi_query_splits_into_default_results(blog_store):
    default = Query().set_input_constructor(lambda raw: raw["post"]["id"]).add_population(name="post", selector=by_input)
    listing = (
        Query()
        .add_population(name="posts", selector=lambda raw: {})
        .map_document(lambda raw: [{"post": post} for post in raw["posts"]])
    )
    model = (
        Model()
        .add_source("post", StoreSource(blog_store, "posts"))
        .add_source("posts", [StoreSource(blog_store, "posts")])
        .add_query("default", default)
    )

    results = await listing.exec(model, None)

    assert [result.input for result in results] == [1, 2]
    assert results[1].get_selector("post") == {"id": 2}


@pytest.mark.asyncio
async def test_document_mapping_must_return_sequence(blog_store):
    listing = Query().add_population(name="posts", selector=lambda raw: {}).map_document(lambda raw: raw["posts"][0])
    model = (
        Model()
        .add_source("posts", [StoreSource(blog_store, "posts")])
        .add_query("default", Query())
    )

    with pytest.raises(StructuralError):
        await listing.exec(model, None)


def test_get_selectors_skips_unmet_requirements():
    selectors = blog_query().get_selectors({"input": POST_ID})
    assert selectors == {"post": {"id": POST_ID}}


def test_copy_is_independent():
    original = blog_query()
    clone = original.copy()
    clone.add_population(name="extra", selector=lambda raw: None)

    assert [p.name for p in original.populations] == ["author", "post", "tags"]
    assert clone.population("extra") is not None
    assert clone.input_constructor is original.input_constructor


def test_create_result_derives_input():
    result = blog_query().create_result({"post": {"id": 2}}, {"post": {"id": 2}})
    assert result.input == 2
    assert result.selectors == {"post": {"id": 2}}
