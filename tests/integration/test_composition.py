"""Models used as sources of other models."""

from __future__ import annotations

import pytest

from vdocs import MemoryStore, Model, Query, StoreSource, ValidationError
from vdocs.sources import ModelSource

POST_ID = 1


def article_model(store: MemoryStore) -> Model:
    return (
        Model()
        .add_bound_source("post", StoreSource(store, "posts"))
        .add_query(
            "default",
            Query()
            .set_input_constructor(lambda raw: raw["post"]["id"])
            .add_population(name="post", selector=lambda raw: {"id": raw["input"]}),
        )
        .describe(
            {
                "id": {"type": int, "data": lambda raw: raw["post"]["id"]},
                "title": {
                    "type": str,
                    "required": True,
                    "data": lambda raw: raw["post"]["title"],
                    "mutation": {"method": {"source": "post", "data": lambda title: {"title": title}}},
                },
            }
        )
    )


def listing_model(article: Model) -> Model:
    return (
        Model()
        .add_bound_source("article", article)
        .add_query(
            "default",
            Query()
            .set_input_constructor(lambda raw: raw["article"]["id"])
            .add_population(name="article", selector=lambda raw: raw["input"]),
        )
        .set_initializer(
            {"source": "article", "data": lambda data: {"title": data["headline"]}},
            type={"headline": str},
        )
        .describe(
            {
                "headline": {
                    "type": str,
                    "data": lambda raw: raw["article"]["title"].upper(),
                    "mutation": {"method": {"source": "article", "data": lambda headline: {"title": headline}}},
                },
            }
        )
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore({"posts": [{"id": POST_ID, "title": "Post 1"}]})


@pytest.fixture
def article(store) -> Model:
    return article_model(store)


@pytest.fixture
def listing(article) -> Model:
    return listing_model(article)


def test_model_sources_are_wrapped(listing, article):
    source = listing.get_source("article").source
    assert isinstance(source, ModelSource)
    assert source.model is article
    assert source.name == "article"


@pytest.mark.asyncio
async def test_read_through_model_source_matches_inner_default_query(listing, article):
    outer = await listing.get(POST_ID)
    inner = await article.get(POST_ID)

    assert outer.raw["article"] == inner.data
    assert outer.data == {"headline": "POST 1"}


@pytest.mark.asyncio
async def test_missing_inner_document_is_missing_outer_source(listing):
    outer = await listing.get(404)

    assert not outer.found
    assert outer.result.missing == "article"


@pytest.mark.asyncio
async def test_create_goes_through_inner_create(listing, store):
    doc, error = await listing.create({"headline": "fresh"})

    assert error is None
    assert doc.data == {"headline": "FRESH"}
    assert [r["title"] for r in store.collection("posts")] == ["Post 1", "fresh"]


@pytest.mark.asyncio
async def test_update_goes_through_inner_mutate(listing, store):
    doc = await listing.get(POST_ID)

    updated, error = await doc.mutate({"headline": "renamed"})

    assert error is None
    assert updated.data == {"headline": "RENAMED"}
    assert store.collection("posts")[0]["title"] == "renamed"


@pytest.mark.asyncio
async def test_delete_goes_through_inner_delete(listing, store):
    doc = await listing.get(POST_ID)

    entries = await doc.remove()

    assert entries[0]["source"] == "article"
    (inner,) = entries[0]["deleted"]
    assert inner["source"] == "post"
    assert [r["id"] for r in inner["deleted"]] == [POST_ID]
    assert store.collection("posts") == []


@pytest.mark.asyncio
async def test_inner_rejection_propagates_as_exception(store):
    article = article_model(store)
    loose = (
        Model()
        .add_source("article", article)
        .add_query(
            "default",
            Query().add_population(name="article", selector=lambda raw: raw["input"]),
        )
        .add_mutation("retitle", {"source": "article", "data": lambda title: {"title": title}})
    )

    with pytest.raises(ValidationError):
        await loose.named_mutate("retitle", POST_ID, None, 42)
    assert store.collection("posts")[0]["title"] == "Post 1"


@pytest.mark.asyncio
async def test_inner_create_rejection_propagates(store):
    listing = listing_model(article_model(store)).set_initializer(
        {"source": "article", "data": lambda data: {"title": 42}}
    )

    with pytest.raises(ValidationError):
        await listing.create({"headline": "ignored"})
    assert len(store.collection("posts")) == 1


@pytest.mark.asyncio
async def test_update_through_named_inner_query_targets_that_query():
    store = MemoryStore(
        {
            "posts": [
                {"id": 1, "title": "Post 1", "views": 0},
                {"id": 2, "title": "Post 2", "views": 0},
            ]
        }
    )
    inner = (
        Model()
        .add_source("post", StoreSource(store, "posts"))
        .add_query("default", Query().add_population(name="post", selector=lambda raw: {"id": raw["input"]}))
        .add_query("byTitle", Query().add_population(name="post", selector=lambda raw: {"title": raw["input"]}))
        .describe(
            {
                "views": {
                    "type": int,
                    "data": lambda raw: raw["post"]["views"],
                    "mutation": {"method": {"source": "post", "data": lambda views: {"views": views}}},
                },
            }
        )
    )
    outer = (
        Model()
        .add_source("article", inner.as_source(query="byTitle", name="article"))
        .add_query("default", Query().add_population(name="article", selector=lambda raw: raw["input"]))
        .describe(
            {
                "views": {
                    "type": int,
                    "data": lambda raw: raw["article"]["views"],
                    "mutation": {"method": {"source": "article", "data": lambda views: {"views": views}}},
                },
            }
        )
    )

    doc = await outer.get("Post 2")
    updated, error = await doc.mutate({"views": 5})

    assert error is None
    assert updated.data == {"views": 5}
    assert [r["views"] for r in store.collection("posts")] == [0, 5]
