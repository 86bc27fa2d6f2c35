"""
Pytest configuration for vdocs.

Provides fixtures for:
- Settings cache isolation
- A seeded in-memory blog store that records every call
- Post and blog models built on that store
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

import pytest

from vdocs import MemoryStore, Model, Query, StoreSource
from vdocs.config import get_settings

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingStore(MemoryStore):
    """MemoryStore that keeps a log of `(operation, collection, args)` calls."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls: List[Tuple[str, str, Any]] = []

    def calls_for(self, operation: str) -> List[Tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] == operation]

    async def create(self, collection, data):
        self.calls.append(("create", collection, data))
        return await super().create(collection, data)

    async def read(self, collection, selector):
        self.calls.append(("read", collection, selector))
        return await super().read(collection, selector)

    async def update(self, collection, selector, patch):
        self.calls.append(("update", collection, (selector, patch)))
        return await super().update(collection, selector, patch)

    async def delete(self, collection, selector):
        self.calls.append(("delete", collection, selector))
        return await super().delete(collection, selector)


def blog_data() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "users": [
            {"id": 1, "username": "jdoe", "name": {"first": "John", "last": "Doe"}},
            {"id": 2, "username": "twaits", "name": {"first": "Tom", "last": "Waits"}},
        ],
        "posts": [
            {
                "id": 1,
                "title": "Post 1",
                "content": "first",
                "dateCreated": NOW,
                "author": 1,
                "tags": [1, 2],
            },
            {
                "id": 2,
                "title": "Post 2",
                "content": "second",
                "dateCreated": NOW,
                "author": 2,
                "tags": [2],
            },
        ],
        "tags": [
            {"id": 1, "name": "python"},
            {"id": 2, "name": "asyncio"},
        ],
        "tagLinks": [
            {"id": 1, "post": 1, "tag": 1},
            {"id": 2, "post": 1, "tag": 2},
            {"id": 3, "post": 2, "tag": 2},
        ],
    }


def post_query() -> Query:
    return (
        Query()
        .set_input_constructor(lambda raw: raw["post"]["id"])
        .add_population(name="post", selector=lambda raw: {"id": raw["input"]})
    )


def post_fields() -> Dict[str, Any]:
    return {
        "title": {
            "type": str,
            "required": True,
            "data": lambda raw: raw["post"]["title"],
            "mutation": {"method": {"source": "post", "data": lambda title: {"title": title}}},
        },
        "content": {
            "type": str,
            "data": lambda raw: raw["post"].get("content"),
            "mutation": {"method": {"source": "post", "data": lambda content: {"content": content}}},
        },
        "date": {
            "type": {"created": datetime},
            "data": lambda raw: {"created": raw["post"]["dateCreated"]},
            "mutation": {
                "method": {"source": "post", "data": lambda date: {"dateCreated": date["created"]}}
            },
            "modify": False,
            "default": lambda: {"created": NOW},
        },
    }


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    """Isolate tests that tweak VDOCS_* environment variables."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def blog_store() -> RecordingStore:
    return RecordingStore(blog_data())


@pytest.fixture
def post_model(blog_store: RecordingStore) -> Model:
    """Single-source model over `posts`."""
    return (
        Model()
        .add_bound_source("post", StoreSource(blog_store, "posts"))
        .add_query("default", post_query())
        .describe(post_fields())
    )


@pytest.fixture
def blog_model(blog_store: RecordingStore) -> Model:
    """Post with its author, its tags and the bound tag links."""
    query = (
        post_query()
        .add_population(
            name="author",
            require=["post"],
            selector=lambda raw: {"id": raw["post"]["author"]},
        )
        .add_population(
            name="tags",
            require=["post"],
            selector=lambda raw: [{"id": tag} for tag in raw["post"]["tags"]],
        )
        .add_population(
            name="tagLinks",
            require=["post"],
            selector=lambda raw: {"post": raw["post"]["id"]},
        )
    )
    fields = post_fields()
    fields.update(
        {
            "author": {
                "type": {"username": str},
                "data": lambda raw: {"username": raw["author"]["username"]},
                "mutation": {
                    "type": int,
                    "method": {"source": "post", "data": lambda author: {"author": author}},
                },
            },
            "tags": {
                "type": [str],
                "data": lambda raw: [tag["name"] for tag in raw["tags"]],
                "mutation": {
                    "type": [int],
                    "method": {"source": "post", "data": lambda tags: {"tags": tags}},
                },
            },
            "slug": {
                "type": str,
                "data": lambda raw: raw["post"]["title"].lower().replace(" ", "-"),
                "meta": {"label": "Slug"},
            },
        }
    )
    return (
        Model()
        .add_bound_source("post", StoreSource(blog_store, "posts"))
        .add_source("author", StoreSource(blog_store, "users"))
        .add_source("tags", StoreSource(blog_store, "tags"))
        .add_bound_source("tagLinks", [StoreSource(blog_store, "tagLinks")], required=False)
        .add_query("default", query)
        .describe(fields)
    )
