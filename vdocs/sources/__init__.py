"""
Source adapters.

A source supplies records to a model: either one collection of a record
store (`StoreSource`) or another model (`ModelSource`).
"""

from vdocs.sources.abstract import AbstractSource, DeletedEntry, Source, WriteOperation
from vdocs.sources.model_source import ModelSource
from vdocs.sources.store_source import StoreSource

__all__ = [
    "AbstractSource",
    "DeletedEntry",
    "Source",
    "WriteOperation",
    "ModelSource",
    "StoreSource",
]
