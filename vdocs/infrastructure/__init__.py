"""
Infrastructure package for vdocs.

Centralizes record storage concerns: the store contract, the in-memory store
and the query-document matcher it evaluates selectors with. Keep this layer
focused on storage, decoupled from query and model logic.
"""

from vdocs.infrastructure.abstract import AbstractRecordStore, Record, RecordStore, Selector
from vdocs.infrastructure.matcher import compile_selector, matches
from vdocs.infrastructure.memory_store import MemoryStore

__all__ = [
    "AbstractRecordStore",
    "MemoryStore",
    "Record",
    "RecordStore",
    "Selector",
    "compile_selector",
    "matches",
]
