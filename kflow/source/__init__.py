"""Record sources for the customers and offers tables."""

from kflow.source.base import RecordSource
from kflow.source.inmemory import InMemoryRecordSource
from kflow.source.postgrest import PostgrestRecordSource

__all__ = [
    "RecordSource",
    "InMemoryRecordSource",
    "PostgrestRecordSource",
]
