"""
In-memory record sink, for embedding the crawler and for tests.
"""

from __future__ import annotations

import threading

from .base import STREAM_HEADERS, RecordSink


class MemoryRecordSink(RecordSink):
    """Keeps every stream as a list of rows."""

    def __init__(self):
        self.rows: dict[str, list[list[str]]] = {stream: [] for stream in STREAM_HEADERS}
        self._locks = {stream: threading.Lock() for stream in STREAM_HEADERS}

    def append(self, stream: str, row: list[str]):
        with self._locks[stream]:
            self.rows[stream].append(list(row))

    def column(self, stream: str, index: int = 0) -> list[str]:
        return [row[index] for row in self.rows[stream]]

    def pairs(self, stream: str) -> set[tuple[str, str]]:
        """Membership streams as a set of (container, member) tuples."""
        return {(row[0], row[1]) for row in self.rows[stream]}
