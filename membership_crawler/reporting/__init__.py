"""Reporting package — crawl output streams and run summary."""

from .base import RecordSink, STREAM_HEADERS
from .csv_export import CsvRecordSink
from .memory_sink import MemoryRecordSink
from .json_export import export_summary

__all__ = [
    "RecordSink",
    "STREAM_HEADERS",
    "CsvRecordSink",
    "MemoryRecordSink",
    "export_summary",
]
