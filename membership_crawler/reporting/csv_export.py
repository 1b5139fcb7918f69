"""
CSV record sink — one file per stream, header row first.
"""

from __future__ import annotations

import csv
import logging
import threading
from pathlib import Path
from typing import IO, Any

from .base import STREAM_HEADERS, RecordSink

logger = logging.getLogger("membership_crawler.reporting")


class CsvRecordSink(RecordSink):
    """
    Writes <prefix>_<stream>.txt files under output_dir.

    All files are opened and given their header row on construction, so
    a run that finds nothing still leaves seven well-formed files behind.
    Failing to open any of them is fatal and closes the ones already open.
    """

    def __init__(self, output_dir: Path, prefix: str):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.paths: dict[str, Path] = {}
        self._files: dict[str, IO[str]] = {}
        self._writers: dict[str, Any] = {}
        self._locks: dict[str, threading.Lock] = {}

        self.output_dir.mkdir(parents=True, exist_ok=True)
        try:
            for stream, header in STREAM_HEADERS.items():
                path = self.output_dir / f"{prefix}_{stream}.txt"
                fh = open(path, "w", newline="", encoding="utf-8")
                self._files[stream] = fh
                self._writers[stream] = csv.writer(fh, lineterminator="\n")
                self._locks[stream] = threading.Lock()
                self._writers[stream].writerow(header)
                self.paths[stream] = path
        except OSError:
            self.close()
            raise
        logger.debug(f"Opened {len(self._files)} output streams in {self.output_dir}")

    def append(self, stream: str, row: list[str]):
        with self._locks[stream]:
            self._writers[stream].writerow(row)

    def close(self):
        for fh in self._files.values():
            fh.close()
        self._files.clear()
