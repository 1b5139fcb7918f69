"""
JSON exporter — Writes a summary of one crawl run next to the CSV streams.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def export_summary(
    stats: Any,
    output_dir: Path,
    prefix: str,
    output_files: Optional[dict[str, Path]] = None,
    client_stats: Optional[dict] = None,
    safety_audit: Optional[dict] = None,
) -> Path:
    """
    Write <prefix>_summary.json.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "membership_crawler",
            "tenant": prefix,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            "mode": "READ-ONLY",
        },
        "crawl": stats.to_dict(),
        "files": {name: str(path) for name, path in (output_files or {}).items()},
        "graph_client": client_stats or {},
        "safety": safety_audit or {},
    }

    filepath = output_dir / f"{prefix}_summary.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
