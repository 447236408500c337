"""Filesystem helpers for workflow files and sidecar summaries."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    return path


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compact_timestamp(moment: datetime | None = None) -> str:
    """``20241201_143000`` style timestamp."""
    return (moment or utc_now()).strftime("%Y%m%d_%H%M%S")


def underscored_timestamp(moment: datetime | None = None) -> str:
    """``2024_12_01_14_30_00`` style timestamp."""
    return (moment or utc_now()).strftime("%Y_%m_%d_%H_%M_%S")


def created_time(path: Path) -> float:
    """Creation time of ``path``; falls back to mtime where birth time is unavailable."""
    stat = os.stat(path)
    return getattr(stat, "st_birthtime", None) or stat.st_mtime


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def backup_created_time(path: Path, manifest_name: str) -> float:
    """Creation time recorded in a backup's manifest.

    Restores write sidecars into the backup directory and move its mtime, so
    the filesystem time is only used when the manifest is missing, unreadable
    or has no usable ``createdAt``.
    """
    manifest_path = path / manifest_name
    if manifest_path.is_file():
        try:
            manifest = read_json(manifest_path)
        except (OSError, ValueError):
            manifest = None
        if isinstance(manifest, dict):
            moment = parse_timestamp(manifest.get("createdAt"))
            if moment is not None:
                return moment.timestamp()
    return created_time(path)


def directory_size(path: Path) -> int:
    return sum(p.stat().st_size for p in path.iterdir() if p.is_file())
