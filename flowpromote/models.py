"""Result records, manifests and reports produced by batch operations."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Status = Literal["success", "failed"]
Action = Literal["created", "updated"]

MANIFEST_FILE = "_backup_metadata.json"
SIDECAR_PREFIX = "_"


class CamelModel(BaseModel):
    """Base for records persisted as JSON with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ExportResult(CamelModel):
    """Outcome of exporting one workflow to disk."""

    name: str
    base_name: Optional[str] = None
    environment: Optional[str] = None
    file_name: Optional[str] = None
    status: Status = "success"
    active: Optional[bool] = None
    node_count: int = 0
    error: Optional[str] = None


class DeployResult(CamelModel):
    """Outcome of promoting one workflow from dev to prod."""

    base_name: str
    status: Status = "success"
    action: Optional[Action] = None
    dev_name: Optional[str] = None
    prod_name: Optional[str] = None
    prod_id: Optional[str] = None
    error: Optional[str] = None


class SyncResult(CamelModel):
    """Outcome of pushing one workflow file (import or restore) to the service."""

    file_name: str
    workflow_name: Optional[str] = None
    status: Status = "success"
    action: Optional[Action] = None
    workflow_id: Optional[str] = None
    previously_active: Optional[bool] = None
    error: Optional[str] = None


class BackupManifest(CamelModel):
    """Metadata sidecar stored next to the workflow files of a backup."""

    backup_name: str
    environment: str
    created_at: str
    workflow_count: int = 0
    failed_count: int = 0
    workflows: List[ExportResult] = Field(default_factory=list)


class BackupResult(BaseModel):
    backup_name: str
    backup_dir: Path
    manifest: BackupManifest


class BackupInfo(BaseModel):
    """A backup directory as seen by ``list_backups``."""

    name: str
    path: Path
    created: datetime
    workflow_count: int


class Difference(CamelModel):
    """One structural difference between two copies of a workflow."""

    type: str
    description: str
    file: Optional[str] = None
    details: Any = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


def summarize(results: Sequence[Any]) -> BatchSummary:
    """Count successes and failures across a batch of result records."""
    successful = sum(1 for r in results if r.status == "success")
    return BatchSummary(
        total=len(results), successful=successful, failed=len(results) - successful
    )


def is_sidecar(file_name: str) -> bool:
    return file_name.startswith(SIDECAR_PREFIX)


def workflow_files(directory: Path) -> List[Path]:
    """Return the non-sidecar JSON files of ``directory`` sorted by name."""
    if not directory.is_dir():
        return []
    return sorted(
        p
        for p in directory.iterdir()
        if p.is_file() and p.suffix == ".json" and not is_sidecar(p.name)
    )


class WorkflowStatus(BaseModel):
    """Live state of one managed workflow in one environment."""

    base_name: str
    environment: str
    display_name: str
    found: bool
    active: bool = False
    node_count: int = 0


class DeploymentCheck(BaseModel):
    base_name: str
    prod_name: str
    verified: bool
    active: Optional[bool] = None
    node_count: int = 0
    error: Optional[str] = None
