"""Timestamped environment snapshots, restore and retention pruning."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from .config import Environment, FlowPromoteConfig
from .errors import ConfigError, PreconditionError
from .fsutils import (
    backup_created_time,
    compact_timestamp,
    underscored_timestamp,
    utc_now,
    write_json,
)
from .models import (
    MANIFEST_FILE,
    BackupInfo,
    BackupManifest,
    BackupResult,
    ExportResult,
    SyncResult,
    summarize,
    workflow_files,
)
from .naming import NameCodec
from .promotion import ENTITY_ERRORS, export_workflow, load_workflow_file
from .reconcile import Reconciler, prepare_push_payload
from .remote import WorkflowClient

logger = logging.getLogger(__name__)


class BackupEngine:
    """Create, list, restore and prune backups under ``paths.backups_dir``."""

    def __init__(
        self,
        config: FlowPromoteConfig,
        client: Optional[WorkflowClient] = None,
        codec: Optional[NameCodec] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._codec = codec or NameCodec(config.environments)
        self._root = config.paths.backups_dir

    @property
    def client(self) -> WorkflowClient:
        if self._client is None:
            raise ConfigError("A workflow client is required for this operation")
        return self._client

    def backup_dir(self, backup_name: str) -> Path:
        return self._root / backup_name

    async def create_backup(
        self, environment: Environment = Environment.PROD, custom_name: Optional[str] = None
    ) -> BackupResult:
        env = Environment(environment)
        backup_name = custom_name or f"backup_{env.value}_{underscored_timestamp()}"
        backup_dir = self.backup_dir(backup_name)
        logger.info(f"Creating backup: {backup_name}")

        managed = {
            self._codec.display_name(w.base_name, env)
            for w in self._config.managed_workflows
            if env in w.environments
        }
        targets = [w for w in await self.client.list_workflows() if w.get("name") in managed]

        manifest = BackupManifest(
            backup_name=backup_name,
            environment=env.value,
            created_at=utc_now().isoformat(),
        )
        if not targets:
            logger.warning(f"No managed workflows found for {env.value}; nothing to back up")
            return BackupResult(backup_name=backup_name, backup_dir=backup_dir, manifest=manifest)

        backup_dir.mkdir(parents=True, exist_ok=True)
        results: List[ExportResult] = []
        for workflow in targets:
            try:
                results.append(
                    await export_workflow(self.client, self._codec, workflow, backup_dir)
                )
                logger.info(f"Backed up: {workflow['name']}")
            except ENTITY_ERRORS as exc:
                logger.error(f"Failed to back up {workflow.get('name')}: {exc}")
                results.append(
                    ExportResult(name=workflow.get("name", "?"), status="failed", error=str(exc))
                )

        counts = summarize(results)
        manifest = manifest.model_copy(
            update={
                "workflow_count": counts.successful,
                "failed_count": counts.failed,
                "workflows": results,
            }
        )
        write_json(backup_dir / MANIFEST_FILE, manifest.to_json_dict())
        logger.info(f"Backup completed: {counts.successful} workflows saved to {backup_dir}")

        self.cleanup_old_backups(self._config.settings.max_backups_to_keep)
        return BackupResult(backup_name=backup_name, backup_dir=backup_dir, manifest=manifest)

    def _backup_dirs(self) -> List[Path]:
        if not self._root.is_dir():
            return []
        dirs = [p for p in self._root.iterdir() if p.is_dir()]
        return sorted(dirs, key=lambda p: backup_created_time(p, MANIFEST_FILE), reverse=True)

    def list_backups(self) -> List[BackupInfo]:
        """Backups newest-created first."""
        return [
            BackupInfo(
                name=path.name,
                path=path,
                created=datetime.fromtimestamp(
                    backup_created_time(path, MANIFEST_FILE), tz=timezone.utc
                ),
                workflow_count=len(workflow_files(path)),
            )
            for path in self._backup_dirs()
        ]

    async def restore_from_backup(
        self, backup_name: str, base_names: Optional[Sequence[str]] = None
    ) -> List[SyncResult]:
        backup_dir = self.backup_dir(backup_name)
        if not backup_dir.is_dir():
            raise PreconditionError(f"Backup not found: {backup_name}")

        files = workflow_files(backup_dir)
        if base_names:
            wanted = {
                self._codec.file_name(self._codec.display_name(b, Environment.PROD))
                for b in base_names
            }
            files = [f for f in files if f.name in wanted]
        if not files:
            raise PreconditionError(f"No workflow files to restore in backup {backup_name}")

        logger.info(f"Restoring {len(files)} workflows from {backup_name}")
        reconciler = await Reconciler.snapshot(self.client)
        results: List[SyncResult] = []
        for path in files:
            try:
                workflow = load_workflow_file(path)
                outcome = await reconciler.push(prepare_push_payload(workflow, "strip"))
                results.append(
                    SyncResult(
                        file_name=path.name,
                        workflow_name=workflow["name"],
                        action=outcome.action,
                        workflow_id=outcome.workflow_id,
                        previously_active=outcome.previously_active,
                    )
                )
                logger.info(f"Restored: {workflow['name']}")
            except ENTITY_ERRORS as exc:
                logger.error(f"Failed to restore {path.name}: {exc}")
                results.append(SyncResult(file_name=path.name, status="failed", error=str(exc)))

        counts = summarize(results)
        write_json(
            backup_dir / f"_restore_summary_{compact_timestamp()}.json",
            {
                "restoredAt": utc_now().isoformat(),
                "backupName": backup_name,
                "totalWorkflows": counts.total,
                "successful": counts.successful,
                "failed": counts.failed,
                "results": [r.to_json_dict() for r in results],
            },
        )
        logger.info(f"Restore completed: {counts.successful} successful, {counts.failed} failed")
        return results

    def cleanup_old_backups(self, keep_count: int) -> List[str]:
        """Delete every backup beyond the ``keep_count`` newest. Returns deleted names."""
        if keep_count < 0:
            raise ValueError("keep_count must not be negative")
        removed: List[str] = []
        for path in self._backup_dirs()[keep_count:]:
            shutil.rmtree(path)
            removed.append(path.name)
            logger.info(f"Deleted old backup: {path.name}")
        return removed
