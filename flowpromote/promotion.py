"""Export, import and dev-to-prod promotion of managed workflows."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, List, Optional, Sequence

from .config import Environment, FlowPromoteConfig
from .errors import FlowPromoteError, PreconditionError, WorkflowValidationError
from .fsutils import compact_timestamp, read_json, utc_now, write_json
from .injector import VariableInjector
from .models import (
    DeployResult,
    DeploymentCheck,
    ExportResult,
    SyncResult,
    WorkflowStatus,
    summarize,
    workflow_files,
)
from .naming import NameCodec
from .reconcile import Reconciler, prepare_push_payload, strip_bookkeeping
from .remote import WorkflowClient

if TYPE_CHECKING:
    from .backup import BackupEngine

logger = logging.getLogger(__name__)

# Per-entity failures that are recorded instead of aborting the batch.
ENTITY_ERRORS = (FlowPromoteError, OSError, ValueError)


async def export_workflow(
    client: WorkflowClient,
    codec: NameCodec,
    summary: dict[str, Any],
    directory: Path,
) -> ExportResult:
    """Fetch one workflow by id and write it, stripped of bookkeeping, to ``directory``."""
    full = await client.get_workflow(summary["id"])
    name = summary["name"]
    file_name = codec.file_name(name)
    write_json(directory / file_name, strip_bookkeeping(full))
    nodes = full.get("nodes")
    return ExportResult(
        name=name,
        base_name=codec.base_name(name),
        environment=codec.environment_label(name),
        file_name=file_name,
        status="success",
        active=full.get("active", summary.get("active")),
        node_count=len(nodes) if isinstance(nodes, list) else 0,
    )


def load_workflow_file(path: Path) -> dict[str, Any]:
    data = read_json(path)
    if not isinstance(data, dict):
        raise WorkflowValidationError(f"{path.name}: expected a JSON object")
    if not data.get("name"):
        raise WorkflowValidationError("Workflow data missing name field")
    return data


class PromotionEngine:
    """Moves managed workflows between the service and the local filesystem."""

    def __init__(
        self,
        config: FlowPromoteConfig,
        client: WorkflowClient,
        codec: Optional[NameCodec] = None,
        injector: Optional[VariableInjector] = None,
        backups: Optional[BackupEngine] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._codec = codec or NameCodec(config.environments)
        self._injector = injector or VariableInjector(config)
        self._backups = backups
        self._paths = config.paths

    # ------------------------------------------------------------------
    # Managed set
    def managed_base_names(self, environment: Optional[Environment] = None) -> List[str]:
        return [
            w.base_name
            for w in self._config.managed_workflows
            if environment is None or environment in w.environments
        ]

    def managed_display_names(self, environment: Optional[Environment] = None) -> List[str]:
        names: List[str] = []
        environments = [environment] if environment else self._codec.environments
        for env in environments:
            names.extend(
                self._codec.display_name(base, env) for base in self.managed_base_names(env)
            )
        return names

    async def list_managed(
        self, environment: Optional[Environment] = None
    ) -> List[dict[str, Any]]:
        """Return remote workflows whose names are managed display names."""
        managed = set(self.managed_display_names(environment))
        return [w for w in await self._client.list_workflows() if w.get("name") in managed]

    def _select(
        self,
        remote: Iterable[dict[str, Any]],
        environment: Environment,
        base_names: Sequence[str],
    ) -> List[dict[str, Any]]:
        wanted = set(base_names)
        return [
            w
            for w in remote
            if self._codec.environment_of(w.get("name", "")) == environment
            and self._codec.base_name(w.get("name", "")) in wanted
        ]

    # ------------------------------------------------------------------
    # Export
    async def export(
        self, environment: Environment, base_names: Optional[Sequence[str]] = None
    ) -> List[ExportResult]:
        logger.info(f"Exporting managed workflows for {environment.value}")
        remote = await self._client.list_workflows()
        if base_names:
            targets = self._select(remote, environment, base_names)
        else:
            managed = self.managed_display_names(environment)
            by_name = {w.get("name"): w for w in remote}
            targets = [by_name[name] for name in managed if name in by_name]
            for name in managed:
                if name not in by_name:
                    logger.warning(f"Managed workflow not found on the service: {name}")
        logger.info(f"Found {len(targets)} workflows to export")

        results: List[ExportResult] = []
        for workflow in targets:
            try:
                result = await export_workflow(
                    self._client, self._codec, workflow, self._paths.workflows_dir
                )
                logger.info(f"Exported: {workflow['name']}")
            except ENTITY_ERRORS as exc:
                logger.error(f"Failed to export {workflow.get('name')}: {exc}")
                result = ExportResult(name=workflow.get("name", "?"), status="failed", error=str(exc))
            results.append(result)

        self._write_summary(
            f"_export_summary_{environment.value}.json",
            {"timestamp": utc_now().isoformat(), "environment": environment.value},
            results,
            key="workflows",
        )
        return results

    # ------------------------------------------------------------------
    # Deploy (dev -> prod)
    async def deploy(
        self, base_names: Sequence[str], version: Optional[str] = None
    ) -> List[DeployResult]:
        if not base_names:
            raise PreconditionError("Please specify workflow base names to deploy")
        logger.info("Deploying workflows from dev to prod")

        if self._config.settings.backup_before_deploy and self._backups is not None:
            logger.info("Creating backup before deploying to production")
            await self._backups.create_backup(
                Environment.PROD, f"pre_deploy_auto_{compact_timestamp()}"
            )

        remote = await self._client.list_workflows()
        dev_workflows = self._select(remote, Environment.DEV, base_names)
        if not dev_workflows:
            raise PreconditionError(
                f"No dev workflows found to deploy for: {', '.join(base_names)}"
            )

        reconciler = Reconciler(self._client, remote)
        results: List[DeployResult] = []
        for dev in dev_workflows:
            base_name = self._codec.base_name(dev["name"])
            try:
                results.append(await self._deploy_one(reconciler, dev, base_name, version))
            except ENTITY_ERRORS as exc:
                logger.error(f"Failed to deploy {dev['name']}: {exc}")
                results.append(
                    DeployResult(
                        base_name=base_name, status="failed", dev_name=dev["name"], error=str(exc)
                    )
                )
        return results

    async def _deploy_one(
        self,
        reconciler: Reconciler,
        dev: dict[str, Any],
        base_name: str,
        version: Optional[str],
    ) -> DeployResult:
        prod_name = self._codec.display_name(base_name, Environment.PROD)
        logger.info(f"Deploying: {dev['name']} -> {prod_name}")

        source = self._paths.workflows_dir / self._codec.file_name(dev["name"])
        workflow = strip_bookkeeping(load_workflow_file(source))
        workflow.pop("active", None)
        workflow["name"] = prod_name

        self._prepare(workflow, base_name, Environment.PROD, version)
        outcome = await reconciler.push(
            prepare_push_payload(workflow, self._config.settings.active_policy)
        )
        return DeployResult(
            base_name=base_name,
            action=outcome.action,
            dev_name=dev["name"],
            prod_name=prod_name,
            prod_id=outcome.workflow_id,
        )

    def _prepare(
        self,
        workflow: dict[str, Any],
        base_name: str,
        environment: Environment,
        version: Optional[str],
    ) -> None:
        self._injector.inject(workflow, base_name, environment, version)
        self._injector.remap_credentials(workflow, base_name, environment)
        self._injector.strip_webhook_ids(workflow)

    # ------------------------------------------------------------------
    # Import (files -> same environment)
    async def import_workflows(
        self,
        environment: Environment,
        base_names: Optional[Sequence[str]] = None,
        version: Optional[str] = None,
    ) -> List[SyncResult]:
        logger.info(f"Importing local workflows to {environment.value}")
        workflows_dir = self._paths.workflows_dir
        if not workflows_dir.is_dir():
            raise PreconditionError(f"Export directory not found: {workflows_dir}")
        files = workflow_files(workflows_dir)
        if not files:
            raise PreconditionError(f"No workflow files found in {workflows_dir}")

        if base_names:
            wanted = {
                self._codec.file_name(self._codec.display_name(b, environment))
                for b in base_names
            }
            files = [f for f in files if f.name in wanted]
            logger.info(f"Filtering to {len(files)} specific workflows")
        if not files:
            logger.warning("No matching workflow files found")
            return []

        if self._config.settings.backup_before_import and self._backups is not None:
            await self._backups.create_backup(
                environment, f"pre_import_auto_{compact_timestamp()}"
            )

        reconciler = await Reconciler.snapshot(self._client)
        results: List[SyncResult] = []
        for path in files:
            try:
                results.append(await self._import_one(reconciler, path, environment, version))
            except ENTITY_ERRORS as exc:
                logger.error(f"Failed to import {path.name}: {exc}")
                results.append(SyncResult(file_name=path.name, status="failed", error=str(exc)))

        self._write_summary(
            f"_import_summary_{environment.value}.json",
            {"importedAt": utc_now().isoformat(), "environment": environment.value},
            results,
            key="results",
        )
        counts = summarize(results)
        logger.info(f"Import completed: {counts.successful} successful, {counts.failed} failed")
        return results

    async def _import_one(
        self,
        reconciler: Reconciler,
        path: Path,
        environment: Environment,
        version: Optional[str],
    ) -> SyncResult:
        workflow = load_workflow_file(path)
        base_name = self._codec.base_name(workflow["name"])
        target = self._codec.display_name(base_name, environment)
        if workflow["name"] != target:
            logger.warning(f"Workflow name mismatch: {workflow['name']} -> {target}")
            workflow["name"] = target

        self._prepare(workflow, base_name, environment, version)
        outcome = await reconciler.push(
            prepare_push_payload(workflow, self._config.settings.active_policy)
        )
        return SyncResult(
            file_name=path.name,
            workflow_name=target,
            action=outcome.action,
            workflow_id=outcome.workflow_id,
            previously_active=outcome.previously_active,
        )

    # ------------------------------------------------------------------
    # Reporting
    async def status(self) -> List[WorkflowStatus]:
        remote = {w.get("name"): w for w in await self._client.list_workflows()}
        rows: List[WorkflowStatus] = []
        for managed in self._config.managed_workflows:
            for env in managed.environments:
                display = self._codec.display_name(managed.base_name, env)
                workflow = remote.get(display)
                nodes = workflow.get("nodes") if workflow else None
                rows.append(
                    WorkflowStatus(
                        base_name=managed.base_name,
                        environment=env.value,
                        display_name=display,
                        found=workflow is not None,
                        active=bool(workflow and workflow.get("active")),
                        node_count=len(nodes) if isinstance(nodes, list) else 0,
                    )
                )
        return rows

    async def verify_deployment(self, base_names: Sequence[str]) -> List[DeploymentCheck]:
        """Check that every ``base_names`` entry exists in prod after a deploy."""
        remote = {w.get("name"): w for w in await self._client.list_workflows()}
        checks: List[DeploymentCheck] = []
        for base_name in base_names:
            prod_name = self._codec.display_name(base_name, Environment.PROD)
            workflow = remote.get(prod_name)
            if workflow is None:
                checks.append(
                    DeploymentCheck(
                        base_name=base_name,
                        prod_name=prod_name,
                        verified=False,
                        error=f"Production workflow not found: {prod_name}",
                    )
                )
                continue
            nodes = workflow.get("nodes")
            checks.append(
                DeploymentCheck(
                    base_name=base_name,
                    prod_name=prod_name,
                    verified=True,
                    active=bool(workflow.get("active")),
                    node_count=len(nodes) if isinstance(nodes, list) else 0,
                )
            )
        missing = [c.error for c in checks if not c.verified]
        if missing:
            raise PreconditionError(f"Verification failed: {', '.join(missing)}")
        return checks

    def _write_summary(
        self, file_name: str, header: dict[str, Any], results: Sequence[Any], key: str
    ) -> Path:
        counts = summarize(results)
        summary = {
            **header,
            "totalWorkflows": counts.total,
            "successful": counts.successful,
            "failed": counts.failed,
            key: [r.to_json_dict() for r in results],
        }
        path = write_json(self._paths.logs_dir / file_name, summary)
        logger.info(f"Summary saved: {path}")
        return path
