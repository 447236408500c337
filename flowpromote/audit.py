"""Offline integrity checks and structural diffs of backups and exported files."""

from __future__ import annotations

import json
import logging
import re
import time
from collections import Counter, defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field

from .config import Environment, FlowPromoteConfig
from .diffing import compare_workflows
from .errors import PreconditionError
from .fsutils import (
    backup_created_time,
    compact_timestamp,
    directory_size,
    read_json,
    utc_now,
    write_json,
)
from .models import MANIFEST_FILE, CamelModel, Difference, workflow_files
from .naming import NameCodec

logger = logging.getLogger(__name__)

MAX_BACKUP_AGE_DAYS = 7
MIN_BACKUP_BYTES = 1000
REQUIRED_MANIFEST_FIELDS = ("backupName", "environment", "createdAt", "workflowCount")
REQUIRED_WORKFLOW_FIELDS = ("name", "nodes", "connections")


class VerificationReport(CamelModel):
    """Errors fail a backup, warnings never do."""

    backup_name: str
    verified_at: str = Field(default_factory=lambda: utc_now().isoformat())
    workflow_count: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_json_dict(self) -> dict[str, Any]:
        return {**super().to_json_dict(), "valid": self.valid}


class VerifyAllSummary(CamelModel):
    total: int
    passed: int
    failed: int
    reports: List[VerificationReport] = Field(default_factory=list)


class ComparisonReport(CamelModel):
    backup1: str
    backup2: str
    compared_at: str = Field(default_factory=lambda: utc_now().isoformat())
    differences: List[Difference] = Field(default_factory=list)

    @property
    def identical(self) -> bool:
        return not self.differences

    def change_types(self) -> Dict[str, int]:
        return dict(Counter(d.type for d in self.differences))

    def by_file(self) -> Dict[str, List[Difference]]:
        grouped: Dict[str, List[Difference]] = defaultdict(list)
        for diff in self.differences:
            grouped[diff.file or "general"].append(diff)
        return dict(grouped)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "comparedAt": self.compared_at,
            "backup1": self.backup1,
            "backup2": self.backup2,
            "totalDifferences": len(self.differences),
            "changeTypes": self.change_types(),
            "differences": [d.to_json_dict() for d in self.differences],
        }


class BackupAuditor:
    """Verify and compare backups without touching the workflow service."""

    def __init__(self, config: FlowPromoteConfig) -> None:
        self._root = config.paths.backups_dir
        self._reports_dir = config.paths.logs_dir

    def verify(self, backup_name: str) -> VerificationReport:
        report = VerificationReport(backup_name=backup_name)
        backup_dir = self._root / backup_name
        if not backup_dir.is_dir():
            report.errors.append(f"Backup directory not found: {backup_dir}")
            return report

        manifest_count = self._check_manifest(backup_dir, report)

        files = workflow_files(backup_dir)
        report.workflow_count = len(files)
        if not files:
            report.errors.append("No workflow files found in backup")

        seen: Dict[str, str] = {}
        for path in files:
            name = self._check_workflow_file(path, report)
            if name is None:
                continue
            if name in seen:
                report.errors.append(
                    f"Duplicate workflow name '{name}' in {seen[name]} and {path.name}"
                )
            else:
                seen[name] = path.name

        age_days = (time.time() - backup_created_time(backup_dir, MANIFEST_FILE)) / 86400
        if age_days > MAX_BACKUP_AGE_DAYS:
            report.warnings.append(f"Backup is {int(age_days)} days old")
        size = directory_size(backup_dir)
        if size < MIN_BACKUP_BYTES:
            report.warnings.append(f"Backup is unusually small ({size} bytes)")

        if manifest_count is not None and manifest_count != len(files):
            report.warnings.append(
                f"Manifest records {manifest_count} workflows but {len(files)} files were found"
            )

        logger.info(
            f"Verified {backup_name}: {len(report.errors)} errors, {len(report.warnings)} warnings"
        )
        return report

    def _check_manifest(
        self, backup_dir: Path, report: VerificationReport
    ) -> Optional[int]:
        """Check the manifest sidecar and return its recorded workflow count."""
        manifest_path = backup_dir / MANIFEST_FILE
        if not manifest_path.is_file():
            report.errors.append("Backup metadata file missing")
            return None
        try:
            manifest = read_json(manifest_path)
        except (OSError, json.JSONDecodeError) as exc:
            report.errors.append(f"Invalid backup metadata: {exc}")
            return None
        if not isinstance(manifest, dict):
            report.errors.append("Invalid backup metadata: expected a JSON object")
            return None

        for field in REQUIRED_MANIFEST_FIELDS:
            if field not in manifest:
                report.errors.append(f"Missing metadata field: {field}")
        recorded = manifest.get("backupName")
        if recorded is not None and recorded != backup_dir.name:
            report.warnings.append(
                f"Metadata backup name '{recorded}' does not match directory '{backup_dir.name}'"
            )
        count = manifest.get("workflowCount")
        return count if isinstance(count, int) else None

    @staticmethod
    def _check_workflow_file(path: Path, report: VerificationReport) -> Optional[str]:
        try:
            workflow = read_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            report.errors.append(f"{path.name}: invalid JSON: {exc}")
            return None
        if not isinstance(workflow, dict):
            report.errors.append(f"{path.name}: expected a JSON object")
            return None

        for field in REQUIRED_WORKFLOW_FIELDS:
            if field not in workflow:
                report.errors.append(f"{path.name}: missing required field '{field}'")

        nodes = workflow.get("nodes")
        if isinstance(nodes, list):
            if not nodes:
                report.warnings.append(f"{path.name}: workflow has no nodes")
            for index, node in enumerate(nodes):
                if not isinstance(node, dict) or not node.get("name") or not node.get("type"):
                    report.errors.append(f"{path.name}: node {index} missing name or type")
        return workflow.get("name")

    def verify_all(self) -> VerifyAllSummary:
        if not self._root.is_dir():
            return VerifyAllSummary(total=0, passed=0, failed=0)
        names = sorted(p.name for p in self._root.iterdir() if p.is_dir())
        reports = [self.verify(name) for name in names]
        passed = sum(1 for r in reports if r.valid)
        return VerifyAllSummary(
            total=len(reports), passed=passed, failed=len(reports) - passed, reports=reports
        )

    def save_verification_report(self, report: VerificationReport) -> Path:
        path = self._reports_dir / f"_verification_{report.backup_name}_{compact_timestamp()}.json"
        return write_json(path, report.to_json_dict())

    def compare(self, backup1: str, backup2: str) -> ComparisonReport:
        dir1, dir2 = self._root / backup1, self._root / backup2
        for name, directory in ((backup1, dir1), (backup2, dir2)):
            if not directory.is_dir():
                raise PreconditionError(f"Backup not found: {name}")

        files1 = {p.name for p in workflow_files(dir1)}
        files2 = {p.name for p in workflow_files(dir2)}
        report = ComparisonReport(backup1=backup1, backup2=backup2)

        for file in sorted(files1 - files2):
            report.differences.append(
                Difference(
                    type="file_missing",
                    description=f"File exists in {backup1} but not in {backup2}",
                    file=file,
                )
            )
        for file in sorted(files2 - files1):
            report.differences.append(
                Difference(
                    type="file_extra",
                    description=f"File exists in {backup2} but not in {backup1}",
                    file=file,
                )
            )

        for file in sorted(files1 & files2):
            try:
                old, new = read_json(dir1 / file), read_json(dir2 / file)
            except (OSError, json.JSONDecodeError) as exc:
                report.differences.append(
                    Difference(
                        type="comparison_error",
                        description=f"Error comparing files: {exc}",
                        file=file,
                    )
                )
                continue
            if not isinstance(old, dict) or not isinstance(new, dict):
                report.differences.append(
                    Difference(
                        type="comparison_error",
                        description="Error comparing files: expected a JSON object",
                        file=file,
                    )
                )
                continue
            report.differences.extend(compare_workflows(old, new, file))

        logger.info(f"Compared {backup1} with {backup2}: {len(report.differences)} differences")
        return report

    @staticmethod
    def save_comparison_report(report: ComparisonReport, path: Path) -> Path:
        return write_json(path, report.to_json_dict())


class ValidationIssue(CamelModel):
    file: str
    message: str


class ValidationResult(CamelModel):
    files_checked: int = 0
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


_TEST_CONTENT = re.compile(r"test\.|localhost|127\.0\.0\.1|debug|example\.com", re.IGNORECASE)
_TEST_URL = re.compile(r"test\.|localhost|127\.0\.0\.1")


class WorkflowValidator:
    """Suffix-aware validation of exported workflow files."""

    def __init__(self, config: FlowPromoteConfig, codec: Optional[NameCodec] = None) -> None:
        self._config = config
        self._codec = codec or NameCodec(config.environments)

    def validate_directory(self, directory: Path) -> ValidationResult:
        if not directory.is_dir():
            raise PreconditionError(f"No exported workflows found in {directory}")
        result = ValidationResult()
        for path in workflow_files(directory):
            result.files_checked += 1
            self.validate_file(path, result)
        return result

    def validate_file(self, path: Path, result: ValidationResult) -> None:
        def error(message: str) -> None:
            result.errors.append(ValidationIssue(file=path.name, message=message))

        def warning(message: str) -> None:
            result.warnings.append(ValidationIssue(file=path.name, message=message))

        try:
            workflow = read_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            error(f"Invalid JSON: {exc}")
            return
        if not isinstance(workflow, dict):
            error("Invalid JSON: expected an object")
            return

        for field in REQUIRED_WORKFLOW_FIELDS:
            if not workflow.get(field):
                error(f"Missing required field: {field}")

        name = workflow.get("name")
        env = self._codec.environment_of(name) if isinstance(name, str) else None
        if isinstance(name, str):
            base_name = self._codec.base_name(name)
            managed = self._config.find_managed(base_name)
            if self._codec.environment_of(name) is None or base_name == name:
                warning(f'Workflow name "{name}" doesn\'t follow suffix convention')
            elif managed is None:
                warning(f'Workflow "{name}" is not in managed workflows list')
            else:
                if env not in managed.environments:
                    warning(f'Environment "{env.value}" not configured for workflow "{base_name}"')
                if env == Environment.PROD and _TEST_CONTENT.search(json.dumps(workflow)):
                    error("Production workflow contains test/debug content")

        nodes = workflow.get("nodes")
        if not isinstance(nodes, list):
            return
        seen: set[str] = set()
        for node in nodes:
            if not isinstance(node, dict) or not node.get("name") or not node.get("type"):
                error(f"Node missing name or type: {json.dumps(node)}")
                continue
            if node["name"] in seen:
                error(f"Duplicate node name: {node['name']}")
            seen.add(node["name"])

            if env == Environment.PROD:
                if _TEST_URL.search(json.dumps(node.get("parameters") or {})):
                    warning(f'Node "{node["name"]}" may contain test URLs in production workflow')
                lowered = node["name"].lower()
                if "test" in lowered or "debug" in lowered:
                    warning(f'Node "{node["name"]}" has test/debug name in production workflow')
