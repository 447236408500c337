"""Tests for backup verification, backup comparison and file validation."""

import json
import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from factories import make_workflow, write_json_file
from flowpromote.audit import BackupAuditor, WorkflowValidator
from flowpromote.errors import PreconditionError
from flowpromote.models import MANIFEST_FILE


def _write_backup(config, name, workflows, manifest=True, **manifest_fields):
    directory = config.paths.backups_dir / name
    for file_name, workflow in workflows.items():
        write_json_file(directory / file_name, workflow)
    if manifest:
        data = {
            "backupName": name,
            "environment": "prod",
            "createdAt": "2024-12-01T10:00:00+00:00",
            "workflowCount": len(workflows),
            "failedCount": 0,
            "workflows": [],
        }
        data.update(manifest_fields)
        write_json_file(directory / MANIFEST_FILE, data)
    return directory


def _standard_workflows(**overrides):
    workflows = {
        "order_sync.json": make_workflow("Order Sync-prod"),
        "invoice_export.json": make_workflow("Invoice Export-prod"),
    }
    workflows.update(overrides)
    return workflows


def test_verify_complete_backup_passes(config):
    _write_backup(config, "good", _standard_workflows())

    report = BackupAuditor(config).verify("good")

    assert report.valid
    assert report.errors == []
    assert report.workflow_count == 2


def test_verify_missing_manifest_fails(config):
    _write_backup(config, "no_manifest", _standard_workflows(), manifest=False)

    report = BackupAuditor(config).verify("no_manifest")

    assert not report.valid
    assert any("metadata" in e for e in report.errors)


def test_verify_old_backup_warns_but_passes(config):
    created = datetime.now(timezone.utc) - timedelta(days=10)
    _write_backup(config, "old", _standard_workflows(), createdAt=created.isoformat())

    report = BackupAuditor(config).verify("old")

    assert report.valid
    assert any("10 days old" in w for w in report.warnings)


def test_verify_age_uses_manifest_not_directory_mtime(config):
    created = datetime.now(timezone.utc) - timedelta(hours=1)
    directory = _write_backup(config, "fresh", _standard_workflows(), createdAt=created.isoformat())
    ten_days_ago = time.time() - 10 * 86400
    os.utime(directory, (ten_days_ago, ten_days_ago))

    report = BackupAuditor(config).verify("fresh")

    assert not any("days old" in w for w in report.warnings)


def test_verify_structural_errors(config):
    broken = make_workflow("Broken-prod")
    del broken["connections"]
    broken["nodes"].append({"name": "No Type"})
    workflows = _standard_workflows(
        **{"broken.json": broken, "copy.json": make_workflow("Order Sync-prod")}
    )
    _write_backup(config, "bad", workflows, workflowCount=7)

    report = BackupAuditor(config).verify("bad")

    assert not report.valid
    joined = "\n".join(report.errors)
    assert "missing required field 'connections'" in joined
    assert "missing name or type" in joined
    assert "Duplicate workflow name 'Order Sync-prod'" in joined
    assert any("Manifest records 7" in w for w in report.warnings)


def test_verify_manifest_problems(config):
    _write_backup(config, "renamed", _standard_workflows(), backupName="other")
    directory = config.paths.backups_dir / "renamed"
    manifest = json.loads((directory / MANIFEST_FILE).read_text())
    del manifest["createdAt"]
    write_json_file(directory / MANIFEST_FILE, manifest)

    report = BackupAuditor(config).verify("renamed")

    assert "Missing metadata field: createdAt" in report.errors
    assert any("does not match" in w for w in report.warnings)


def test_verify_empty_backup_fails(config):
    _write_backup(config, "empty", {})
    report = BackupAuditor(config).verify("empty")
    assert "No workflow files found in backup" in report.errors


def test_verify_all(config):
    _write_backup(config, "good", _standard_workflows())
    _write_backup(config, "bad", _standard_workflows(), manifest=False)

    summary = BackupAuditor(config).verify_all()

    assert (summary.total, summary.passed, summary.failed) == (2, 1, 1)


def test_compare_identical_backups(config):
    _write_backup(config, "a", _standard_workflows())
    _write_backup(config, "b", _standard_workflows())

    report = BackupAuditor(config).compare("a", "b")

    assert report.identical
    assert report.differences == []


def test_compare_reports_added_node_of_existing_type(config):
    _write_backup(config, "a", _standard_workflows())
    _write_backup(
        config, "b", _standard_workflows(**{"order_sync.json": make_workflow("Order Sync-prod", extra_nodes=1)})
    )

    report = BackupAuditor(config).compare("a", "b")

    assert len(report.differences) == 1
    diff = report.differences[0]
    assert diff.type == "node_count_changed"
    assert diff.file == "order_sync.json"
    assert diff.details == {"from": 2, "to": 3}


def test_compare_reports_file_and_field_changes(config):
    changed = make_workflow("Invoice Export-prod", active=True, tags=[{"name": "billing"}])
    changed["nodes"][1]["type"] = "n8n-nodes-base.slack"
    changed["connections"]["Call ERP"] = {"main": [[]]}
    _write_backup(config, "a", _standard_workflows())
    _write_backup(
        config,
        "b",
        {"invoice_export.json": changed, "new_flow.json": make_workflow("New Flow-prod")},
    )

    report = BackupAuditor(config).compare("a", "b")

    types = [d.type for d in report.differences]
    assert types == [
        "file_missing",
        "file_extra",
        "workflow_status_changed",
        "node_types_changed",
        "tags_changed",
        "connections_changed",
    ]
    node_types = report.differences[3].details
    assert node_types == {
        "added": ["n8n-nodes-base.slack"],
        "removed": ["n8n-nodes-base.httpRequest"],
    }
    assert set(report.by_file()) == {"order_sync.json", "new_flow.json", "invoice_export.json"}


def test_compare_records_error_for_non_object_file(config):
    _write_backup(config, "a", _standard_workflows())
    _write_backup(config, "b", _standard_workflows(**{"order_sync.json": [1, 2]}))

    report = BackupAuditor(config).compare("a", "b")

    assert [(d.type, d.file) for d in report.differences] == [
        ("comparison_error", "order_sync.json")
    ]
    assert "expected a JSON object" in report.differences[0].description


def test_compare_missing_backup(config):
    _write_backup(config, "a", _standard_workflows())
    with pytest.raises(PreconditionError):
        BackupAuditor(config).compare("a", "missing")


def test_comparison_report_is_saved(config, tmp_path):
    _write_backup(config, "a", _standard_workflows())
    _write_backup(config, "b", {"order_sync.json": make_workflow("Order Sync-prod")})
    auditor = BackupAuditor(config)

    path = auditor.save_comparison_report(auditor.compare("a", "b"), tmp_path / "cmp.json")

    data = json.loads(path.read_text())
    assert data["backup1"] == "a"
    assert data["totalDifferences"] == 1
    assert data["changeTypes"] == {"file_missing": 1}


def test_validator_flags_production_test_content(config):
    directory = config.paths.workflows_dir
    risky = make_workflow("Order Sync-prod")
    risky["nodes"][1]["parameters"]["url"] = "http://localhost:8080/orders"
    risky["nodes"][1]["name"] = "Debug Call"
    risky["connections"] = {"Schedule Trigger": {"main": [[]]}}
    write_json_file(directory / "order_sync.json", risky)

    result = WorkflowValidator(config).validate_directory(directory)

    assert not result.valid
    assert [i.message for i in result.errors] == ["Production workflow contains test/debug content"]
    messages = [i.message for i in result.warnings]
    assert any("may contain test URLs" in m for m in messages)
    assert any("test/debug name" in m for m in messages)


def test_validator_naming_and_node_checks(config):
    directory = config.paths.workflows_dir
    duplicate = make_workflow("Invoice Export-dev")
    duplicate["nodes"][1]["name"] = "Schedule Trigger"
    write_json_file(directory / "invoice_export.json", duplicate)
    write_json_file(directory / "scratch.json", make_workflow("Scratchpad"))
    write_json_file(directory / "other.json", make_workflow("Other Flow-dev"))
    write_json_file(directory / "_export_summary_dev.json", {"ignored": True})

    result = WorkflowValidator(config).validate_directory(directory)

    assert result.files_checked == 3
    assert [i.message for i in result.errors] == ["Duplicate node name: Schedule Trigger"]
    warnings = {i.file: i.message for i in result.warnings}
    assert "doesn't follow suffix convention" in warnings["scratch.json"]
    assert "not in managed workflows list" in warnings["other.json"]
