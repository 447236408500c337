"""Builders shared by the unit tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Optional

from flowpromote.config import FlowPromoteConfig, build_config

MANAGED_WORKFLOWS = [
    {
        "base_name": "Order Sync",
        "description": "Pushes shop orders to the ERP",
        "variables": {
            "dev": {"apiUrl": "https://erp-dev.internal/api", "batchSize": 10},
            "prod": {"apiUrl": "https://erp.internal/api", "batchSize": 500},
        },
        "credentials": {
            "prod": {"slackApi": {"id": "cred-prod-1", "name": "Slack Prod"}},
        },
    },
    {"base_name": "Invoice Export"},
]


def config_data(tmp_path: Path, **overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "remote": {"base_url": "http://n8n.test", "api_key": "secret"},
        "paths": {
            "workflows_dir": str(tmp_path / "workflows"),
            "backups_dir": str(tmp_path / "backups"),
            "logs_dir": str(tmp_path / "logs"),
        },
        "managed_workflows": copy.deepcopy(MANAGED_WORKFLOWS),
    }
    data.update(overrides)
    return data


def make_config(tmp_path: Path, **overrides: Any) -> FlowPromoteConfig:
    return build_config(config_data(tmp_path, **overrides))


def make_workflow(
    name: str,
    workflow_id: Optional[str] = None,
    active: bool = False,
    extra_nodes: int = 0,
    **fields: Any,
) -> dict[str, Any]:
    """Build a small trigger -> http request workflow as the service returns it."""
    nodes = [
        {
            "id": "trigger-1",
            "name": "Schedule Trigger",
            "type": "n8n-nodes-base.scheduleTrigger",
            "typeVersion": 1,
            "position": [0, 0],
            "parameters": {"rule": {"interval": [{"field": "hours"}]}},
        },
        {
            "id": "http-1",
            "name": "Call ERP",
            "type": "n8n-nodes-base.httpRequest",
            "typeVersion": 4,
            "position": [220, 0],
            "parameters": {"url": "https://erp.internal/api/orders", "method": "POST"},
            "credentials": {"slackApi": {"id": "cred-dev-1", "name": "Slack Dev"}},
            "webhookId": "6f1c1e4e-webhook",
        },
    ]
    for index in range(extra_nodes):
        nodes.append(
            {
                "id": f"http-extra-{index}",
                "name": f"Call ERP {index + 2}",
                "type": "n8n-nodes-base.httpRequest",
                "typeVersion": 4,
                "position": [440 + 220 * index, 0],
                "parameters": {"url": "https://erp.internal/api/audit"},
            }
        )
    workflow = {
        "name": name,
        "active": active,
        "nodes": nodes,
        "connections": {
            "Schedule Trigger": {
                "main": [[{"node": "Call ERP", "type": "main", "index": 0}]]
            }
        },
        "settings": {"executionOrder": "v1"},
        "tags": [{"id": "t1", "name": "erp"}],
        "createdAt": "2024-11-01T10:00:00.000Z",
        "updatedAt": "2024-11-02T10:00:00.000Z",
        "versionId": "v-123",
    }
    if workflow_id is not None:
        workflow["id"] = workflow_id
    workflow.update(fields)
    return workflow


def write_json_file(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path
