"""Tests for environment variable injection and credential remapping."""

import copy
import json
from datetime import date

from factories import make_workflow
from flowpromote.config import Environment
from flowpromote.injector import VariableInjector
from flowpromote.nodes import CODE_NODE_TYPE, STICKY_NOTE_TYPE, render_script


def _injector(config) -> VariableInjector:
    ids = iter(f"node-{i}" for i in range(100))
    return VariableInjector(config, today=lambda: date(2024, 12, 1), id_factory=lambda: next(ids))


def _node(workflow, name):
    return next(n for n in workflow["nodes"] if n["name"] == name)


def test_inject_creates_configuration_node_and_rewires_trigger(config):
    workflow = make_workflow("Order Sync-prod")

    _injector(config).inject(workflow, "Order Sync", Environment.PROD)

    node = _node(workflow, "Configuration")
    assert node["type"] == CODE_NODE_TYPE
    assert node["position"] == [-720, -80]
    assert node["parameters"]["jsCode"] == render_script(
        {"apiUrl": "https://erp.internal/api", "batchSize": 500}
    )
    assert workflow["connections"]["Schedule Trigger"]["main"][0] == [
        {"node": "Configuration", "type": "main", "index": 0}
    ]
    assert workflow["connections"]["Configuration"] == {"main": [[]]}


def test_inject_is_idempotent(config):
    workflow = make_workflow("Order Sync-prod")
    injector = _injector(config)

    injector.inject(workflow, "Order Sync", Environment.PROD, version="v1.2.0")
    first = copy.deepcopy(workflow)
    injector.inject(workflow, "Order Sync", Environment.PROD, version="v1.2.0")

    assert workflow == first
    assert len([n for n in workflow["nodes"] if n["name"] == "Configuration"]) == 1


def test_version_is_only_injected_for_prod(config):
    dev = make_workflow("Order Sync-dev")
    prod = make_workflow("Order Sync-prod")
    injector = _injector(config)

    injector.inject(dev, "Order Sync", Environment.DEV, version="v1.2.0")
    injector.inject(prod, "Order Sync", Environment.PROD, version="v1.2.0")

    assert "version" not in _node(dev, "Configuration")["parameters"]["jsCode"]
    script = _node(prod, "Configuration")["parameters"]["jsCode"]
    assert json.loads(script[len("return "):-1])["version"] == "v1.2.0"


def test_version_note_is_created_then_updated(config):
    workflow = make_workflow("Order Sync-prod")
    injector = _injector(config)

    injector.inject(workflow, "Order Sync", Environment.PROD, version="v1.0.0")
    note = _node(workflow, "Version Info")
    assert note["type"] == STICKY_NOTE_TYPE
    assert note["parameters"]["color"] == 4
    assert "v1.0.0" in note["parameters"]["content"]
    assert "2024-12-01" in note["parameters"]["content"]

    injector.inject(workflow, "Order Sync", Environment.PROD, version="v1.0.1")
    notes = [n for n in workflow["nodes"] if n["type"] == STICKY_NOTE_TYPE]
    assert len(notes) == 1
    assert "v1.0.1" in notes[0]["parameters"]["content"]
    assert notes[0]["id"] == note["id"]


def test_existing_non_code_configuration_node_is_converted(config):
    workflow = make_workflow("Order Sync-dev")
    workflow["nodes"].append(
        {
            "id": "cfg-1",
            "name": "Configuration",
            "type": "n8n-nodes-base.set",
            "typeVersion": 3,
            "position": [100, 100],
            "parameters": {"values": {}},
            "notes": "keep me",
        }
    )

    _injector(config).inject(workflow, "Order Sync", Environment.DEV)

    node = _node(workflow, "Configuration")
    assert node["type"] == CODE_NODE_TYPE
    assert node["typeVersion"] == 2
    assert node["id"] == "cfg-1"
    assert node["position"] == [100, 100]
    assert node["notes"] == "keep me"
    assert "erp-dev.internal" in node["parameters"]["jsCode"]


def test_malformed_configuration_node_is_rebuilt(config, caplog):
    workflow = make_workflow("Order Sync-dev")
    workflow["nodes"].append({"id": "cfg-1", "name": "Variables", "position": [100, 100]})

    with caplog.at_level("WARNING", logger="flowpromote.injector"):
        _injector(config).inject(workflow, "Order Sync", Environment.DEV)

    node = _node(workflow, "Variables")
    assert node["type"] == CODE_NODE_TYPE
    assert node["id"] == "cfg-1"
    assert node["position"] == [100, 100]
    assert "erp-dev.internal" in node["parameters"]["jsCode"]
    assert "malformed" in caplog.text


def test_inject_leaves_workflow_without_nodes_untouched(config):
    workflow = {"name": "Order Sync-prod", "connections": {}}
    _injector(config).inject(workflow, "Order Sync", Environment.PROD, version="v1.0.0")
    assert workflow == {"name": "Order Sync-prod", "connections": {}}


def test_inject_ignores_unmanaged_and_variable_free_workflows(config):
    unmanaged = make_workflow("Other-prod")
    no_vars = make_workflow("Invoice Export-prod")
    before = (copy.deepcopy(unmanaged), copy.deepcopy(no_vars))

    injector = _injector(config)
    injector.inject(unmanaged, "Other", Environment.PROD)
    injector.inject(no_vars, "Invoice Export", Environment.PROD)

    assert (unmanaged, no_vars) == before


def test_remap_credentials(config):
    workflow = make_workflow("Order Sync-prod")
    injector = _injector(config)

    assert injector.remap_credentials(workflow, "Order Sync", Environment.PROD) == 1
    assert _node(workflow, "Call ERP")["credentials"]["slackApi"] == {
        "id": "cred-prod-1",
        "name": "Slack Prod",
    }
    assert injector.remap_credentials(workflow, "Order Sync", Environment.DEV) == 0


def test_strip_webhook_ids(config):
    workflow = make_workflow("Order Sync-prod")
    VariableInjector.strip_webhook_ids(workflow)
    assert all("webhookId" not in n for n in workflow["nodes"])
