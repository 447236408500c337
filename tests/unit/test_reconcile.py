"""Tests for name-keyed create-or-update reconciliation."""

import pytest

from factories import make_workflow
from flowpromote.errors import NameCollisionError
from flowpromote.reconcile import Reconciler, prepare_push_payload, strip_bookkeeping
from flowpromote.remote import InMemoryWorkflowClient


def test_strip_bookkeeping_keeps_tags_and_active():
    stripped = strip_bookkeeping(make_workflow("Order Sync-dev", workflow_id="abc", active=True))
    for field in ("id", "createdAt", "updatedAt", "versionId"):
        assert field not in stripped
    assert stripped["active"] is True
    assert stripped["tags"] == [{"id": "t1", "name": "erp"}]


def test_prepare_push_payload_active_policies():
    workflow = make_workflow("Order Sync-dev", workflow_id="abc", active=True)

    stripped = prepare_push_payload(workflow, "strip")
    assert "active" not in stripped
    assert "tags" not in stripped
    assert "id" not in stripped

    assert prepare_push_payload(workflow, "force_inactive")["active"] is False


@pytest.mark.asyncio
async def test_push_creates_when_no_remote_match():
    client = InMemoryWorkflowClient()
    reconciler = await Reconciler.snapshot(client)

    outcome = await reconciler.push(prepare_push_payload(make_workflow("Order Sync-prod"), "strip"))

    assert outcome.action == "created"
    assert outcome.previously_active is False
    assert client.created == [outcome.workflow_id]


@pytest.mark.asyncio
async def test_push_updates_single_remote_match_and_keeps_active():
    client = InMemoryWorkflowClient([make_workflow("Order Sync-prod", workflow_id="p1", active=True)])
    reconciler = await Reconciler.snapshot(client)

    outcome = await reconciler.push(prepare_push_payload(make_workflow("Order Sync-prod"), "strip"))

    assert outcome.action == "updated"
    assert outcome.workflow_id == "p1"
    assert outcome.previously_active is True
    assert client.find_by_name("Order Sync-prod")[0]["active"] is True


@pytest.mark.asyncio
async def test_push_refuses_ambiguous_remote_names():
    client = InMemoryWorkflowClient(
        [
            make_workflow("Order Sync-prod", workflow_id="p1"),
            make_workflow("Order Sync-prod", workflow_id="p2"),
        ]
    )
    reconciler = await Reconciler.snapshot(client)

    with pytest.raises(NameCollisionError):
        await reconciler.push({"name": "Order Sync-prod", "nodes": [], "connections": {}})
    assert client.created == [] and client.updated == []


@pytest.mark.asyncio
async def test_push_refuses_second_push_of_same_name_in_batch():
    client = InMemoryWorkflowClient()
    reconciler = await Reconciler.snapshot(client)
    payload = {"name": "Order Sync-prod", "nodes": [], "connections": {}}

    await reconciler.push(payload)
    with pytest.raises(NameCollisionError):
        await reconciler.push(payload)
    assert len(client.workflows) == 1
