"""Structural comparison of two copies of a workflow."""

from __future__ import annotations

from typing import Any, List, Optional

from .models import Difference


def node_types(workflow: dict[str, Any]) -> set[str]:
    nodes = workflow.get("nodes") or []
    return {n.get("type") for n in nodes if isinstance(n, dict) and n.get("type")}


def node_count(workflow: dict[str, Any]) -> int:
    nodes = workflow.get("nodes")
    return len(nodes) if isinstance(nodes, list) else 0


def tag_names(workflow: dict[str, Any]) -> List[str]:
    tags = workflow.get("tags") or []
    return sorted(str(t.get("name") if isinstance(t, dict) else t) for t in tags)


def connection_sources(workflow: dict[str, Any]) -> List[str]:
    connections = workflow.get("connections")
    return sorted(connections) if isinstance(connections, dict) else []


def compare_workflows(
    old: dict[str, Any], new: dict[str, Any], file: Optional[str] = None
) -> List[Difference]:
    """Return the differences between ``old`` and ``new``.

    Node types are compared as sets, so adding a node of an existing type
    only shows up as a node count change. Connections are compared by their
    sorted source node names, not as a graph.
    """
    diffs: List[Difference] = []

    if old.get("name") != new.get("name"):
        diffs.append(
            Difference(
                type="workflow_name_changed",
                description=f"Workflow name changed from '{old.get('name')}' to '{new.get('name')}'",
                file=file,
                details={"from": old.get("name"), "to": new.get("name")},
            )
        )

    if bool(old.get("active")) != bool(new.get("active")):
        diffs.append(
            Difference(
                type="workflow_status_changed",
                description=f"Workflow active status changed from {bool(old.get('active'))} to {bool(new.get('active'))}",
                file=file,
                details={"from": bool(old.get("active")), "to": bool(new.get("active"))},
            )
        )

    old_count, new_count = node_count(old), node_count(new)
    if old_count != new_count:
        diffs.append(
            Difference(
                type="node_count_changed",
                description=f"Node count changed from {old_count} to {new_count}",
                file=file,
                details={"from": old_count, "to": new_count},
            )
        )

    old_types, new_types = node_types(old), node_types(new)
    added, removed = sorted(new_types - old_types), sorted(old_types - new_types)
    if added or removed:
        diffs.append(
            Difference(
                type="node_types_changed",
                description="Node types changed",
                file=file,
                details={"added": added, "removed": removed},
            )
        )

    old_tags, new_tags = tag_names(old), tag_names(new)
    if old_tags != new_tags:
        diffs.append(
            Difference(
                type="tags_changed",
                description="Workflow tags changed",
                file=file,
                details={"from": old_tags, "to": new_tags},
            )
        )

    if connection_sources(old) != connection_sources(new):
        diffs.append(
            Difference(
                type="connections_changed",
                description="Workflow connections changed",
                file=file,
            )
        )

    return diffs
