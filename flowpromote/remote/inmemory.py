"""In-memory implementation of the workflow service client."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from ..errors import RemoteCallError
from .client import WorkflowClient

# Fields the service manages itself and refuses on create/update.
READ_ONLY_FIELDS = frozenset(
    {
        "id",
        "createdAt",
        "updatedAt",
        "versionId",
        "triggerCount",
        "shared",
        "tags",
        "isArchived",
        "meta",
        "pinData",
    }
)


class InMemoryWorkflowClient(WorkflowClient):
    """Store workflows in local memory.

    Useful for tests or dry runs. Behaves like the service where it matters
    to promotion: ids are assigned on create, read-only fields are rejected
    and new workflows start inactive.
    """

    def __init__(self, workflows: Optional[Iterable[dict[str, Any]]] = None) -> None:
        self._workflows: Dict[str, dict[str, Any]] = {}
        for workflow in workflows or []:
            data = copy.deepcopy(workflow)
            data.setdefault("id", uuid.uuid4().hex[:16])
            data.setdefault("active", False)
            self._workflows[data["id"]] = data
        self.created: list[str] = []
        self.updated: list[str] = []

    @property
    def workflows(self) -> list[dict[str, Any]]:
        return list(self._workflows.values())

    def find_by_name(self, name: str) -> list[dict[str, Any]]:
        return [w for w in self._workflows.values() if w.get("name") == name]

    # ------------------------------------------------------------------
    def _check_payload(self, operation: str, data: dict[str, Any]) -> None:
        rejected = sorted(READ_ONLY_FIELDS & set(data))
        if rejected:
            raise RemoteCallError(
                operation,
                f"request/body must NOT have additional properties: {', '.join(rejected)}",
                workflow_name=data.get("name"),
                status_code=400,
            )
        if not data.get("name"):
            raise RemoteCallError(
                operation, "request/body must have required property 'name'", status_code=400
            )

    async def list_workflows(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(w) for w in self._workflows.values()]

    async def get_workflow(self, workflow_id: str) -> dict[str, Any]:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise RemoteCallError("get workflow", "Not Found", status_code=404)
        return copy.deepcopy(workflow)

    async def create_workflow(self, data: dict[str, Any]) -> dict[str, Any]:
        self._check_payload("create workflow", data)
        now = datetime.now(timezone.utc).isoformat()
        workflow = copy.deepcopy(data)
        workflow["id"] = uuid.uuid4().hex[:16]
        workflow.setdefault("active", False)
        workflow["createdAt"] = now
        workflow["updatedAt"] = now
        self._workflows[workflow["id"]] = workflow
        self.created.append(workflow["id"])
        return copy.deepcopy(workflow)

    async def update_workflow(
        self, workflow_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        self._check_payload("update workflow", data)
        existing = self._workflows.get(workflow_id)
        if existing is None:
            raise RemoteCallError(
                "update workflow", "Not Found", workflow_name=data.get("name"), status_code=404
            )
        workflow = copy.deepcopy(data)
        workflow["id"] = workflow_id
        workflow.setdefault("active", existing.get("active", False))
        workflow["createdAt"] = existing.get("createdAt")
        workflow["updatedAt"] = datetime.now(timezone.utc).isoformat()
        if "tags" in existing:
            workflow["tags"] = existing["tags"]
        self._workflows[workflow_id] = workflow
        self.updated.append(workflow_id)
        return copy.deepcopy(workflow)

    async def aclose(self) -> None:
        pass
