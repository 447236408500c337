"""Name-keyed create-or-update reconciliation against the workflow service."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional

from .errors import NameCollisionError
from .remote import WorkflowClient

logger = logging.getLogger(__name__)

# Service-managed fields; round-tripping them makes the service reject or drift.
BOOKKEEPING_FIELDS = (
    "id",
    "createdAt",
    "updatedAt",
    "versionId",
    "meta",
    "pinData",
    "triggerCount",
    "shared",
    "isArchived",
)
# Kept in exported files for diffing but read-only on the service.
PUSH_ONLY_STRIPPED = ("tags",)

ActivePolicy = Literal["strip", "force_inactive"]


def strip_bookkeeping(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` without service-managed fields."""
    return {k: v for k, v in data.items() if k not in BOOKKEEPING_FIELDS}


def prepare_push_payload(data: dict[str, Any], active_policy: ActivePolicy) -> dict[str, Any]:
    """Strip everything the service refuses on create/update.

    ``strip`` drops ``active`` so the service default applies and
    ``force_inactive`` sends ``active: false``.
    """
    payload = {
        k: v for k, v in strip_bookkeeping(data).items() if k not in PUSH_ONLY_STRIPPED
    }
    if active_policy == "strip":
        payload.pop("active", None)
    elif active_policy == "force_inactive":
        payload["active"] = False
    return payload


@dataclass
class ReconcileOutcome:
    action: Literal["created", "updated"]
    workflow_id: Optional[str]
    previously_active: bool


class Reconciler:
    """Decide between create and update by exact display-name match.

    Built from one remote snapshot taken at the start of a batch; the
    snapshot is not refreshed. A name that matches several remote workflows,
    or that was already pushed earlier in the same batch, is refused instead
    of risking a duplicate.
    """

    def __init__(self, client: WorkflowClient, remote_workflows: Iterable[dict[str, Any]]) -> None:
        self._client = client
        self._by_name: Dict[str, List[dict[str, Any]]] = defaultdict(list)
        for workflow in remote_workflows:
            self._by_name[workflow.get("name")].append(workflow)
        self._pushed: set[str] = set()

    @classmethod
    async def snapshot(cls, client: WorkflowClient) -> Reconciler:
        return cls(client, await client.list_workflows())

    async def push(self, payload: dict[str, Any]) -> ReconcileOutcome:
        name = payload["name"]
        if name in self._pushed:
            raise NameCollisionError(
                f"'{name}' was already pushed in this batch; refusing to push it twice"
            )
        matches = self._by_name.get(name) or []
        if len(matches) > 1:
            raise NameCollisionError(
                f"{len(matches)} remote workflows are named '{name}'; reconcile them manually"
            )
        self._pushed.add(name)

        if matches:
            existing = matches[0]
            await self._client.update_workflow(existing["id"], payload)
            logger.info(f"Updated {name} (was {'active' if existing.get('active') else 'inactive'})")
            return ReconcileOutcome("updated", existing["id"], bool(existing.get("active")))

        created = await self._client.create_workflow(payload)
        logger.info(f"Created {name}")
        return ReconcileOutcome("created", created.get("id"), False)
