"""Client abstraction for the workflow automation service."""

from __future__ import annotations

from typing import Any, Protocol


class WorkflowClient(Protocol):
    """Protocol for talking to the workflow service's REST collection."""

    async def list_workflows(self) -> list[dict[str, Any]]:
        """Return every workflow visible to the API key."""

    async def get_workflow(self, workflow_id: str) -> dict[str, Any]:
        """Return the full representation of one workflow."""

    async def create_workflow(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a workflow and return it, including the assigned id."""

    async def update_workflow(
        self, workflow_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace the workflow with ``workflow_id``."""

    async def aclose(self) -> None:
        """Release network resources."""
