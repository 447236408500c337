"""Error taxonomy for workflow promotion, backup and audit operations."""

from __future__ import annotations

from typing import Optional


class FlowPromoteError(Exception):
    """Base class for all flowpromote errors."""


class ConfigError(FlowPromoteError):
    """Configuration is malformed or missing a required value."""


class PreconditionError(FlowPromoteError):
    """A batch-level precondition failed and the whole invocation must stop."""


class WorkflowValidationError(FlowPromoteError):
    """A workflow file is structurally invalid."""


class NameCollisionError(FlowPromoteError):
    """Reconciliation by display name is ambiguous."""


class GitError(FlowPromoteError):
    """A git command failed."""


class RemoteCallError(FlowPromoteError):
    """The workflow service returned an error or could not be reached."""

    def __init__(
        self,
        operation: str,
        message: str,
        workflow_name: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.operation = operation
        self.workflow_name = workflow_name
        self.status_code = status_code
        target = f" '{workflow_name}'" if workflow_name else ""
        super().__init__(f"{operation}{target} failed: {message}")
