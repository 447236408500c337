"""Clients for the workflow automation service."""

from __future__ import annotations

from typing import Optional

from ..config import FlowPromoteConfig, load_config
from .client import WorkflowClient
from .http_client import HttpWorkflowClient
from .inmemory import READ_ONLY_FIELDS, InMemoryWorkflowClient

_client_instance: WorkflowClient | None = None


def get_client(config: Optional[FlowPromoteConfig] = None) -> WorkflowClient:
    """Factory function to obtain the workflow service client.

    A previously created (or injected) client is reused; otherwise an HTTP
    client is built from ``config`` or from the loaded configuration file.
    """

    global _client_instance
    if _client_instance is not None:
        return _client_instance

    config = config or load_config()
    _client_instance = HttpWorkflowClient.from_config(config.remote)
    return _client_instance


def reset_client() -> None:
    """Forget the cached client so the next call builds a new one."""
    global _client_instance
    _client_instance = None


__all__ = [
    "WorkflowClient",
    "HttpWorkflowClient",
    "InMemoryWorkflowClient",
    "READ_ONLY_FIELDS",
    "get_client",
    "reset_client",
]
