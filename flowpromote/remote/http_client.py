"""HTTP implementation of the workflow service client."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..config import RemoteConfig
from ..errors import ConfigError, RemoteCallError
from .client import WorkflowClient

logger = logging.getLogger(__name__)


class HttpWorkflowClient(WorkflowClient):
    """Talk to the workflow service's public REST API with ``httpx``.

    The underlying ``httpx.AsyncClient`` is created lazily and dropped on
    :meth:`aclose`, so one instance can serve several ``asyncio.run`` calls.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        api_key_header: str = "X-N8N-API-KEY",
        api_prefix: str = "/api/v1",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ConfigError(
                "No API key configured; set remote.api_key or the N8N_API_KEY environment variable"
            )
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/")
        self._headers = {api_key_header: api_key, "Content-Type": "application/json"}
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(
        cls, config: RemoteConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> HttpWorkflowClient:
        return cls(
            base_url=config.base_url,
            api_key=config.resolve_api_key(),
            api_key_header=config.api_key_header,
            api_prefix=config.api_prefix,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url, headers=self._headers, transport=self._transport
            )
        return self._http

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        workflow_name: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client().request(method, self.api_prefix + path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text or exc.response.reason_phrase
            raise RemoteCallError(
                operation, detail, workflow_name=workflow_name,
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteCallError(operation, str(exc) or type(exc).__name__, workflow_name) from exc
        return response.json()

    async def list_workflows(self) -> list[dict[str, Any]]:
        workflows: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params = {"cursor": cursor} if cursor else None
            body = await self._request("GET", "/workflows", "list workflows", params=params)
            workflows.extend(body.get("data", []))
            cursor = body.get("nextCursor")
            if not cursor:
                break
        logger.debug(f"Fetched {len(workflows)} workflows from {self.base_url}")
        return workflows

    async def get_workflow(self, workflow_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/workflows/{workflow_id}", "get workflow")

    async def create_workflow(self, data: dict[str, Any]) -> dict[str, Any]:
        return await self._request(
            "POST", "/workflows", "create workflow", data.get("name"), json=data
        )

    async def update_workflow(
        self, workflow_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/workflows/{workflow_id}", "update workflow", data.get("name"), json=data
        )

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
