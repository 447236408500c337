"""Environment-specific rewriting of workflow nodes."""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from .config import Environment, FlowPromoteConfig
from .nodes import (
    CONFIG_NODE_NAMES,
    STICKY_COLOR_DEFAULT,
    STICKY_COLOR_SUCCESS,
    VERSION_NOTE_NAME,
    CodeNode,
    StickyNoteNode,
    convert_to_code,
    new_code_node,
    new_sticky_note,
    parse_node,
    render_script,
)

logger = logging.getLogger(__name__)

CONFIG_NODE_POSITION = [-720, -80]
VERSION_NOTE_POSITION = [-900, -200]


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class VariableInjector:
    """Write per-environment variables into a workflow's configuration node.

    The workflow dictionary is modified in place; every node that gets
    rewritten is replaced by a freshly built node value. Missing data never
    raises: a workflow without nodes or a base name without variables for the
    environment is left untouched.
    """

    def __init__(
        self,
        config: FlowPromoteConfig,
        today: Callable[[], date] = _utc_today,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._config = config
        self._today = today
        self._new_id = id_factory

    def inject(
        self,
        workflow: dict[str, Any],
        base_name: str,
        environment: Environment | str,
        version: Optional[str] = None,
    ) -> None:
        env = Environment(environment)
        managed = self._config.find_managed(base_name)
        if managed is None or env not in managed.variables:
            return

        variables = dict(managed.variables[env])
        if version and env == Environment.PROD:
            variables["version"] = version
            logger.info(f"Injecting {env.value} variables with version {version} for {base_name}")
        else:
            logger.info(f"Injecting {env.value} variables for {base_name}")

        nodes = workflow.get("nodes")
        if not isinstance(nodes, list):
            return

        index = self._find_config_node(nodes)
        if index is None:
            index = self._add_config_node(workflow, nodes, base_name)

        script = render_script(variables)
        raw = nodes[index]
        node = parse_node(raw)
        if isinstance(node, CodeNode):
            nodes[index] = node.with_script(script).to_dict()
        elif node is not None:
            logger.warning(f"{node.name} node is not a code node, converting it")
            nodes[index] = convert_to_code(node, script).to_dict()
        else:
            logger.warning(f"{raw['name']} node is malformed, rebuilding it as a code node")
            position = raw.get("position")
            rebuilt = new_code_node(
                str(raw["id"]) if raw.get("id") else self._new_id(),
                raw["name"],
                position if isinstance(position, list) else list(CONFIG_NODE_POSITION),
            )
            nodes[index] = rebuilt.with_script(script).to_dict()

        if version:
            self._upsert_version_note(nodes, base_name, version, env)

    def remap_credentials(
        self, workflow: dict[str, Any], base_name: str, environment: Environment | str
    ) -> int:
        """Point node credentials at the environment's configured credentials.

        Returns the number of credential references that were replaced.
        """
        env = Environment(environment)
        managed = self._config.find_managed(base_name)
        nodes = workflow.get("nodes")
        if managed is None or env not in managed.credentials or not isinstance(nodes, list):
            return 0

        mapping = managed.credentials[env]
        replaced = 0
        for node in nodes:
            if not isinstance(node, dict) or not isinstance(node.get("credentials"), dict):
                continue
            for cred_type in list(node["credentials"]):
                ref = mapping.get(cred_type)
                if ref is None:
                    continue
                node["credentials"][cred_type] = {"id": ref.id, "name": ref.name}
                replaced += 1
        if replaced:
            logger.info(f"Remapped {replaced} credential reference(s) in {base_name} for {env.value}")
        return replaced

    @staticmethod
    def strip_webhook_ids(workflow: dict[str, Any]) -> None:
        nodes = workflow.get("nodes")
        if not isinstance(nodes, list):
            return
        for node in nodes:
            if isinstance(node, dict):
                node.pop("webhookId", None)

    # ------------------------------------------------------------------
    @staticmethod
    def _find_config_node(nodes: list[Any]) -> Optional[int]:
        for index, node in enumerate(nodes):
            if isinstance(node, dict) and node.get("name") in CONFIG_NODE_NAMES:
                return index
        return None

    @staticmethod
    def _is_trigger(node: Any) -> bool:
        if not isinstance(node, dict):
            return False
        node_type = str(node.get("type") or "")
        name = str(node.get("name") or "")
        return "Trigger" in node_type or "Trigger" in name or "When" in name

    def _add_config_node(
        self, workflow: dict[str, Any], nodes: list[Any], base_name: str
    ) -> int:
        logger.info(f"Creating new Configuration node for {base_name}")
        config_node = new_code_node(
            self._new_id(), CONFIG_NODE_NAMES[0], list(CONFIG_NODE_POSITION)
        )
        trigger = next((n for n in nodes if self._is_trigger(n)), None)
        nodes.append(config_node.to_dict())

        connections = workflow.get("connections")
        if trigger is not None and isinstance(connections, dict):
            outputs = connections.get(trigger["name"])
            if not isinstance(outputs, dict):
                outputs = {"main": [[]]}
                connections[trigger["name"]] = outputs
            main = outputs.get("main")
            if not isinstance(main, list) or not main:
                main = [[]]
                outputs["main"] = main
            main[0] = [{"node": config_node.name, "type": "main", "index": 0}]
            connections[config_node.name] = {"main": [[]]}
        return len(nodes) - 1

    def _version_note_content(self, base_name: str, version: str, env: Environment) -> str:
        return (
            f"📦 **{base_name}**\n\n"
            f"**Version:** {version}\n"
            f"**Environment:** {env.value}\n"
            f"**Deployed:** {self._today().isoformat()}\n\n"
            "This workflow is managed by the release system.\n"
            "Version is automatically injected during deployment."
        )

    def _upsert_version_note(
        self, nodes: list[Any], base_name: str, version: str, env: Environment
    ) -> None:
        content = self._version_note_content(base_name, version, env)
        for index, raw in enumerate(nodes):
            node = parse_node(raw)
            if not isinstance(node, StickyNoteNode):
                continue
            if node.name == VERSION_NOTE_NAME or "Version" in node.content:
                color = STICKY_COLOR_SUCCESS if env == Environment.PROD else None
                nodes[index] = node.with_content(content, color).to_dict()
                logger.info(f"Updated Version Info note with version {version}")
                return

        color = STICKY_COLOR_SUCCESS if env == Environment.PROD else STICKY_COLOR_DEFAULT
        note = new_sticky_note(
            self._new_id(), VERSION_NOTE_NAME, content, color, list(VERSION_NOTE_POSITION)
        )
        nodes.append(note.to_dict())
        logger.info(f"Created Version Info note with version {version}")
