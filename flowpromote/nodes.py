"""Typed views over workflow nodes.

Workflows travel as plain JSON dictionaries between the service and disk.
Nodes that the promotion logic rewrites are parsed into one of the variants
below, rewritten into a new value and dumped back, so unknown fields are
carried through untouched.
"""

from __future__ import annotations

import copy
import json
from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

CODE_NODE_TYPE = "n8n-nodes-base.code"
STICKY_NOTE_TYPE = "n8n-nodes-base.stickyNote"

CONFIG_NODE_NAMES = ("Configuration", "Variables")
VERSION_NOTE_NAME = "Version Info"

STICKY_COLOR_SUCCESS = 4
STICKY_COLOR_DEFAULT = 5


class WorkflowNode(BaseModel):
    """A node of unknown capability; extra fields are preserved as-is."""

    kind: ClassVar[str] = "generic"

    id: Optional[str] = None
    name: str
    type: str
    type_version: Optional[Union[int, float]] = Field(default=None, alias="typeVersion")
    position: Optional[List[Any]] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for field_name, field in type(self).model_fields.items():
            if field_name in self.model_fields_set:
                data[field.alias or field_name] = getattr(self, field_name)
        data.update(self.model_extra or {})
        return copy.deepcopy(data)


class CodeNode(WorkflowNode):
    """Node that runs a script; its ``jsCode`` parameter is the script body."""

    kind: ClassVar[str] = "code"

    @property
    def script(self) -> Optional[str]:
        return self.parameters.get("jsCode")

    def with_script(self, script: str) -> CodeNode:
        data = self.to_dict()
        data["parameters"] = {**self.parameters, "jsCode": script}
        return CodeNode.model_validate(data)


class StickyNoteNode(WorkflowNode):
    """Canvas annotation."""

    kind: ClassVar[str] = "sticky_note"

    @property
    def content(self) -> str:
        return str(self.parameters.get("content") or "")

    def with_content(self, content: str, color: Optional[int] = None) -> StickyNoteNode:
        parameters = {**self.parameters, "content": content}
        if color is not None:
            parameters["color"] = color
        data = self.to_dict()
        data["parameters"] = parameters
        return StickyNoteNode.model_validate(data)


NODE_VARIANTS: Dict[str, type[WorkflowNode]] = {
    CODE_NODE_TYPE: CodeNode,
    STICKY_NOTE_TYPE: StickyNoteNode,
}


def parse_node(data: Any) -> Optional[WorkflowNode]:
    """Return the typed variant for ``data`` or ``None`` when it is not a valid node."""
    if not isinstance(data, dict):
        return None
    node_cls = NODE_VARIANTS.get(data.get("type"), WorkflowNode)
    try:
        return node_cls.model_validate(data)
    except ValidationError:
        return None


def render_script(variables: Dict[str, Any]) -> str:
    """Render ``variables`` as a script that returns exactly that mapping."""
    return f"return {json.dumps(variables, indent=2, ensure_ascii=False)};"


def convert_to_code(node: WorkflowNode, script: str) -> CodeNode:
    """Turn ``node`` into a code node, keeping its id, name, position and extras."""
    data = node.to_dict()
    data.update(
        {
            "parameters": {"jsCode": script},
            "type": CODE_NODE_TYPE,
            "typeVersion": 2,
        }
    )
    return CodeNode.model_validate(data)


def new_code_node(node_id: str, name: str, position: List[Any]) -> CodeNode:
    return CodeNode.model_validate(
        {
            "parameters": {"jsCode": "return {};"},
            "type": CODE_NODE_TYPE,
            "typeVersion": 2,
            "position": position,
            "id": node_id,
            "name": name,
        }
    )


def new_sticky_note(
    node_id: str, name: str, content: str, color: int, position: List[Any]
) -> StickyNoteNode:
    return StickyNoteNode.model_validate(
        {
            "parameters": {
                "content": content,
                "height": 260,
                "width": 280,
                "color": color,
            },
            "type": STICKY_NOTE_TYPE,
            "typeVersion": 1,
            "position": position,
            "id": node_id,
            "name": name,
        }
    )
