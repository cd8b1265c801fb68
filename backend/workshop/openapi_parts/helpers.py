"""Small schema and response fragments shared by the OpenAPI builder."""
from typing import Any, Dict


def schema_minimal(name: str) -> Dict[str, Any]:
    return {"type": "object", "properties": {"id": {"type": "integer"}}, "required": ["id"]}


def ref(kind: str, name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/{kind}/{name}"}


def json_content(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"application/json": {"schema": schema}}


def path_param(name: str) -> Dict[str, Any]:
    return {"name": name, "in": "path", "required": True, "schema": {"type": "integer"}}


def transitions_of(fsm) -> Dict[str, Any]:
    """Render a TransitionValidator graph as {state: [sorted targets]}."""
    return {state: sorted(fsm.allowed_targets(state)) for state in fsm.states}


__all__ = ["schema_minimal", "ref", "json_content", "path_param", "transitions_of"]
