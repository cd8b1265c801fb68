"""Per-entity path generation with deterministic structure."""
from typing import Any, Dict, List
from .constants import ACTION_REGISTRY, OPERATION_PERMISSIONS, SORT_PARAM_MAP
from .helpers import json_content, path_param, ref


def _permission(schema_name: str, service: str, op: str) -> str:
    override = OPERATION_PERMISSIONS.get(schema_name, {}).get(op)
    if override:
        return override
    return f"{service}.READ" if op in ("L", "R") else f"{service}.MANAGE"


def build_service_paths(schema_name: str, coll: str, id_param: str, service: str, ops: str) -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    list_path = f"/api/{coll}"
    single_path = f"{list_path}/{{{id_param}}}"
    item = json_content(ref("schemas", schema_name))

    if "L" in ops:
        paths.setdefault(list_path, {})["get"] = {
            "summary": f"List {coll}",
            "parameters": [
                ref("parameters", "LimitParam"),
                ref("parameters", "OffsetParam"),
                ref("parameters", "PageParam"),
                ref("parameters", SORT_PARAM_MAP[schema_name]),
            ],
            "responses": {
                "200": {
                    "description": "OK",
                    "content": json_content({
                        "type": "object",
                        "properties": {
                            "data": {"type": "array", "items": ref("schemas", schema_name)},
                            "pagination": ref("schemas", "Pagination"),
                        },
                    }),
                },
                "400": ref("responses", "BadRequest"),
            },
            "x-required-permissions": [_permission(schema_name, service, "L")],
        }
    if "C" in ops:
        paths.setdefault(list_path, {})["post"] = {
            "summary": f"Create {schema_name}",
            "requestBody": {"required": True, "content": item},
            "responses": {
                "201": {"description": "Created", "content": item},
                "400": ref("responses", "BadRequest"),
                "409": ref("responses", "Conflict"),
            },
            "x-required-permissions": [_permission(schema_name, service, "C")],
        }

    single_ops = {
        "R": ("get", f"Get {schema_name}"),
        "U": ("put", f"Update {schema_name}"),
        "D": ("delete", f"Soft delete {schema_name}"),
    }
    for op, (method, summary) in single_ops.items():
        if op not in ops:
            continue
        responses = {
            "200": {"description": "OK", "content": item},
            "404": ref("responses", "NotFound"),
        }
        if op != "R":
            responses["400"] = ref("responses", "BadRequest")
            responses["409"] = ref("responses", "Conflict")
        operation = {
            "summary": summary,
            "parameters": [path_param(id_param)],
            "responses": responses,
            "x-required-permissions": [_permission(schema_name, service, op)],
        }
        if op == "U":
            operation["requestBody"] = {"required": True, "content": item}
        paths.setdefault(single_path, {})[method] = operation

    actions: List[Dict[str, str]] = ACTION_REGISTRY.get(schema_name, [])
    for spec in actions:
        paths[f"{single_path}/{spec['action']}"] = {
            spec["method"]: {
                "summary": spec["summary"],
                "parameters": [path_param(id_param)],
                "responses": {
                    "200": {"description": "OK", "content": json_content({"type": "object"})},
                    "400": ref("responses", "BadRequest"),
                    "404": ref("responses", "NotFound"),
                },
                "x-required-permissions": [spec["permission"]],
            }
        }
    return paths


__all__ = ["build_service_paths"]
