"""Deterministic OpenAPI document for the workshop API.

Entity CRUD and action paths come from the registries in
`openapi_parts.constants`. The Quote and WorkOrder schemas carry
`x-transitions`, rendered from the same transition tables the services
enforce, so the document cannot drift from runtime behavior.

`workshop/openapi.py` re-exports `build_openapi_spec` from here.
"""
from typing import Any, Dict
from .openapi_parts.constants import ENTITIES, SORT_PARAM_MAP, SORT_DETAILS, ERROR_CODES
from .openapi_parts.helpers import schema_minimal, json_content, path_param, ref, transitions_of
from .openapi_parts.paths import build_service_paths

__all__ = ["build_openapi_spec"]

VEHICLE_SCHEMA = {
    "type": "object",
    "properties": {
        "brand": {"type": "string", "maxLength": 100},
        "model": {"type": "string", "maxLength": 100},
        "year": {"type": "integer", "minimum": 1950},
        "license_plate": {"type": "string", "maxLength": 20},
        "mileage": {"type": "integer", "minimum": 0, "nullable": True},
    },
    "required": ["brand", "model", "year", "license_plate"],
}


def _entity_schemas() -> Dict[str, Any]:
    from .services.approvals import QUOTE_FSM
    from .services.workflow import ORDER_FSM

    schemas = {e[0]: schema_minimal(e[0]) for e in ENTITIES}
    quote = schemas["Quote"]
    quote["properties"].update({
        "number": {"type": "string", "example": "PRES-0001"},
        "client_id": {"type": "integer"},
        "vehicle": {"$ref": "#/components/schemas/Vehicle"},
        "description": {"type": "string", "minLength": 20, "maxLength": 2000},
        "proposed_work": {"type": "string", "minLength": 20, "maxLength": 2000},
        "estimated_cost": {"type": "integer", "minimum": 0},
        "valid_until": {"type": "string", "format": "date-time"},
        "status": {"type": "string", "enum": list(QUOTE_FSM.states)},
        "email_sent": {"type": "boolean"},
        "work_order_id": {"type": "integer", "nullable": True},
    })
    quote["x-transitions"] = transitions_of(QUOTE_FSM)
    order = schemas["WorkOrder"]
    order["properties"].update({
        "number": {"type": "string", "example": "ORD-0001"},
        "quote_id": {"type": "integer"},
        "client_id": {"type": "integer"},
        "mechanic_id": {"type": "integer", "nullable": True},
        "vehicle": {"$ref": "#/components/schemas/Vehicle"},
        "work_description": {"type": "string"},
        "estimated_cost": {"type": "integer"},
        "final_cost": {"type": "integer", "nullable": True},
        "status": {"type": "string", "enum": list(ORDER_FSM.states)},
        "ready_email_sent": {"type": "boolean"},
    })
    order["x-transitions"] = transitions_of(ORDER_FSM)
    schemas["Vehicle"] = VEHICLE_SCHEMA
    return schemas


def _static_paths():
    html_page = {"text/html": {"schema": {"type": "string"}}}
    token_param = {"name": "token", "in": "query", "required": True, "schema": {"type": "string"}}
    public_responses = {
        "200": {"description": "Outcome page", "content": html_page},
        "400": {"description": "Token rejected", "content": html_page},
        "404": {"description": "Quote not found", "content": html_page},
        "429": ref("responses", "RateLimited"),
    }
    paths: Dict[str, Any] = {
        "/healthz": {"get": {"summary": "Liveness", "security": [], "responses": {"200": {"description": "OK"}}}},
        "/api/auth/login": {"post": {
            "summary": "Login",
            "security": [],
            "responses": {
                "200": {"description": "JWT pair issued"},
                "401": ref("responses", "Unauthorized"),
                "423": {"description": "Account temporarily locked", "content": json_content(ref("schemas", "Error"))},
                "429": ref("responses", "RateLimited"),
            },
        }},
        "/api/auth/refresh": {"post": {"summary": "Refresh access token", "responses": {"200": {"description": "OK"}}}},
        "/api/auth/me": {"get": {"summary": "Current user", "responses": {"200": {"description": "OK"}}}},
        "/api/dashboard/stats": {"get": {
            "summary": "Workshop statistics",
            "responses": {"200": {"description": "OK"}},
            "x-required-permissions": ["DASH.READ"],
        }},
        "/api/dashboard/mechanics-stats": {"get": {
            "summary": "Per mechanic statistics",
            "responses": {"200": {"description": "OK"}},
            "x-required-permissions": ["DASH.READ"],
        }},
    }
    return paths, token_param, public_responses


def build_openapi_spec() -> Dict[str, Any]:
    schemas = _entity_schemas()
    components: Dict[str, Any] = {
        "schemas": schemas | {
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                    "pages": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned", "pages"],
            },
            "Error": {
                "type": "object",
                "properties": {
                    "error": {
                        "type": "object",
                        "properties": {
                            "status": {"type": "integer"},
                            "title": {"type": "string"},
                            "detail": {"type": "string"},
                            "code": {"type": "string", "enum": ERROR_CODES},
                            "reason": {"type": "string"},
                        },
                        "required": ["status", "title", "detail", "code"],
                    }
                },
                "required": ["error"],
            },
        },
        "responses": {},
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 20, "maximum": 100}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
            "PageParam": {"name": "page", "in": "query", "schema": {"type": "integer", "minimum": 1}},
        },
    }
    error_body = json_content(ref("schemas", "Error"))
    for name, desc in (
        ("BadRequest", "Bad Request"), ("Unauthorized", "Unauthorized"), ("NotFound", "Not Found"),
        ("Conflict", "Conflict"), ("RateLimited", "Too Many Requests"),
    ):
        components["responses"][name] = {"description": desc, "content": error_body}
    for pname, desc in SORT_DETAILS.items():
        components["parameters"][pname] = {"name": "sort", "in": "query", "schema": {"type": "string"}, "description": desc}

    paths, token_param, public_responses = _static_paths()
    for schema_name, coll, id_param, service, ops in ENTITIES:
        for k, v in build_service_paths(schema_name, coll, id_param, service, ops).items():
            paths.setdefault(k, {}).update(v)

    # Public token links share the path of the manual decision endpoints
    for decision in ("approve", "reject"):
        paths[f"/api/quotes/{{quote_id}}/{decision}"]["get"] = {
            "summary": f"{decision.capitalize()} quote through emailed token link",
            "security": [],
            "parameters": [path_param("quote_id"), token_param],
            "responses": public_responses,
        }

    tag_desc: Dict[str, str] = {}
    for path, ops_map in paths.items():
        parts = path.strip("/").split("/")
        tag = (parts[1] if parts[0] == "api" and len(parts) > 1 else parts[0]).capitalize()
        for method, od in ops_map.items():
            rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "").replace("-", "_")
            od["operationId"] = f"{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Workshop API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
