"""OpenAPI document and Redoc page routes.

The document itself is built in `openapi_builder.py`; it is static for a
given code version, so it is built once per process.
"""
from functools import lru_cache
from flask import Flask
from .openapi_builder import build_openapi_spec

REDOC_PAGE = (
    "<!DOCTYPE html><html><head><title>Workshop API Docs</title>"
    "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
    "</head><body><redoc spec-url='/openapi.json'></redoc>"
    "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
    "</body></html>"
)


@lru_cache(maxsize=1)
def cached_openapi_spec():
    return build_openapi_spec()


def register_openapi_routes(app: Flask) -> None:
    @app.route('/openapi.json')
    def openapi_spec():
        return cached_openapi_spec()

    @app.route('/docs')
    def docs_index():
        # Redoc from CDN, nothing installed locally
        return REDOC_PAGE


__all__ = ["build_openapi_spec", "cached_openapi_spec", "register_openapi_routes", "REDOC_PAGE"]
