"""Pieces of the programmatic OpenAPI builder.

Registries live in `constants`, small schema/response helpers in `helpers`
and the per-entity path generator in `paths`.
"""

__all__ = [
    "constants",
    "helpers",
    "paths",
]
