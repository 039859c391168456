"""Resolve ``allOf`` composition so inherited property declarations are visible.

The composed schema is only used to look up defaults. It is not meant to be validated
against: keywords other than ``properties`` are copied from the top-level schema as-is.
"""

from __future__ import annotations

from typing import Any, Mapping

from rpcgate.validation.types import SchemaConfigurationError
from rpcgate.validation.validator import SchemaRegistry


def resolve_composition(
    schema: Mapping[str, Any],
    schemas: SchemaRegistry,
    name: str | None = None,
) -> Mapping[str, Any]:
    """Merge the properties of every ``allOf`` part into ``schema``'s own.

    Parts are merged in declared order and the schema's own ``properties`` go on last,
    so a derived schema overrides what it inherits. Parts may be ``{"$ref": name}`` or
    inline schemas, and may compose further schemas themselves.

    Raises:
        SchemaConfigurationError: on a cyclic reference or an unregistered name.
    """
    return _resolve(schema, schemas, (name,) if name else ())


def _resolve(schema, schemas, chain):
    if "allOf" not in schema:
        return schema

    properties: dict[str, Any] = {}
    for part in schema["allOf"]:
        if not isinstance(part, Mapping):
            raise SchemaConfigurationError(f"allOf entries must be objects, got {type(part).__name__}")
        ref = part.get("$ref")
        if isinstance(ref, str):
            if ref in chain:
                raise SchemaConfigurationError(
                    "Cyclic schema composition: " + " -> ".join((*chain, ref))
                )
            resolved = _resolve(schemas.get(ref), schemas, (*chain, ref))
        else:
            resolved = _resolve(part, schemas, chain)
        properties.update(resolved.get("properties") or {})
    properties.update(schema.get("properties") or {})

    composed = {key: value for key, value in schema.items() if key != "allOf"}
    composed["properties"] = properties
    return composed
