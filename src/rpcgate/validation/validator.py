"""JSON-Schema-style validation for request envelopes and method params.

Schemas are plain dicts. They may reference each other by name with ``{"$ref": name}``
once the target has been added to a :class:`SchemaRegistry`. Validation stops at the
first failure and reports it as a :class:`ValidationError` tree (``anyOf``/``oneOf``
failures carry one sub-error per branch).
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterator, Mapping, Sequence

from rpcgate.validation.messages import DEFAULT_FORMATTERS, Formatter, default_message
from rpcgate.validation.types import (
    ErrorContext,
    ErrorKind,
    MissingField,
    SchemaConfigurationError,
    Target,
    ValidationError,
    ValidationResult,
    ValuePointer,
)

logger = logging.getLogger(__name__)

# Consecutive schema hops ($ref, allOf, ...) that do not step into the value.
# Exceeding it means a schema references itself without consuming any data.
MAX_SCHEMA_DEPTH = 256
# Values nested deeper than this fail validation instead of exhausting the stack.
MAX_VALUE_DEPTH = 100


# ──────────────────────────────────────────────────────────────
# SchemaRegistry – named schemas, filled once at startup
# ──────────────────────────────────────────────────────────────
class SchemaRegistry:
    def __init__(self):
        self._schemas: dict[str, dict] = {}
        self._frozen = False

    def add(self, name: str, schema: Mapping[str, Any]) -> None:
        if self._frozen:
            raise RuntimeError(f"Cannot add schema '{name}': registry is frozen")
        if not isinstance(schema, Mapping):
            raise TypeError(f"Schema '{name}' must be a mapping, got {type(schema).__name__}")
        if name in self._schemas:
            logger.warning(f"Schema '{name}' registered twice, keeping the last one")
        self._schemas[name] = dict(schema)

    def get(self, name: str) -> dict:
        try:
            return self._schemas[name]
        except KeyError:
            raise SchemaConfigurationError(f"Unknown schema reference: {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def names(self) -> list[str]:
        return sorted(self._schemas)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Check every ``$ref`` resolves, then reject further additions."""
        for name, schema in self._schemas.items():
            self.check_references(schema, owner=name)
        self._frozen = True

    def check_references(self, schema: Any, owner: str = "<anonymous>") -> None:
        for ref in _iter_refs(schema):
            if ref not in self._schemas:
                raise SchemaConfigurationError(
                    f"Schema {owner!r} references unregistered schema {ref!r}"
                )


def _iter_refs(node: Any) -> Iterator[str]:
    if isinstance(node, Mapping):
        ref = node.get("$ref")
        if isinstance(ref, str):
            yield ref
        for value in node.values():
            yield from _iter_refs(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_refs(item)


# ──────────────────────────────────────────────────────────────
# JSON type helpers
# ──────────────────────────────────────────────────────────────
def json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value).__name__


def _matches_type(value: Any, expected: str) -> bool:
    actual = json_type(value)
    if expected == "number":
        return actual in ("integer", "number")
    if expected == "integer":
        return actual == "integer" or (
            actual == "number" and math.isfinite(value) and value.is_integer()
        )
    return actual == expected


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def json_equal(a: Any, b: Any) -> bool:
    """Equality that keeps ``true`` and ``1`` apart, as JSON does."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(json_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(json_equal(x, y) for x, y in zip(a, b))
    return a == b


# ──────────────────────────────────────────────────────────────
# SchemaValidator
# ──────────────────────────────────────────────────────────────
class SchemaValidator:
    """Validates values against schemas resolved through a :class:`SchemaRegistry`.

    ``formatters`` is fixed at construction; the first one returning a non-empty
    message for a failure wins, and :func:`default_message` covers the rest.
    """

    def __init__(
        self,
        schemas: SchemaRegistry | None = None,
        formatters: Sequence[Formatter] | None = None,
    ):
        self._schemas = schemas if schemas is not None else SchemaRegistry()
        self._formatters: tuple[Formatter, ...] = (
            tuple(formatters) if formatters is not None else DEFAULT_FORMATTERS
        )

    @property
    def schemas(self) -> SchemaRegistry:
        return self._schemas

    @property
    def formatters(self) -> tuple[Formatter, ...]:
        return self._formatters

    def validate(self, value: Any, schema: Mapping[str, Any] | str) -> ValidationResult:
        if isinstance(schema, str):
            schema = self._schemas.get(schema)
        error = self._validate(value, schema, ValuePointer(), (), 0)
        return ValidationResult(valid=error is None, error=error)

    # ───── Internals ─────
    def _validate(self, value, schema, pointer, schema_path, depth) -> ValidationError | None:
        if len(pointer.segments) > MAX_VALUE_DEPTH:
            return self._error(
                ErrorKind.VALUE_TOO_DEEP, {"limit": MAX_VALUE_DEPTH}, pointer, schema_path, value, {},
            )
        if depth > MAX_SCHEMA_DEPTH:
            raise SchemaConfigurationError(
                f"Schema nesting exceeds {MAX_SCHEMA_DEPTH} levels at {_render_path(schema_path)!r}"
            )
        if isinstance(schema, bool):
            if schema:
                return None
            return self._error(ErrorKind.NOT_PASSED, {}, pointer, schema_path, value, {})
        if not isinstance(schema, Mapping):
            raise SchemaConfigurationError(
                f"Schema at {_render_path(schema_path)!r} must be an object, got {type(schema).__name__}"
            )

        if "$ref" in schema:
            return self._validate(value, self._schemas.get(schema["$ref"]), pointer, schema_path, depth + 1)

        for check in (
            self._check_type,
            self._check_enum,
            self._check_number,
            self._check_string,
            self._check_array,
            self._check_object,
            self._check_combinations,
        ):
            error = check(value, schema, pointer, schema_path, depth)
            if error is not None:
                return error
        return None

    def _error(
        self,
        kind: ErrorKind,
        params: dict,
        target: Target,
        schema_path: tuple,
        value: Any,
        schema: Mapping[str, Any],
        sub_errors: tuple[ValidationError, ...] = (),
    ) -> ValidationError:
        rendered_path = _render_path(schema_path)
        ctx = ErrorContext(
            kind=kind,
            params=params,
            target=target,
            schema_path=rendered_path,
            value=value,
            schema=schema,
        )
        message = next(
            (msg for msg in (fmt(ctx) for fmt in self._formatters) if msg),
            None,
        ) or default_message(ctx)
        return ValidationError(
            kind=kind,
            message=message,
            target=target,
            schema_path=rendered_path,
            params=params,
            sub_errors=sub_errors,
        )

    def _check_type(self, value, schema, pointer, schema_path, depth):
        expected = schema.get("type")
        if expected is None:
            return None
        allowed = [expected] if isinstance(expected, str) else list(expected)
        if any(_matches_type(value, t) for t in allowed):
            return None
        return self._error(
            ErrorKind.INVALID_TYPE,
            {"type": json_type(value), "expected": "/".join(allowed)},
            pointer,
            schema_path + ("type",),
            value,
            schema,
        )

    def _check_enum(self, value, schema, pointer, schema_path, depth):
        if "enum" not in schema:
            return None
        if any(json_equal(value, option) for option in schema["enum"]):
            return None
        return self._error(
            ErrorKind.ENUM_MISMATCH,
            {"value": _repr(value)},
            pointer,
            schema_path + ("enum",),
            value,
            schema,
        )

    def _check_number(self, value, schema, pointer, schema_path, depth):
        if not _is_number(value):
            return None

        minimum = schema.get("minimum")
        exclusive_minimum = schema.get("exclusiveMinimum")
        # draft-4 spells exclusiveness as a boolean next to minimum
        if isinstance(exclusive_minimum, bool):
            exclusive_minimum, minimum = (minimum, None) if exclusive_minimum else (None, minimum)
        if minimum is not None and value < minimum:
            return self._error(
                ErrorKind.NUMBER_MINIMUM,
                {"value": value, "minimum": minimum},
                pointer, schema_path + ("minimum",), value, schema,
            )
        if exclusive_minimum is not None and value <= exclusive_minimum:
            return self._error(
                ErrorKind.NUMBER_MINIMUM_EXCLUSIVE,
                {"value": value, "minimum": exclusive_minimum},
                pointer, schema_path + ("exclusiveMinimum",), value, schema,
            )

        maximum = schema.get("maximum")
        exclusive_maximum = schema.get("exclusiveMaximum")
        if isinstance(exclusive_maximum, bool):
            exclusive_maximum, maximum = (maximum, None) if exclusive_maximum else (None, maximum)
        if maximum is not None and value > maximum:
            return self._error(
                ErrorKind.NUMBER_MAXIMUM,
                {"value": value, "maximum": maximum},
                pointer, schema_path + ("maximum",), value, schema,
            )
        if exclusive_maximum is not None and value >= exclusive_maximum:
            return self._error(
                ErrorKind.NUMBER_MAXIMUM_EXCLUSIVE,
                {"value": value, "maximum": exclusive_maximum},
                pointer, schema_path + ("exclusiveMaximum",), value, schema,
            )
        return None

    def _check_string(self, value, schema, pointer, schema_path, depth):
        if not isinstance(value, str):
            return None
        length = len(value)
        if "minLength" in schema and length < schema["minLength"]:
            return self._error(
                ErrorKind.STRING_LENGTH_SHORT,
                {"length": length, "minimum": schema["minLength"]},
                pointer, schema_path + ("minLength",), value, schema,
            )
        if "maxLength" in schema and length > schema["maxLength"]:
            return self._error(
                ErrorKind.STRING_LENGTH_LONG,
                {"length": length, "maximum": schema["maxLength"]},
                pointer, schema_path + ("maxLength",), value, schema,
            )
        if "pattern" in schema:
            try:
                matched = re.search(schema["pattern"], value)
            except re.error as e:
                raise SchemaConfigurationError(
                    f"Invalid pattern at {_render_path(schema_path)!r}: {e}"
                ) from e
            if matched is None:
                return self._error(
                    ErrorKind.STRING_PATTERN,
                    {"pattern": schema["pattern"]},
                    pointer, schema_path + ("pattern",), value, schema,
                )
        return None

    def _check_array(self, value, schema, pointer, schema_path, depth):
        if not isinstance(value, (list, tuple)):
            return None
        length = len(value)
        if "minItems" in schema and length < schema["minItems"]:
            return self._error(
                ErrorKind.ARRAY_LENGTH_SHORT,
                {"length": length, "minimum": schema["minItems"]},
                pointer, schema_path + ("minItems",), value, schema,
            )
        if "maxItems" in schema and length > schema["maxItems"]:
            return self._error(
                ErrorKind.ARRAY_LENGTH_LONG,
                {"length": length, "maximum": schema["maxItems"]},
                pointer, schema_path + ("maxItems",), value, schema,
            )

        items = schema.get("items")
        if items is None:
            return None
        if isinstance(items, list):
            pairs = [(i, item, items[i], schema_path + ("items", i)) for i, item in enumerate(value[: len(items)])]
        else:
            pairs = [(i, item, items, schema_path + ("items",)) for i, item in enumerate(value)]
        for index, item, item_schema, item_path in pairs:
            error = self._validate(item, item_schema, pointer.child(index), item_path, 0)
            if error is not None:
                return error
        return None

    def _check_object(self, value, schema, pointer, schema_path, depth):
        if not isinstance(value, Mapping):
            return None

        for index, key in enumerate(schema.get("required") or ()):
            if key not in value:
                return self._error(
                    ErrorKind.OBJECT_REQUIRED,
                    {"key": key},
                    MissingField(key, pointer),
                    schema_path + ("required", index),
                    value,
                    schema,
                )

        properties = schema.get("properties") or {}
        for key, property_schema in properties.items():
            if key not in value:
                continue
            error = self._validate(
                value[key], property_schema, pointer.child(key),
                schema_path + ("properties", key), 0,
            )
            if error is not None:
                return error

        additional = schema.get("additionalProperties", True)
        if additional is True:
            return None
        for key in value:
            if key in properties:
                continue
            if additional is False:
                return self._error(
                    ErrorKind.OBJECT_ADDITIONAL_PROPERTIES,
                    {"key": key},
                    pointer.child(key),
                    schema_path + ("additionalProperties",),
                    value[key],
                    schema,
                )
            error = self._validate(
                value[key], additional, pointer.child(key),
                schema_path + ("additionalProperties",), 0,
            )
            if error is not None:
                return error
        return None

    def _check_combinations(self, value, schema, pointer, schema_path, depth):
        for index, sub_schema in enumerate(schema.get("allOf") or ()):
            error = self._validate(value, sub_schema, pointer, schema_path + ("allOf", index), depth + 1)
            if error is not None:
                return error

        if "anyOf" in schema:
            branch_errors = []
            for index, sub_schema in enumerate(schema["anyOf"]):
                error = self._validate(value, sub_schema, pointer, schema_path + ("anyOf", index), depth + 1)
                if error is None:
                    break
                branch_errors.append(error)
            else:
                return self._error(
                    ErrorKind.ANY_OF_MISSING, {}, pointer, schema_path + ("anyOf",),
                    value, schema, tuple(branch_errors),
                )

        if "oneOf" in schema:
            branch_errors = []
            matched = []
            for index, sub_schema in enumerate(schema["oneOf"]):
                error = self._validate(value, sub_schema, pointer, schema_path + ("oneOf", index), depth + 1)
                if error is None:
                    matched.append(index)
                else:
                    branch_errors.append(error)
            if not matched:
                return self._error(
                    ErrorKind.ONE_OF_MISSING, {}, pointer, schema_path + ("oneOf",),
                    value, schema, tuple(branch_errors),
                )
            if len(matched) > 1:
                return self._error(
                    ErrorKind.ONE_OF_MULTIPLE,
                    {"index1": matched[0], "index2": matched[1]},
                    pointer, schema_path + ("oneOf",), value, schema,
                )

        if "not" in schema:
            if self._validate(value, schema["not"], pointer, schema_path + ("not",), depth + 1) is None:
                return self._error(
                    ErrorKind.NOT_PASSED, {}, pointer, schema_path + ("not",), value, schema,
                )
        return None


def _render_path(schema_path: tuple) -> str:
    return "".join(f"/{segment}" for segment in schema_path)


def _repr(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)
