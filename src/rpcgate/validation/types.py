"""Result types produced by the schema validator.

A failed validation yields a tree of :class:`ValidationError` nodes. Every node names
its target explicitly: a :class:`MissingField` for a ``required`` violation, or a
:class:`ValuePointer` to the offending value for everything else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union


class SchemaConfigurationError(Exception):
    """A schema set that cannot be used (unknown reference, cycle, bad keyword)."""


class ErrorKind(str, Enum):
    INVALID_TYPE = "invalid_type"
    ENUM_MISMATCH = "enum_mismatch"
    ANY_OF_MISSING = "any_of_missing"
    ONE_OF_MISSING = "one_of_missing"
    ONE_OF_MULTIPLE = "one_of_multiple"
    NOT_PASSED = "not_passed"
    NUMBER_MINIMUM = "number_minimum"
    NUMBER_MINIMUM_EXCLUSIVE = "number_minimum_exclusive"
    NUMBER_MAXIMUM = "number_maximum"
    NUMBER_MAXIMUM_EXCLUSIVE = "number_maximum_exclusive"
    STRING_LENGTH_SHORT = "string_length_short"
    STRING_LENGTH_LONG = "string_length_long"
    STRING_PATTERN = "string_pattern"
    OBJECT_REQUIRED = "object_required"
    OBJECT_ADDITIONAL_PROPERTIES = "object_additional_properties"
    ARRAY_LENGTH_SHORT = "array_length_short"
    ARRAY_LENGTH_LONG = "array_length_long"
    VALUE_TOO_DEEP = "value_too_deep"

    def __str__(self):
        return self.value


def _escape(segment: str | int) -> str:
    return str(segment).replace("~", "~0").replace("/", "~1")


@dataclass(frozen=True)
class ValuePointer:
    """Location of a value inside the validated document."""

    segments: tuple[str | int, ...] = ()

    def child(self, segment: str | int) -> ValuePointer:
        return ValuePointer(self.segments + (segment,))

    @property
    def pointer(self) -> str:
        """JSON pointer form, ``""`` for the document root."""
        return "".join("/" + _escape(s) for s in self.segments)


@dataclass(frozen=True)
class MissingField:
    """A property named in ``required`` that the object at ``parent`` lacks."""

    name: str
    parent: ValuePointer = ValuePointer()

    @property
    def pointer(self) -> str:
        return self.parent.pointer


Target = Union[MissingField, ValuePointer]


@dataclass(frozen=True)
class ErrorContext:
    """Everything a message formatter gets to look at."""

    kind: ErrorKind
    params: Mapping[str, Any]
    target: Target
    schema_path: str
    value: Any
    schema: Mapping[str, Any]


@dataclass(frozen=True)
class ValidationError:
    kind: ErrorKind
    message: str
    target: Target
    schema_path: str
    params: Mapping[str, Any] = field(default_factory=dict)
    sub_errors: tuple[ValidationError, ...] = ()

    @property
    def data_path(self) -> str:
        return self.target.pointer

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "data_path": self.data_path,
            "schema_path": self.schema_path,
            "params": dict(self.params),
            "sub_errors": [e.to_dict() for e in self.sub_errors],
        }


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: ValidationError | None = None
