"""Human-readable messages for validation failures.

A formatter is any callable taking an :class:`ErrorContext` and returning a message, or
``None`` to let the next formatter have a go. :class:`SchemaValidator` walks its
formatters in order and falls back to :func:`default_message`, so a project can put
its own wording in front of the defaults::

    def no_emails(ctx):
        if ctx.kind is ErrorKind.STRING_PATTERN and ctx.schema.get("format") == "email":
            return "That doesn't look like an email address"

    validator = SchemaValidator(schemas, formatters=(no_emails, *DEFAULT_FORMATTERS))
"""

from __future__ import annotations

import re
from typing import Callable, Optional

from rpcgate.validation.types import ErrorContext, ErrorKind, ValuePointer

Formatter = Callable[[ErrorContext], Optional[str]]

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def humanize(name: str) -> str:
    """``firstName`` / ``first_name`` -> ``First name``."""
    words = _CAMEL_BOUNDARY.sub(" ", name).replace("_", " ").replace("-", " ")
    return " ".join(words.split()).lower().capitalize()


def _title(ctx: ErrorContext) -> str:
    title = ctx.schema.get("title")
    if title:
        return str(title)
    if isinstance(ctx.target, ValuePointer):
        for segment in reversed(ctx.target.segments):
            if isinstance(segment, str):
                return humanize(segment)
    return "Value"


def required_message(ctx: ErrorContext) -> str | None:
    if ctx.kind is not ErrorKind.OBJECT_REQUIRED:
        return None
    return f"{humanize(ctx.params['key'])} is required"


def min_length_message(ctx: ErrorContext) -> str | None:
    if ctx.kind is not ErrorKind.STRING_LENGTH_SHORT:
        return None
    minimum = ctx.params["minimum"]
    characters = "character" if minimum == 1 else "characters"
    return f"{_title(ctx)} must be at least {minimum} {characters} long"


def max_length_message(ctx: ErrorContext) -> str | None:
    if ctx.kind is not ErrorKind.STRING_LENGTH_LONG:
        return None
    return f"{_title(ctx)} must be less than {ctx.params['maximum']} characters long"


def pattern_message(ctx: ErrorContext) -> str | None:
    if ctx.kind is not ErrorKind.STRING_PATTERN:
        return None
    return f"{_title(ctx)} is invalid"


DEFAULT_FORMATTERS: tuple[Formatter, ...] = (
    required_message,
    min_length_message,
    max_length_message,
    pattern_message,
)

DEFAULT_MESSAGES = {
    ErrorKind.INVALID_TYPE: "Invalid type: {type} (expected {expected})",
    ErrorKind.ENUM_MISMATCH: "No enum match for: {value}",
    ErrorKind.ANY_OF_MISSING: 'Data does not match any schemas from "anyOf"',
    ErrorKind.ONE_OF_MISSING: 'Data does not match any schemas from "oneOf"',
    ErrorKind.ONE_OF_MULTIPLE: 'Data is valid against more than one schema from "oneOf": indices {index1} and {index2}',
    ErrorKind.NOT_PASSED: 'Data matches schema from "not"',
    ErrorKind.NUMBER_MINIMUM: "Value {value} is less than minimum {minimum}",
    ErrorKind.NUMBER_MINIMUM_EXCLUSIVE: "Value {value} is equal to or less than exclusive minimum {minimum}",
    ErrorKind.NUMBER_MAXIMUM: "Value {value} is greater than maximum {maximum}",
    ErrorKind.NUMBER_MAXIMUM_EXCLUSIVE: "Value {value} is equal to or greater than exclusive maximum {maximum}",
    ErrorKind.STRING_LENGTH_SHORT: "String is too short ({length} chars), minimum {minimum}",
    ErrorKind.STRING_LENGTH_LONG: "String is too long ({length} chars), maximum {maximum}",
    ErrorKind.STRING_PATTERN: "String does not match pattern: {pattern}",
    ErrorKind.OBJECT_REQUIRED: "Missing required property: {key}",
    ErrorKind.OBJECT_ADDITIONAL_PROPERTIES: "Additional properties not allowed: {key}",
    ErrorKind.ARRAY_LENGTH_SHORT: "Array is too short ({length}), minimum {minimum}",
    ErrorKind.ARRAY_LENGTH_LONG: "Array is too long ({length}), maximum {maximum}",
    ErrorKind.VALUE_TOO_DEEP: "Value is nested more than {limit} levels deep",
}


def default_message(ctx: ErrorContext) -> str:
    """Last-resort wording, one template per error kind."""
    return DEFAULT_MESSAGES[ctx.kind].format(**ctx.params)
