"""Flatten a validation error tree into ``{field path: message}``.

Turns an error like::

    ValidationError(kind=STRING_LENGTH_SHORT, message="Title must be at least 1 character long",
                    target=ValuePointer(("post", "title")), sub_errors=(...))

into something a frontend can put next to its form fields::

    {"post.title": "Title must be at least 1 character long"}

A missing required property is reported under its own name (``{"title": ...}``) rather
than under the object that lacks it.
"""

from __future__ import annotations

from rpcgate.validation.types import MissingField, ValidationError, ValuePointer


def join_segments(segments: tuple[str | int, ...]) -> str:
    """``("items", 0, "name")`` -> ``"items[0].name"``."""
    path = ""
    for segment in segments:
        if isinstance(segment, int):
            path += f"[{segment}]"
        else:
            path = f"{path}.{segment}" if path else segment
    return path


def field_path(error: ValidationError) -> str:
    match error.target:
        case MissingField(name=name):
            return name
        case ValuePointer(segments=segments):
            return join_segments(segments)
    raise TypeError(f"Unknown validation target: {error.target!r}")


def flatten(error: ValidationError | None) -> dict[str, str]:
    """Collect every node's message, parents before children, left to right.

    When two nodes land on the same path the one visited last wins.
    """
    flat: dict[str, str] = {}
    if error is None:
        return flat

    stack = [error]
    while stack:
        node = stack.pop()
        flat[field_path(node)] = node.message
        stack.extend(reversed(node.sub_errors))
    return flat
