from __future__ import annotations

import copy
from typing import Any, Mapping


def inject_defaults(params: Mapping[str, Any] | None, composed_schema: Mapping[str, Any]) -> dict | None:
    """Return a copy of ``params`` with declared top-level defaults filled in.

    A key that is present keeps its value, even when that value is ``None``. Absent
    ``params`` only becomes an object when at least one default applies.
    """
    injected = dict(params) if params is not None else None
    for name, prop in (composed_schema.get("properties") or {}).items():
        if not isinstance(prop, Mapping) or "default" not in prop:
            continue
        if injected is None:
            injected = {}
        if name in injected:
            continue
        injected[name] = copy.deepcopy(prop["default"])
    return injected
