# rpcgate/errors.py
import traceback
from dataclasses import dataclass
from typing import Any


@dataclass(eq=False)
class JSONRPCError(Exception):
    """Error carried to the caller as a JSON-RPC error object.

    Handlers raise it directly for application errors (code 0 unless they pick one);
    the pipeline raises it for protocol, dispatch and validation failures.
    """

    code: int = 0
    message: str = "General error"
    data: Any = None

    def __post_init__(self):
        super().__init__(self.message)

    def to_dict(self):
        return {"code": self.code, "message": self.message, "data": self.data}


class ConfigError(Exception):
    """Missing or inconsistent configuration, raised at startup."""


def serialize_exception(exc: BaseException) -> dict:
    """Turn an exception into a JSON-serializable dict (name, message, stack)."""
    serialized = {
        "name": type(exc).__name__,
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    if isinstance(exc, JSONRPCError):
        serialized["code"] = exc.code
        serialized["data"] = exc.data
    return serialized


# JSON-RPC 2.0 reserved error codes
PARSE_ERROR_CODE = -32700
INVALID_REQUEST_CODE = -32600
METHOD_NOT_FOUND_CODE = -32601
INVALID_PARAMS_CODE = -32602
INTERNAL_ERROR_CODE = -32603
GENERAL_ERROR_CODE = 0

PARSE_ERROR = lambda d=None: JSONRPCError(PARSE_ERROR_CODE, "Parse error", d)
INVALID_REQUEST = lambda d=None: JSONRPCError(INVALID_REQUEST_CODE, "Invalid request", d)
METHOD_NOT_FOUND = lambda d=None: JSONRPCError(METHOD_NOT_FOUND_CODE, "Method not found", d)
INVALID_PARAMS = lambda d=None: JSONRPCError(INVALID_PARAMS_CODE, "Invalid params", d)
INTERNAL_ERROR = lambda d=None: JSONRPCError(INTERNAL_ERROR_CODE, "Internal error", d)
