# rpcgate/schemas.py
from typing import Any, Optional

from pydantic import BaseModel, Field


# Every request body is checked against this before anything else happens.
ENVELOPE_SCHEMA = {
    "title": "JSON-RPC request",
    "type": "object",
    "required": ["method"],
    "properties": {
        "jsonrpc": {"title": "Jsonrpc", "type": "string", "enum": ["2.0"]},
        "method": {"title": "Method", "type": "string", "minLength": 1},
        "params": {"title": "Params", "type": "object"},
        "id": {"title": "Id"},
    },
}


class RPCRequest(BaseModel):
    jsonrpc: str = Field(default="2.0")
    method: str
    params: Optional[dict] = None
    id: Any = None


class RPCErrorObject(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class RPCResponse(BaseModel):
    jsonrpc: str = Field(default="2.0")
    result: Any = None
    id: Any = None


class RPCErrorResponse(BaseModel):
    jsonrpc: str = Field(default="2.0")
    error: RPCErrorObject
    id: Any = None
