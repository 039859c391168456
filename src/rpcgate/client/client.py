# rpcgate/client/client.py
import logging
import os
import time
import uuid
from typing import Any, Optional

import httpx

from rpcgate.config import DEFAULT_MOUNT_PATH
from rpcgate.errors import INTERNAL_ERROR_CODE, ConfigError, JSONRPCError
from rpcgate.schemas import RPCRequest

logger = logging.getLogger("rpcgate.client")


class JSONRPCTransport:
    def __init__(
        self,
        url: str,
        *,
        token: Optional[str] = None,
        headers: Optional[dict] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            **(headers or {}),
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def call(self, method: str, params: Any = None, id: Optional[str] = None) -> dict:
        """Send one request and return the response envelope as-is.

        A non-2xx HTTP status comes back as an "Internal error" envelope so callers
        only ever deal with JSON-RPC shaped results.
        """
        request_id = id or str(uuid.uuid4())
        # falsy params (None, {}) are left out of the request
        req = RPCRequest(method=method, params=params or None, id=request_id)
        body = req.model_dump(exclude_none=True)

        start = time.monotonic()
        resp = await self.client.post(self.url, json=body, headers=self.headers)
        if resp.is_success:
            data = resp.json()
        else:
            data = {
                "jsonrpc": "2.0",
                "error": {
                    "code": INTERNAL_ERROR_CODE,
                    "message": "Internal error",
                    "data": {
                        "url": str(resp.url),
                        "status": resp.status_code,
                        "status_text": resp.reason_phrase,
                    },
                },
                "id": request_id,
            }

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"POST {self.url} {method} -> {resp.status_code} [+{elapsed_ms:.0f}ms]")
        return data

    async def call_method(self, method: str, params: Any = None, id: Optional[str] = None) -> Any:
        """Call and return ``result``; error responses raise JSONRPCError."""
        data = await self.call(method, params, id)
        if "error" in data:
            err = data["error"]
            raise JSONRPCError(code=err["code"], message=err["message"], data=err.get("data"))
        return data.get("result")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self) -> "JSONRPCTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# ──────────────────────────────────────────────────────────────
# Service-to-service calls (SVC_<NAME>_URL)
# ──────────────────────────────────────────────────────────────
def service_url(service: str) -> str:
    url = os.getenv(f"SVC_{service.upper()}_URL")
    if not url:
        raise ConfigError(f"Rpc request made to service that wasn't found in config: {service}")
    return url


async def svc_rpc(service: str, method: str, params: Any = None, token: Optional[str] = None) -> dict:
    """Call ``method`` on the service whose URL is configured as ``SVC_<SERVICE>_URL``."""
    async with JSONRPCTransport(service_url(service), token=token) as transport:
        return await transport.call(method, params)


# ──────────────────────────────────────────────────────────────
# In-process calls (tests)
# ──────────────────────────────────────────────────────────────
async def call_rpc(
    app,
    method: str,
    params: Any = None,
    *,
    token: Optional[str] = None,
    mount_path: str = DEFAULT_MOUNT_PATH,
) -> dict:
    """Call ``method`` on an ASGI app without a network and return only ``result``/``error``.

    The request goes through the app's full HTTP stack, so the content-type gate,
    headers and the response encoding are all exercised.
    """
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://rpcgate")
    async with JSONRPCTransport(f"http://rpcgate{mount_path}", token=token, client=client) as transport:
        response = await transport.call(method, params)
    return {key: response[key] for key in ("result", "error") if key in response}
