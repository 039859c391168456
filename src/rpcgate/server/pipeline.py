# rpcgate/server/pipeline.py
import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

import anyio
from fastapi.encoders import jsonable_encoder

from rpcgate.config import RPC_CONTENT_TYPE
from rpcgate.errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    PARSE_ERROR,
    JSONRPCError,
    serialize_exception,
)
from rpcgate.schemas import ENVELOPE_SCHEMA, RPCErrorObject, RPCErrorResponse, RPCRequest, RPCResponse
from rpcgate.validation.defaults import inject_defaults
from rpcgate.validation.flatten import flatten

if TYPE_CHECKING:
    from rpcgate.server.registry import MethodSpec, RPCMethodRegistry

logger = logging.getLogger("rpcgate.pipeline")


@dataclass
class RequestContext:
    """Per-request information handed to every handler as its second argument."""

    method: Optional[str] = None
    id: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    request: Any = None
    """Transport request object (a FastAPI ``Request`` over HTTP), if any."""


ErrorReporter = Callable[[BaseException, RequestContext], None]


def log_error_reporter(exc: BaseException, context: RequestContext) -> None:
    logger.error(
        f"Error occurred in RPC method {context.method!r} (id={context.id!r})",
        exc_info=(type(exc), exc, exc.__traceback__),
    )


async def _call_fn(fn: Callable, params: Any, context: RequestContext):
    """
    Call `fn` (sync or async) with (params, context).
    Always return concrete result (never a coroutine).
    """
    result = fn(params, context)
    if inspect.isawaitable(result):
        return await result
    return result


class RequestPipeline:
    """Turns one raw request body into exactly one JSON-RPC response dict.

    parse -> envelope validation -> method lookup -> default injection ->
    params validation -> dispatch. Every failure along the way becomes an error
    response carrying the request id, if one could be read.
    """

    def __init__(self, registry: "RPCMethodRegistry", error_reporter: Optional[ErrorReporter] = None):
        registry.freeze()
        self.registry = registry
        self.settings = registry.settings
        self.validator = registry.validator
        self.error_reporter = error_reporter or log_error_reporter

    @staticmethod
    def applies(content_type: Optional[str]) -> bool:
        """True when a request with this Content-Type is a JSON-RPC call."""
        if not content_type:
            return False
        return content_type.split(";", 1)[0].strip().lower() == RPC_CONTENT_TYPE

    async def handle(self, body: bytes | str, context: Optional[RequestContext] = None) -> dict:
        """Return the response for ``body`` as JSON-ready data (plain dicts, lists, strings...)."""
        context = context or RequestContext()
        response = await self._respond(body, context)
        try:
            return self._encode(response)
        except (TypeError, ValueError, RecursionError) as e:
            error = self._internal_error(e, context)
            return self._encode(self._make_response(error=error, id=response["id"]))

    async def _respond(self, body: bytes | str, context: RequestContext) -> dict:
        request_id = None
        try:
            payload = self._parse(body)
            if isinstance(payload, dict):
                request_id = payload.get("id")
            context.id = request_id

            request = self._validate_envelope(payload)
            context.method = request.method

            spec = self.registry.get(request.method)
            params = self._prepare_params(spec, request.params)

            result = await self._dispatch(spec, params, context)
            return self._make_response(result=result, id=request_id)
        except JSONRPCError as e:
            return self._make_response(error=e, id=request_id)
        except Exception as e:
            return self._make_response(error=self._internal_error(e, context), id=request_id)

    # ───── Stages ─────
    def _parse(self, body: bytes | str) -> Any:
        try:
            return json.loads(body, parse_constant=_reject_constant)
        except (TypeError, ValueError, RecursionError) as e:
            raise PARSE_ERROR(serialize_exception(e)) from e

    def _validate_envelope(self, payload: Any) -> RPCRequest:
        result = self.validator.validate(payload, ENVELOPE_SCHEMA)
        if not result.valid:
            raise INVALID_REQUEST(flatten(result.error))
        return RPCRequest.model_validate(payload)

    def _prepare_params(self, spec: "MethodSpec", params: Optional[dict]) -> Optional[dict]:
        if spec.params_schema is None:
            return params

        if self.registry.should_default(spec.name):
            params = inject_defaults(params, self.registry.composed_schema(spec.name))

        result = self.validator.validate(params if params is not None else {}, spec.params_schema)
        if not result.valid:
            raise INVALID_PARAMS(flatten(result.error))
        return params

    async def _dispatch(self, spec: "MethodSpec", params: Optional[dict], context: RequestContext) -> Any:
        timeout = self.settings.handler_timeout
        if timeout is None:
            return await _call_fn(spec.fn, params, context)
        # only interrupts handlers that await; a blocking sync handler runs to completion
        with anyio.fail_after(timeout):
            return await _call_fn(spec.fn, params, context)

    def _internal_error(self, exc: Exception, context: RequestContext) -> JSONRPCError:
        if not self.settings.is_production:
            logger.debug(f"Internal error in {context.method!r}", exc_info=True)
            return INTERNAL_ERROR(serialize_exception(exc))

        try:
            self.error_reporter(exc, context)
        except Exception:
            logger.exception("Error reporter failed")
        return INTERNAL_ERROR()

    def _make_response(self, result=None, error: Optional[JSONRPCError] = None, id=None) -> dict:
        if error is not None:
            return RPCErrorResponse(error=RPCErrorObject(**error.to_dict()), id=id).model_dump()
        return RPCResponse(result=result, id=id).model_dump()

    @staticmethod
    def _encode(response: dict) -> Any:
        encoded = jsonable_encoder(response)
        # NaN and Infinity are not JSON
        json.dumps(encoded, allow_nan=False)
        return encoded


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")
