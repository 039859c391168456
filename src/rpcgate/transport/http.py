# rpcgate/transport/http.py
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from rpcgate.config import RPC_CONTENT_TYPE
from rpcgate.server.pipeline import ErrorReporter, RequestContext, RequestPipeline

if TYPE_CHECKING:
    from rpcgate.server.registry import RPCMethodRegistry

Fallback = Callable[[Request], Awaitable[Response]]


async def unsupported_media_type(request: Request) -> Response:
    return JSONResponse(
        status_code=415,
        content={"detail": f"Expected Content-Type: {RPC_CONTENT_TYPE}"},
    )


class HTTPTransport:
    """Feeds JSON requests through the pipeline; anything else goes to ``fallback``."""

    def __init__(self, pipeline: RequestPipeline, fallback: Optional[Fallback] = None):
        self.pipeline = pipeline
        self.fallback = fallback or unsupported_media_type

    async def handle(self, request: Request) -> Response:
        if not self.pipeline.applies(request.headers.get("content-type")):
            return await self.fallback(request)

        raw = await request.body()
        context = RequestContext(headers=request.headers, request=request)
        payload = await self.pipeline.handle(raw, context)
        return JSONResponse(payload)


def create_app(
    registry: "RPCMethodRegistry",
    *,
    fallback: Optional[Fallback] = None,
    error_reporter: Optional[ErrorReporter] = None,
) -> FastAPI:
    pipeline = registry.build_pipeline(error_reporter)
    transport = HTTPTransport(pipeline, fallback)

    app = FastAPI(title=registry.name)
    app.state.pipeline = pipeline

    # RPC endpoint
    app.post(registry.settings.mount_path)(transport.handle)

    # Methods introspection endpoint
    async def methods_endpoint():
        return JSONResponse(content={"result": registry.list_methods(), "error": None})

    app.get("/methods")(methods_endpoint)
    return app
