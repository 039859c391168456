"""End-to-end tests for RequestPipeline: one raw body in, one response dict out."""

import json

import anyio
import pytest

from rpcgate.errors import JSONRPCError
from rpcgate.server.pipeline import RequestContext, RequestPipeline
from rpcgate.server.registry import RPCMethodRegistry


def make_registry(**settings) -> RPCMethodRegistry:
    rpc = RPCMethodRegistry(name="test", settings=settings)
    rpc.add_schema("post", {
        "type": "object",
        "required": ["title"],
        "properties": {
            "title": {"title": "Title", "type": "string", "minLength": 1},
            "status": {"type": "string", "enum": ["draft", "published"], "default": "draft"},
        },
    })

    @rpc.register("greet", params_schema={
        "type": "object",
        "properties": {
            "name": {"title": "Name", "type": "string", "minLength": 1, "default": "world"},
        },
    })
    def greet(params, context):
        return f"hello {params['name']}"

    @rpc.register("createPost", params_schema={
        "allOf": [{"$ref": "post"}],
        "properties": {"slug": {"type": "string", "default": "untitled"}},
    })
    async def create_post(params, context):
        return params

    @rpc.register("importPost", params_schema={"allOf": [{"$ref": "post"}]}, skip_defaulting=True)
    def import_post(params, context):
        return params

    @rpc.register("echo")
    def echo(params, context):
        return params

    @rpc.register("whoami")
    def whoami(params, context):
        return {"method": context.method, "id": context.id, "agent": context.headers.get("user-agent")}

    @rpc.register("getPost")
    def get_post(params, context):
        raise JSONRPCError(message="Post not found", data={"id": params["id"]})

    @rpc.register("explode")
    def explode(params, context):
        raise RuntimeError("boom")

    @rpc.register("slow")
    async def slow(params, context):
        await anyio.sleep(5)

    @rpc.register("opaque")
    def opaque(params, context):
        return object()

    @rpc.register("infinite")
    def infinite(params, context):
        return float("inf")

    return rpc


def call(method, params=None, id=1, **extra) -> str:
    body = {"jsonrpc": "2.0", "method": method, "id": id, **extra}
    if params is not None:
        body["params"] = params
    return json.dumps(body)


@pytest.fixture
def pipeline() -> RequestPipeline:
    return RequestPipeline(make_registry())


class TestSuccess:
    @pytest.mark.asyncio
    async def test_default_is_injected(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b'{"jsonrpc":"2.0","method":"greet","params":{},"id":1}')
        assert response == {"jsonrpc": "2.0", "result": "hello world", "id": 1}

    @pytest.mark.asyncio
    async def test_missing_params_get_defaults(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle('{"method":"greet","id":"a"}')
        assert response == {"jsonrpc": "2.0", "result": "hello world", "id": "a"}

    @pytest.mark.asyncio
    async def test_provided_value_wins(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("greet", {"name": "Ada"}))
        assert response["result"] == "hello Ada"

    @pytest.mark.asyncio
    async def test_inherited_defaults_are_injected(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("createPost", {"title": "Hi"}))
        assert response["result"] == {"title": "Hi", "status": "draft", "slug": "untitled"}

    @pytest.mark.asyncio
    async def test_skip_defaulting_validates_params_as_sent(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("importPost", {"title": "Hi"}))
        assert response["result"] == {"title": "Hi"}

    @pytest.mark.asyncio
    async def test_skip_defaulting_from_settings(self) -> None:
        pipeline = RequestPipeline(make_registry(skip_defaulting=["greet"]))
        response = await pipeline.handle(call("greet", {}))
        # no default, so the handler's lookup fails
        assert response["error"]["code"] == -32603

    @pytest.mark.asyncio
    async def test_method_without_schema_gets_params_unchecked(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("echo", {"anything": [1, 2]}))
        assert response["result"] == {"anything": [1, 2]}
        response = await pipeline.handle(call("echo"))
        assert response == {"jsonrpc": "2.0", "result": None, "id": 1}

    @pytest.mark.asyncio
    async def test_context_is_filled_in(self, pipeline: RequestPipeline) -> None:
        context = RequestContext(headers={"user-agent": "pytest"})
        response = await pipeline.handle(call("whoami", id=7), context)
        assert response["result"] == {"method": "whoami", "id": 7, "agent": "pytest"}

    @pytest.mark.asyncio
    async def test_handler_called_once_and_id_echoed(self) -> None:
        calls = []
        rpc = RPCMethodRegistry(name="counting")

        @rpc.register("count")
        def count(params, context):
            calls.append(params)
            return len(calls)

        pipeline = RequestPipeline(rpc)
        response = await pipeline.handle(call("count", {"n": 1}, id="req-42"))
        assert response == {"jsonrpc": "2.0", "result": 1, "id": "req-42"}
        assert calls == [{"n": 1}]

    @pytest.mark.asyncio
    async def test_request_without_id_still_gets_response(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle('{"jsonrpc":"2.0","method":"greet"}')
        assert response == {"jsonrpc": "2.0", "result": "hello world", "id": None}


class TestProtocolErrors:
    @pytest.mark.asyncio
    async def test_parse_error(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b'{"jsonrpc": "2.0", "method"')
        assert response["id"] is None
        error = response["error"]
        assert error["code"] == -32700
        assert error["message"] == "Parse error"
        assert error["data"]["name"] == "JSONDecodeError"

    @pytest.mark.asyncio
    async def test_empty_body_is_parse_error(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b"")
        assert response["error"]["code"] == -32700
        assert response["id"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("literal", [b"NaN", b"Infinity", b"-Infinity"])
    async def test_non_json_number_literals_are_parse_errors(self, pipeline: RequestPipeline, literal) -> None:
        response = await pipeline.handle(b'{"jsonrpc":"2.0","method":"echo","id":' + literal + b"}")
        assert response["id"] is None
        assert response["error"]["code"] == -32700
        assert response["error"]["data"]["name"] == "ValueError"

    @pytest.mark.asyncio
    async def test_deeply_nested_body_is_parse_error(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b"[" * 100000)
        assert response["id"] is None
        assert response["error"]["code"] == -32700
        assert response["error"]["message"] == "Parse error"

    @pytest.mark.asyncio
    async def test_non_object_body_is_invalid_request(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b"[1, 2]")
        assert response == {
            "jsonrpc": "2.0",
            "error": {
                "code": -32600,
                "message": "Invalid request",
                "data": {"": "Invalid type: array (expected object)"},
            },
            "id": None,
        }

    @pytest.mark.asyncio
    async def test_missing_method(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b'{"jsonrpc":"2.0","id":4}')
        assert response["error"]["code"] == -32600
        assert response["error"]["data"] == {"method": "Method is required"}
        assert response["id"] == 4

    @pytest.mark.asyncio
    async def test_wrong_protocol_version(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b'{"jsonrpc":"1.0","method":"greet","id":5}')
        assert response["error"]["data"] == {"jsonrpc": 'No enum match for: "1.0"'}

    @pytest.mark.asyncio
    async def test_params_must_be_object(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("greet", ["Ada"]))
        assert response["error"]["code"] == -32600
        assert response["error"]["data"] == {"params": "Invalid type: array (expected object)"}

    @pytest.mark.asyncio
    async def test_method_not_found(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("nope", id=9))
        assert response == {
            "jsonrpc": "2.0",
            "error": {"code": -32601, "message": "Method not found", "data": None},
            "id": 9,
        }


class TestParamErrors:
    @pytest.mark.asyncio
    async def test_type_error_is_flattened(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(b'{"jsonrpc":"2.0","method":"greet","params":{"name":123},"id":2}')
        assert response == {
            "jsonrpc": "2.0",
            "error": {
                "code": -32602,
                "message": "Invalid params",
                "data": {"name": "Invalid type: integer (expected string)"},
            },
            "id": 2,
        }

    @pytest.mark.asyncio
    async def test_explicit_null_is_validated_not_defaulted(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("greet", {"name": None}))
        assert response["error"]["data"] == {"name": "Invalid type: null (expected string)"}

    @pytest.mark.asyncio
    async def test_required_field_from_base_schema(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("createPost", {}))
        assert response["error"]["code"] == -32602
        assert response["error"]["data"] == {"title": "Title is required"}

    @pytest.mark.asyncio
    async def test_min_length_message(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("createPost", {"title": ""}))
        assert response["error"]["data"] == {"title": "Title must be at least 1 character long"}


class TestHandlerErrors:
    @pytest.mark.asyncio
    async def test_application_error_passes_through(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("getPost", {"id": 3}, id=11))
        assert response == {
            "jsonrpc": "2.0",
            "error": {"code": 0, "message": "Post not found", "data": {"id": 3}},
            "id": 11,
        }

    @pytest.mark.asyncio
    async def test_internal_error_in_development_carries_details(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("explode"))
        error = response["error"]
        assert error["code"] == -32603
        assert error["message"] == "Internal error"
        assert error["data"]["name"] == "RuntimeError"
        assert error["data"]["message"] == "boom"
        assert "Traceback" in error["data"]["stack"]

    @pytest.mark.asyncio
    async def test_internal_error_in_production_is_reported_not_leaked(self) -> None:
        reported = []
        pipeline = RequestPipeline(
            make_registry(environment="production"),
            error_reporter=lambda exc, context: reported.append((exc, context.method, context.id)),
        )
        response = await pipeline.handle(call("explode", id=12))
        assert response == {
            "jsonrpc": "2.0",
            "error": {"code": -32603, "message": "Internal error", "data": None},
            "id": 12,
        }
        assert len(reported) == 1
        exc, method, request_id = reported[0]
        assert isinstance(exc, RuntimeError)
        assert (method, request_id) == ("explode", 12)

    @pytest.mark.asyncio
    async def test_failing_reporter_does_not_break_response(self) -> None:
        def reporter(exc, context):
            raise ValueError("reporter down")

        pipeline = RequestPipeline(make_registry(environment="production"), error_reporter=reporter)
        response = await pipeline.handle(call("explode"))
        assert response["error"]["code"] == -32603

    @pytest.mark.asyncio
    async def test_handler_timeout(self) -> None:
        pipeline = RequestPipeline(make_registry(handler_timeout=0.01))
        response = await pipeline.handle(call("slow"))
        assert response["error"]["code"] == -32603
        assert response["error"]["data"]["name"] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_unencodable_result_is_internal_error(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("opaque", id=13))
        assert response["id"] == 13
        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == "Internal error"
        assert "result" not in response

    @pytest.mark.asyncio
    async def test_non_finite_result_is_internal_error(self, pipeline: RequestPipeline) -> None:
        response = await pipeline.handle(call("infinite", id=14))
        assert response["id"] == 14
        assert response["error"]["code"] == -32603
        assert response["error"]["data"]["name"] == "ValueError"

    @pytest.mark.asyncio
    async def test_unencodable_result_in_production_is_reported(self) -> None:
        reported = []
        pipeline = RequestPipeline(
            make_registry(environment="production"),
            error_reporter=lambda exc, context: reported.append(context.method),
        )
        response = await pipeline.handle(call("opaque", id=15))
        assert response == {
            "jsonrpc": "2.0",
            "error": {"code": -32603, "message": "Internal error", "data": None},
            "id": 15,
        }
        assert reported == ["opaque"]


class TestApplies:
    @pytest.mark.parametrize(
        "content_type, expected",
        [
            ("application/json", True),
            ("application/json; charset=utf-8", True),
            ("Application/JSON", True),
            ("text/plain", False),
            ("application/jsonp", False),
            (None, False),
            ("", False),
        ],
    )
    def test_applies(self, content_type, expected) -> None:
        assert RequestPipeline.applies(content_type) is expected
