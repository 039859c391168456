from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Sequence

import anyio
import uvicorn
from fastapi import FastAPI

from rpcgate.config import Settings
from rpcgate.errors import METHOD_NOT_FOUND
from rpcgate.server.pipeline import ErrorReporter, RequestPipeline
from rpcgate.transport.http import create_app
from rpcgate.validation.compose import resolve_composition
from rpcgate.validation.messages import Formatter
from rpcgate.validation.validator import SchemaRegistry, SchemaValidator


# ──────────────────────────────────────────────────────────────
# Logging
# ──────────────────────────────────────────────────────────────
def configure_logging(level: str | int = "INFO"):
    logger = logging.getLogger("rpcgate")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)


# ──────────────────────────────────────────────────────────────
# MethodSpec – Holds handler + metadata
# ──────────────────────────────────────────────────────────────
@dataclass
class MethodSpec:
    """
    A registered RPC method.

    Callable like the handler itself, which receives ``(params, context)``.
    """

    fn: Callable[..., Any]
    """Handler to be called."""

    name: str
    """RPC method name (as registered)."""

    description: str | None = None
    """Human-readable description of the method."""

    params_schema: dict | None = None
    """Schema for params; None dispatches params unchecked."""

    skip_defaulting: bool = False
    """Validate params as sent, without filling in schema defaults."""

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.fn(*args, **kwargs)

    @property
    def is_async(self) -> bool:
        return inspect.iscoroutinefunction(self.fn)

    def to_json(self) -> dict:
        """Return method info as JSON-serializable dict."""
        return {
            "name": self.name,
            "description": self.description,
            "params_schema": self.params_schema,
            "skip_defaulting": self.skip_defaulting,
            "is_async": self.is_async,
        }


# ──────────────────────────────────────────────────────────────
# Main Registry Class
# ──────────────────────────────────────────────────────────────
class RPCMethodRegistry:
    """Method name -> handler + params schema, built at startup and then frozen.

    Method params schemas are also registered as named schemas under the method's
    name, so one method's schema can extend another's with ``{"allOf": [{"$ref": name}]}``.
    """

    def __init__(
        self,
        name: str | None = None,
        settings: Settings | dict | None = None,
        formatters: Sequence[Formatter] | None = None,
    ):
        self._settings = Settings.coerce(settings)
        self._name = name or "RPCRegistry"
        self._methods: Dict[str, MethodSpec] = {}
        self._schemas = SchemaRegistry()
        self._validator = SchemaValidator(self._schemas, formatters)
        self._composed: Dict[str, Mapping[str, Any]] = {}
        self._frozen = False
        self._logger = logging.getLogger("rpcgate.registry")
        self._app: FastAPI | None = None

        configure_logging(self._settings.log_level)
        self._logger.info(f"Initialized {self._name}")

    # ───── Properties ─────
    @property
    def name(self) -> str:
        return self._name

    @property
    def methods(self) -> Dict[str, Callable]:
        return {name: spec.fn for name, spec in self._methods.items()}

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def schemas(self) -> SchemaRegistry:
        return self._schemas

    @property
    def validator(self) -> SchemaValidator:
        return self._validator

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ───── Registration ─────
    def register(
        self,
        name: str | None = None,
        *,
        description: str | None = None,
        params_schema: dict | None = None,
        skip_defaulting: bool = False,
    ):
        def decorator(fn: Callable) -> Callable:
            self.add_method(
                name or fn.__name__,
                fn,
                description=description or inspect.getdoc(fn),
                params_schema=params_schema,
                skip_defaulting=skip_defaulting,
            )
            return fn
        return decorator

    def add_method(
        self,
        name: str,
        fn: Callable,
        *,
        description: str | None = None,
        params_schema: dict | None = None,
        skip_defaulting: bool = False,
    ) -> MethodSpec:
        self._ensure_not_frozen(name)
        if name in self._methods:
            if not self._settings.warn_on_duplicate:
                raise ValueError(f"Method '{name}' already registered")
            self._logger.warning(f"Method '{name}' registered twice, replacing")

        spec = MethodSpec(
            fn=fn,
            name=name,
            description=description,
            params_schema=params_schema,
            skip_defaulting=skip_defaulting,
        )
        if params_schema is not None:
            self._schemas.add(name, params_schema)
        self._methods[name] = spec
        self._logger.debug(f"Registered: {name}")
        return spec

    def add_schema(self, name: str, schema: dict) -> None:
        """Register a standalone schema that method schemas can ``$ref``."""
        self._ensure_not_frozen(name)
        self._schemas.add(name, schema)

    def _ensure_not_frozen(self, name: str) -> None:
        if self._frozen:
            raise RuntimeError(f"Cannot register '{name}': {self._name} is frozen")

    # ───── Startup ─────
    def freeze(self) -> None:
        """Resolve every schema once and stop accepting registrations.

        Raises SchemaConfigurationError for references to unknown schemas and for
        cyclic composition, so a broken schema set fails at startup.
        """
        if self._frozen:
            return

        self._schemas.freeze()
        for schema_name in self._schemas.names():
            resolve_composition(self._schemas.get(schema_name), self._schemas, schema_name)
        for name, spec in self._methods.items():
            if spec.params_schema is not None:
                self._composed[name] = resolve_composition(spec.params_schema, self._schemas, name)

        self._frozen = True
        self._logger.info(f"Loaded RPC methods: {sorted(self._methods)}")

    # ───── Lookup ─────
    def get(self, method_name: str) -> MethodSpec:
        try:
            return self._methods[method_name]
        except KeyError:
            self._logger.warning(f"Method not found: {method_name}")
            raise METHOD_NOT_FOUND() from None

    def __contains__(self, method_name: object) -> bool:
        return method_name in self._methods

    def composed_schema(self, method_name: str) -> Mapping[str, Any] | None:
        return self._composed.get(method_name)

    def should_default(self, method_name: str) -> bool:
        spec = self._methods.get(method_name)
        if spec is None or spec.params_schema is None or spec.skip_defaulting:
            return False
        return method_name not in self._settings.skip_defaulting

    # ───── Introspection ─────
    def list_methods(self) -> Dict[str, dict]:
        return {
            name: {
                "description": spec.description,
                "params_schema": spec.params_schema,
                "skip_defaulting": spec.skip_defaulting,
            }
            for name, spec in sorted(self._methods.items())
        }

    # ───── Pipeline / App ─────
    def build_pipeline(self, error_reporter: ErrorReporter | None = None) -> RequestPipeline:
        return RequestPipeline(self, error_reporter=error_reporter)

    @property
    def app(self) -> FastAPI:
        if self._app is None:
            self._app = create_app(self)
        return self._app

    def run(self, *, host: str | None = None, port: int | None = None) -> None:
        """Serve the registry over HTTP with uvicorn."""
        host = host or self._settings.host
        port = port or self._settings.port
        print(f"RPC Server starting at http://{host}:{port}{self._settings.mount_path}")
        anyio.run(self._run_http_async, host, port)

    async def _run_http_async(self, host: str, port: int):
        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level=self._settings.log_level.lower() if isinstance(self._settings.log_level, str) else "info",
        )
        server = uvicorn.Server(config)
        self._logger.info(f"Starting HTTP server at http://{host}:{port}{self._settings.mount_path}")
        await server.serve()
