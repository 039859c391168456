
from rpcgate.config import Settings
from rpcgate.server.registry import RPCMethodRegistry

settings = Settings.from_env()

rpc = RPCMethodRegistry(
    name="rpc",
    settings=settings,
)

# # --- Register example methods ------------------------------------------------
@rpc.register(
    "greet",
    params_schema={
        "type": "object",
        "properties": {
            "name": {"title": "Name", "type": "string", "minLength": 1, "default": "world"},
        },
    },
)
def greet(params, context):
    """Say hello."""
    return f"hello {params['name']}"


@rpc.register(
    "divide",
    params_schema={
        "type": "object",
        "required": ["a", "b"],
        "properties": {
            "a": {"title": "Dividend", "type": "number"},
            "b": {"title": "Divisor", "type": "number"},
        },
    },
)
def divide(params, context):
    """Divide two numbers."""
    return params["a"] / params["b"]


app = rpc.app

if __name__ == "__main__":
    rpc.run()
