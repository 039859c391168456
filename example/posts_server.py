# posts_server.py
import uuid
from datetime import datetime, timezone

from rpcgate.errors import JSONRPCError
from rpcgate.server.registry import RPCMethodRegistry

# Simple in-memory DB (demo only)
POSTS = {}  # post_id -> dict

settings = {
    "host": "127.0.0.1",
    "port": 8002,
    "mount_path": "/jsonrpc",
    "skip_defaulting": ["import_post"],
}

rpc = RPCMethodRegistry(name="posts", settings=settings)

# Shared by createPost and import_post through allOf
rpc.add_schema("post", {
    "type": "object",
    "required": ["title"],
    "properties": {
        "title": {"title": "Title", "type": "string", "minLength": 1, "maxLength": 140},
        "body": {"title": "Body", "type": "string", "default": ""},
        "status": {"title": "Status", "type": "string", "enum": ["draft", "published"], "default": "draft"},
    },
})


@rpc.register("createPost", description="Create a post. params: {title: str, body?: str, status?: str, slug?: str}", params_schema={
    "allOf": [{"$ref": "post"}],
    "properties": {
        "slug": {"title": "Slug", "type": "string", "pattern": "^[a-z0-9-]+$"},
    },
})
def create_post(params, context):
    post_id = str(uuid.uuid4())
    post = {
        "id": post_id,
        **params,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }
    POSTS[post_id] = post
    return post


@rpc.register("import_post", description="Store a post exactly as given", params_schema={
    "allOf": [{"$ref": "post"}],
})
def import_post(params, context):
    post_id = str(uuid.uuid4())
    POSTS[post_id] = {"id": post_id, **params}
    return POSTS[post_id]


@rpc.register("getPost", description="Get a post by id. params: {id: str}", params_schema={
    "type": "object",
    "required": ["id"],
    "properties": {"id": {"type": "string"}},
})
def get_post(params, context):
    post = POSTS.get(params["id"])
    if not post:
        raise JSONRPCError(data={"id": params["id"]}, message="Post not found")
    return post


@rpc.register("listPosts", description="List all posts")
def list_posts(params, context):
    return list(POSTS.values())


if __name__ == "__main__":
    print("Starting posts RPC server on http://127.0.0.1:8002/jsonrpc")
    rpc.run(host="127.0.0.1", port=8002)
