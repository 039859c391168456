# posts_client.py
import asyncio

from rpcgate.client.client import JSONRPCTransport
from rpcgate.errors import JSONRPCError

RPC_URL = "http://127.0.0.1:8002/jsonrpc"


async def posts_demo():
    """
    Creates a post, reads it back, and shows what validation errors look like.
    """
    async with JSONRPCTransport(RPC_URL) as transport:
        # 1) Defaults (body, status) are filled in by the server
        post = await transport.call_method("createPost", {"title": "Hello", "slug": "hello"})
        print("Created post:", post)

        # 2) Read it back
        same = await transport.call_method("getPost", {"id": post["id"]})
        print("Fetched post:", same)

        # 3) Invalid params come back as a field -> message map
        try:
            await transport.call_method("createPost", {"slug": "Not A Slug"})
        except JSONRPCError as e:
            print(f"Error {e.code} {e.message}: {e.data}")

        # 4) Raw envelope, including the request id
        print(await transport.call("listPosts"))


if __name__ == "__main__":
    asyncio.run(posts_demo())
