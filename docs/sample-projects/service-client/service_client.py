"""
A client for some remote service, written once in its non-blocking form.

The upstream API (create a bucket, delete a bucket, ...) reads exactly the same in the blocking and the non-blocking
build, apart from `async`/`await`. Only the transport differs: each build gets its own `request()`.

Loading the blocking build gives `InnerClientSync` and `ServiceClientSync`, the non-blocking build gives
`InnerClientAsync` and `ServiceClientAsync`.
"""
from typing import Protocol

from python_maybe_async import maybe_async

Response = str
Url = str


@maybe_async.both
class InnerClient(Protocol):
    async def request(self, method: str, url: Url, data: str) -> Response:
        ...

    async def post(self, url: Url, data: str) -> Response:
        return await self.request("post", url, data)

    async def delete(self, url: Url, data: str) -> Response:
        return await self.request("delete", url, data)


@maybe_async.both
class ServiceClient(InnerClient):
    @maybe_async.sync_impl
    def request(self, method: str, url: Url, data: str) -> Response:
        # a real client would use a blocking http library here
        return f"pretend we have a {method} response for {data}"

    @maybe_async.async_impl
    async def request(self, method: str, url: Url, data: str) -> Response:
        # a real client would use an asyncio http library here
        return f"pretend we have an awaited {method} response for {data}"

    async def create_bucket(self, name: str) -> Response:
        return await self.post("http://correct_url4create", name)

    async def delete_bucket(self, name: str) -> Response:
        return await self.delete("http://correct_url4delete", name)

    async def create_buckets(self, names: list[str]) -> list[Response]:
        return [await self.create_bucket(name) for name in names]


@maybe_async.both
async def run() -> Response:
    # ServiceClient is ServiceClientSync or ServiceClientAsync, depending on the build
    client: ServiceClient = ServiceClient()
    return await client.create_bucket("bucket")
