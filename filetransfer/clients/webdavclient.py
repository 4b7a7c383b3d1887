"""WebDAV client implementation using httpx."""

import asyncio
import logging
import mimetypes
import re
import xml.etree.ElementTree as ET
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union
from urllib.parse import unquote, urlsplit

import aiofiles
import httpx

from filetransfer.clients.client import (
    Client,
    LocalPath,
    Options,
    RemotePath,
    check_local_file,
    remote_str,
)
from filetransfer.config import WebDavConfig
from filetransfer.exceptions import (
    EmptyResponseError,
    UnsupportedMethodsError,
    WebDavError,
)
from filetransfer.streams import ReadStream, WriteStream

logger = logging.getLogger(__name__)

REQUIRED_METHODS = ("OPTIONS", "GET", "PUT", "DELETE", "MKCOL", "PROPFIND")

_NAMESPACE_PREFIX = re.compile(r"(</?)[\w.-]+:")


def raise_for_status(response: httpx.Response) -> None:
    """Translate an HTTP status >= 400 into a WebDavError."""
    if response.status_code >= 400:
        raise WebDavError(response.status_code, response.reason_phrase)


def content_type(remote: str) -> str:
    """Content-Type guessed from the extension of the target file name."""
    guessed, _ = mimetypes.guess_type(remote)
    return guessed or "application/octet-stream"


def parse_multistatus(body: str) -> List[str]:
    """
    Extract every ``href`` of a PROPFIND multistatus body, in document order.

    Namespace prefixes are stripped from tag names before parsing.

    Raises:
        EmptyResponseError: If the body is empty
        xml.etree.ElementTree.ParseError: If the body is not well-formed XML
    """
    if not body or not body.strip():
        raise EmptyResponseError()

    root = ET.fromstring(_NAMESPACE_PREFIX.sub(r"\1", body))

    hrefs = []
    for element in root.iter():
        # A default namespace still shows up as "{DAV:}href"
        if element.tag.rsplit("}", 1)[-1] == "href" and element.text:
            hrefs.append(element.text.strip())
    return hrefs


class WebDavReadStream(ReadStream):
    """Streams the body of a GET request.

    A status >= 400 is raised as WebDavError when the stream is opened, and
    the error body is discarded without being delivered as content.
    """

    def __init__(self, http: httpx.AsyncClient, url: httpx.URL) -> None:
        self._http = http
        self._url = url
        self._response: Optional[httpx.Response] = None

    async def open(self) -> None:
        if self._response is not None:
            return

        request = self._http.build_request("GET", self._url)
        response = await self._http.send(request, stream=True)
        if response.status_code >= 400:
            await response.aclose()
            raise_for_status(response)
        self._response = response

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        await self.open()
        assert self._response is not None
        try:
            async for chunk in self._response.aiter_bytes(self.chunk_size):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._response is not None:
            response, self._response = self._response, None
            await response.aclose()


class WebDavWriteStream(WriteStream):
    """Streams written chunks as the body of a chunked PUT request.

    At most ``max_pending`` chunks wait for the HTTP body consumer; ``write()``
    blocks until the request has taken the previous ones.
    """

    max_pending = 1

    def __init__(self, http: httpx.AsyncClient, url: httpx.URL, headers: Dict[str, str]) -> None:
        self._http = http
        self._url = url
        self._headers = headers
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=self.max_pending)
        self._task: Optional["asyncio.Task[None]"] = None
        self._closed = False

    async def _body(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                break
            yield chunk

    async def _send(self) -> None:
        response = await self._http.request(
            "PUT", self._url, headers=self._headers, content=self._body()
        )
        raise_for_status(response)

    def _start(self) -> "asyncio.Task[None]":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._send())
        return self._task

    async def _feed(self, item: Optional[bytes]) -> None:
        """Hand an item to the request body, unless the request ends first."""
        task = self._start()
        if not task.done():
            put = asyncio.ensure_future(self._queue.put(item))
            try:
                await asyncio.wait({put, task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not put.done():
                    put.cancel()
        if task.done():
            # The server answered early; surface its error instead of waiting
            task.result()

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise ValueError("write to closed stream")
        await self._feed(bytes(data))

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        await self._feed(None)
        await self._start()

    async def abort(self) -> None:
        self._closed = True
        if self._task is not None:
            if not self._task.done():
                self._task.cancel()
            # Retrieve the outcome even when the request already failed
            await asyncio.gather(self._task, return_exceptions=True)


class WebDavClient(Client):
    """WebDAV client using the httpx library.

    Each operation is an independent HTTP request against the configured
    base path. "Connected" is a gate kept by this client: ``connect()``
    checks with an OPTIONS request that the server allows every method the
    client relies on.
    """

    protocol = "WebDAV"

    def __init__(
        self,
        config: Union[WebDavConfig, Mapping[str, Any], None] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the WebDAV client.

        Args:
            config: A WebDavConfig, or a mapping accepted by
                    WebDavConfig.from_dict
            transport: Optional httpx transport, used instead of the network
        """
        super().__init__()
        self.config = WebDavConfig.coerce(config)
        self._transport = transport
        self._origin = httpx.URL(
            f"{self.config.scheme}://{self.config.host}:{self.config.port}"
        )
        self._http: Optional[httpx.AsyncClient] = None

    def name(self) -> str:
        return self.config.name

    def supports_streams(self) -> bool:
        return True

    def url(self, remote: RemotePath) -> httpx.URL:
        """Absolute URL of a path relative to the configured base path."""
        return self._origin.copy_with(path=self._join(remote_str(remote)))

    def _join(self, remote: str) -> str:
        base = self.config.base_path
        if not remote:
            return base
        return base.rstrip("/") + "/" + remote.lstrip("/")

    async def connect(self) -> None:
        """Check connectivity and the allowed methods with an OPTIONS request."""
        if self.connected:
            return

        auth = None
        if self.config.username is not None:
            auth = httpx.BasicAuth(self.config.username, self.config.password or "")

        self._http = httpx.AsyncClient(
            auth=auth,
            timeout=self.config.timeout,
            transport=self._transport,
        )

        logger.debug("Connecting to WebDAV server %s", self.url(""))
        try:
            response = await self._request("OPTIONS", "", gated=False)

            allowed = {
                method.strip().upper()
                for method in response.headers.get_list("Allow", split_commas=True)
            }
            missing = [method for method in REQUIRED_METHODS if method not in allowed]
            if missing:
                raise UnsupportedMethodsError(missing)
        except Exception:
            await self._release()
            raise

        self.connected = True
        logger.info("Connected to WebDAV server %s", self.url(""))

    async def disconnect(self) -> None:
        if not self.connected:
            return

        self.connected = False
        await self._release()
        logger.info("Disconnected from WebDAV server %s", self.config.host)

    async def _release(self) -> None:
        if self._http is not None:
            http, self._http = self._http, None
            await http.aclose()

    def _client(self) -> httpx.AsyncClient:
        self._ensure_connected()
        assert self._http is not None
        return self._http

    async def _request(
        self,
        method: str,
        remote: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None,
        gated: bool = True,
    ) -> httpx.Response:
        http = self._client() if gated else self._http
        assert http is not None

        headers = dict(headers or {})
        if content is not None:
            headers.setdefault("Content-Type", content_type(remote))

        url = self.url(remote)
        logger.debug("WebDAV %s %s", method, url)
        response = await http.request(method, url, headers=headers, content=content)
        raise_for_status(response)
        return response

    def create_read_stream(self, remote: RemotePath, options: Options = None) -> ReadStream:
        return WebDavReadStream(self._client(), self.url(remote))

    def create_write_stream(self, remote: RemotePath, options: Options = None) -> WriteStream:
        headers = {"Content-Type": content_type(remote_str(remote))}
        return WebDavWriteStream(self._client(), self.url(remote), headers)

    async def get(self, remote: RemotePath, local: LocalPath) -> None:
        async with self.create_read_stream(remote) as stream:
            async with aiofiles.open(local, "wb") as local_file:
                async for chunk in stream:
                    await local_file.write(chunk)

    async def put(self, local: LocalPath, remote: RemotePath, options: Options = None) -> None:
        self._ensure_connected()
        await check_local_file(local)

        async with aiofiles.open(local, "rb") as local_file:
            async with self.create_write_stream(remote) as stream:
                while True:
                    chunk = await local_file.read(ReadStream.chunk_size)
                    if not chunk:
                        break
                    await stream.write(chunk)

    async def mkdir(
        self,
        remote: RemotePath,
        mode_or_options: Union[str, int, Options] = None,
    ) -> None:
        """Create a collection. Modes are not supported by WebDAV."""
        await self._request("MKCOL", remote_str(remote))

    async def rmdir(self, remote: RemotePath) -> None:
        """Delete a collection and everything below it."""
        path = remote_str(remote)
        if not path.endswith("/"):
            path += "/"
        await self._request("DELETE", path, headers={"Depth": "infinity"})

    async def unlink(self, remote: RemotePath) -> None:
        await self._request("DELETE", remote_str(remote))

    async def readdir(self, remote: RemotePath) -> List[str]:
        directory = remote_str(remote)
        response = await self._request(
            "PROPFIND",
            directory,
            headers={"Content-Type": "text/xml", "Depth": "1"},
        )

        # hrefs are compared decoded, so the configured base path must be too
        prefix = unquote(self._join(directory)).rstrip("/") + "/"
        names = []
        for href in parse_multistatus(response.text):
            path = unquote(urlsplit(href).path)
            if path.startswith(prefix):
                path = path[len(prefix):]
            elif path.rstrip("/") == prefix.rstrip("/"):
                path = ""
            name = path.rstrip("/")
            if name:
                names.append(name)
        return names
