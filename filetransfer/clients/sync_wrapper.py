"""Blocking facade over the asyncio clients."""

from contextlib import AbstractContextManager
from types import TracebackType
from typing import Any, Awaitable, Callable, Iterator, List, Optional, TypeVar, Union
from typing_extensions import Self

from filetransfer.async_runner import AsyncRunner
from filetransfer.clients.client import Client, LocalPath, Options, RemotePath
from filetransfer.exceptions import NotConnectedError
from filetransfer.streams import ReadStream, WriteStream

T = TypeVar("T")

_END = object()


class SyncReadStream(AbstractContextManager["SyncReadStream"]):
    """Blocking iterator over a ReadStream."""

    def __init__(self, stream: ReadStream, runner: AsyncRunner) -> None:
        self._stream = stream
        self._runner = runner
        self._chunks: Any = None

    def open(self) -> None:
        self._runner.run_sync(self._stream.open())

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        if self._chunks is None:
            self._chunks = self._stream.iter_chunks()
        chunk = self._runner.run_sync(self._next_chunk())
        if chunk is _END:
            raise StopIteration
        return chunk

    async def _next_chunk(self) -> Any:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return _END

    def read(self) -> bytes:
        return b"".join(self)

    def close(self) -> None:
        self._runner.run_sync(self._close())

    async def _close(self) -> None:
        if self._chunks is not None:
            chunks, self._chunks = self._chunks, None
            await chunks.aclose()
        await self._stream.aclose()

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class SyncWriteStream(AbstractContextManager["SyncWriteStream"]):
    """Blocking writer over a WriteStream."""

    def __init__(self, stream: WriteStream, runner: AsyncRunner) -> None:
        self._stream = stream
        self._runner = runner

    def write(self, data: bytes) -> None:
        self._runner.run_sync(self._stream.write(data))

    def close(self) -> None:
        self._runner.run_sync(self._stream.aclose())

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            self.close()
        else:
            self._runner.run_sync(self._stream.abort())


class SyncClient(AbstractContextManager["SyncClient"]):
    """Wraps an asyncio Client to provide a blocking interface.

    Coroutines run on an AsyncRunner's background loop. When no runner is
    given, the wrapper owns one: it is started on connect and stopped on
    disconnect.

    Example:
        with SyncClient(FtpClient({"host": "ftp.example.com"})) as client:
            client.put("local.txt", "/remote.txt")
    """

    def __init__(self, client: Client, runner: Optional[AsyncRunner] = None) -> None:
        self._client = client
        self._runner = runner or AsyncRunner()
        self._owns_runner = runner is None

    @property
    def client(self) -> Client:
        """The wrapped asyncio client."""
        return self._client

    def name(self) -> str:
        return self._client.name()

    def is_connected(self) -> bool:
        return self._client.is_connected()

    def supports_streams(self) -> bool:
        return self._client.supports_streams()

    def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if not self._client.is_connected():
            raise NotConnectedError(self._client.protocol)

        async def run() -> T:
            return await operation()

        return self._runner.run_sync(run())

    def connect(self) -> None:
        if self._owns_runner and not self._runner.is_running:
            self._runner.start()
        try:
            self._runner.run_sync(self._client.connect())
        except Exception:
            if self._owns_runner:
                self._runner.stop()
            raise

    def disconnect(self) -> None:
        if not self._runner.is_running:
            return
        try:
            self._runner.run_sync(self._client.disconnect())
        finally:
            if self._owns_runner:
                self._runner.stop()

    def create_read_stream(self, remote: RemotePath, options: Options = None) -> SyncReadStream:
        return SyncReadStream(self._client.create_read_stream(remote, options), self._runner)

    def create_write_stream(self, remote: RemotePath, options: Options = None) -> SyncWriteStream:
        return SyncWriteStream(self._client.create_write_stream(remote, options), self._runner)

    def get(self, remote: RemotePath, local: LocalPath) -> None:
        self._call(lambda: self._client.get(remote, local))

    def put(self, local: LocalPath, remote: RemotePath, options: Options = None) -> None:
        self._call(lambda: self._client.put(local, remote, options))

    def mkdir(self, remote: RemotePath, mode_or_options: Union[str, int, Options] = None) -> None:
        self._call(lambda: self._client.mkdir(remote, mode_or_options))

    def rmdir(self, remote: RemotePath) -> None:
        self._call(lambda: self._client.rmdir(remote))

    def readdir(self, remote: RemotePath) -> List[str]:
        return self._call(lambda: self._client.readdir(remote))

    def unlink(self, remote: RemotePath) -> None:
        self._call(lambda: self._client.unlink(remote))

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.disconnect()
