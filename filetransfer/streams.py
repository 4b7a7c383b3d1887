"""Abstract stream types returned by streaming-capable clients.

Stream construction never performs I/O. A read stream opens its remote
resource when entered (``async with``) or when iteration starts, so any
open or status error is raised before the first chunk is delivered. A write
stream starts its transfer on the first ``write()`` and completes it in
``aclose()``.

Example:
    async with client.create_read_stream("/remote/file.txt") as stream:
        async for chunk in stream:
            ...

    async with client.create_write_stream("/remote/copy.txt") as stream:
        await stream.write(b"Hello, friend.")
"""

from abc import ABCMeta, abstractmethod
from contextlib import AbstractAsyncContextManager
from types import TracebackType
from typing import AsyncIterator, Optional
from typing_extensions import Self

DEFAULT_CHUNK_SIZE = 65536


class ReadStream(AbstractAsyncContextManager["ReadStream"], metaclass=ABCMeta):
    """Asynchronous iterator over the byte chunks of a remote file."""

    chunk_size: int = DEFAULT_CHUNK_SIZE

    @abstractmethod
    async def open(self) -> None:
        """
        Open the remote resource.

        Calling this more than once has no further effect. Errors raised here
        (missing file, HTTP status >= 400, ...) are raised before any content
        is delivered.
        """

    @abstractmethod
    def iter_chunks(self) -> AsyncIterator[bytes]:
        """
        Iterate over the remote content, opening the stream first if needed.

        Returns:
            An async iterator of non-empty byte chunks
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Release the remote resource. Safe to call more than once."""

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunks()

    async def read(self) -> bytes:
        """Read the whole remaining content into memory."""
        return b"".join([chunk async for chunk in self.iter_chunks()])

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()


class WriteStream(AbstractAsyncContextManager["WriteStream"], metaclass=ABCMeta):
    """Asynchronous writer to a remote file."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Send a chunk of data to the remote file.

        Args:
            data: The bytes to append
        """

    @abstractmethod
    async def aclose(self) -> None:
        """
        Finish the transfer and wait for the remote side to acknowledge it.

        Errors reported by the remote side at completion are raised here.
        """

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if exc_type is None:
            await self.aclose()
        else:
            await self.abort()

    async def abort(self) -> None:
        """Stop the transfer after a failure on the writing side."""
        await self.aclose()
