"""Abstract base class for remote file transfer clients."""

import stat
from abc import abstractmethod, ABCMeta
from contextlib import AbstractAsyncContextManager
from pathlib import Path, PurePath
from types import TracebackType
from typing import Any, ClassVar, List, Mapping, Optional, Union
from typing_extensions import Self

import aiofiles.os

from filetransfer.exceptions import NotAFileError, NotConnectedError
from filetransfer.streams import ReadStream, WriteStream

RemotePath = Union[str, PurePath]
LocalPath = Union[str, Path]
Options = Optional[Mapping[str, Any]]


def remote_str(path: RemotePath) -> str:
    """Render a remote path as a POSIX string."""
    if isinstance(path, PurePath):
        return path.as_posix()
    return path


class Client(AbstractAsyncContextManager["Client"], metaclass=ABCMeta):
    """Uniform capability interface over one remote file transfer protocol.

    A client starts disconnected. ``connect()`` moves it to connected on
    success and leaves it disconnected on failure; ``disconnect()`` always
    moves it back and is a no-op on a disconnected client. Every other
    operation requires a connected client and fails with
    ``NotConnectedError`` otherwise, without touching the transport.

    Example:
        async with FtpClient({"host": "ftp.example.com"}) as client:
            names = await client.readdir("/pub")
    """

    #: Protocol label used in error messages ("FTP", "SFTP", "WebDAV").
    protocol: ClassVar[str]

    def __init__(self) -> None:
        self.connected = False

    @abstractmethod
    def name(self) -> str:
        """
        Name of the resource represented by the client.

        Returns:
            A string representing a human-readable name.
        """

    def is_connected(self) -> bool:
        return self.connected

    @abstractmethod
    def supports_streams(self) -> bool:
        """Whether create_read_stream/create_write_stream are available."""

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise NotConnectedError(self.protocol)

    @abstractmethod
    async def connect(self) -> None:
        """
        Open the connection to the remote server.

        Raises:
            Exception: Any transport error; the client stays disconnected and
                every resource acquired during the attempt is released.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection. Does nothing if the client is not connected."""

    @abstractmethod
    def create_read_stream(self, remote: RemotePath, options: Options = None) -> ReadStream:
        """
        Create a stream reading a remote file.

        Raises:
            NotConnectedError: Immediately, if the client is not connected
        """

    @abstractmethod
    def create_write_stream(self, remote: RemotePath, options: Options = None) -> WriteStream:
        """
        Create a stream writing a remote file.

        Raises:
            NotConnectedError: Immediately, if the client is not connected
        """

    @abstractmethod
    async def get(self, remote: RemotePath, local: LocalPath) -> None:
        """
        Download a file from the remote path to the local path.

        Args:
            remote: The remote path to the file to download
            local: The local path where the file will be saved
        """

    @abstractmethod
    async def put(self, local: LocalPath, remote: RemotePath, options: Options = None) -> None:
        """
        Upload a file from the local path to the remote path.

        Args:
            local: The local path to the file to upload
            remote: The remote path where the file will be saved
            options: Protocol-specific transfer options
        """

    @abstractmethod
    async def mkdir(
        self,
        remote: RemotePath,
        mode_or_options: Union[str, int, Options] = None,
    ) -> None:
        """
        Create a directory at the specified remote path.

        Args:
            remote: The remote path where the directory should be created
            mode_or_options: A permission mode or an options mapping
        """

    @abstractmethod
    async def rmdir(self, remote: RemotePath) -> None:
        """Remove the directory at the specified remote path."""

    @abstractmethod
    async def readdir(self, remote: RemotePath) -> List[str]:
        """
        List the entry names of a remote directory.

        Args:
            remote: The remote path to list

        Returns:
            Plain file names, in the order reported by the server, without
            the directory itself or its "." and ".." entries
        """

    @abstractmethod
    async def unlink(self, remote: RemotePath) -> None:
        """Delete the file at the specified remote path."""

    async def __aenter__(self) -> Self:
        """Async context manager entry - connects the client."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        """Async context manager exit - disconnects the client."""
        await self.disconnect()

    def __repr__(self) -> str:
        state = "connected" if self.connected else "disconnected"
        return f"<{type(self).__name__} {self.name()!r} {state}>"


async def check_local_file(local: LocalPath) -> None:
    """Make sure an upload source exists and is a regular file.

    Raises:
        FileNotFoundError: If the local path does not exist
        NotAFileError: If the local path is a directory or other non-file
    """
    info = await aiofiles.os.stat(local)
    if not stat.S_ISREG(info.st_mode):
        raise NotAFileError(local)
