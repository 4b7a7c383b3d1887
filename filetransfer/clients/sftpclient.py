"""SFTP client implementation using asyncssh."""

import logging
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

import asyncssh

from filetransfer.clients.client import (
    Client,
    LocalPath,
    Options,
    RemotePath,
    check_local_file,
    remote_str,
)
from filetransfer.config import SftpConfig
from filetransfer.exceptions import NotConnectedError
from filetransfer.streams import ReadStream, WriteStream

logger = logging.getLogger(__name__)

# Reserved for the SFTP subsystem itself, never forwarded from callers
_RESERVED_STREAM_OPTIONS = ("handle",)


def _stream_options(options: Options) -> Dict[str, Any]:
    if not options:
        return {}
    return {key: value for key, value in options.items() if key not in _RESERVED_STREAM_OPTIONS}


class SftpReadStream(ReadStream):
    """Read stream over an SFTP file handle."""

    def __init__(self, sftp: Any, remote: str, options: Dict[str, Any]) -> None:
        self._sftp = sftp
        self._remote = remote
        self._options = options
        self._file: Any = None

    async def open(self) -> None:
        if self._file is None:
            self._file = await self._sftp.open(self._remote, "rb", **self._options)

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        await self.open()
        try:
            while True:
                chunk = await self._file.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._file is not None:
            remote_file, self._file = self._file, None
            await remote_file.close()


class SftpWriteStream(WriteStream):
    """Write stream over an SFTP file handle."""

    def __init__(self, sftp: Any, remote: str, options: Dict[str, Any]) -> None:
        self._sftp = sftp
        self._remote = remote
        self._options = options
        self._file: Any = None

    async def write(self, data: bytes) -> None:
        if self._file is None:
            self._file = await self._sftp.open(self._remote, "wb", **self._options)
        await self._file.write(data)

    async def aclose(self) -> None:
        if self._file is None:
            # Nothing written yet: still create the (empty) remote file
            self._file = await self._sftp.open(self._remote, "wb", **self._options)
        remote_file, self._file = self._file, None
        await remote_file.close()


class SftpClient(Client):
    """SFTP client using the asyncssh library.

    Connecting is a two-step handshake: the SSH transport first, then the
    SFTP subsystem on top of it. If the subsystem cannot be started the SSH
    transport is closed before the error is raised.
    """

    protocol = "SFTP"

    def __init__(self, config: Union[SftpConfig, Mapping[str, Any], None] = None) -> None:
        """
        Initialize the SFTP client.

        Args:
            config: An SftpConfig, or a mapping accepted by
                    SftpConfig.from_dict (``user``/``username`` and
                    ``pass``/``password`` are both accepted)
        """
        super().__init__()
        self.config = SftpConfig.coerce(config)
        self._conn: Any = None  # asyncssh.SSHClientConnection
        self._sftp: Any = None  # asyncssh.SFTPClient

    def name(self) -> str:
        return self.config.name

    def supports_streams(self) -> bool:
        return True

    def _connect_kwargs(self) -> Dict[str, Any]:
        config = self.config
        connect_kwargs: Dict[str, Any] = {
            "host": config.host,
            "port": config.port,
            "known_hosts": config.known_hosts,
        }

        if config.username:
            connect_kwargs["username"] = config.username

        if config.password:
            connect_kwargs["password"] = config.password

        if config.key_filename:
            connect_kwargs["client_keys"] = [config.key_filename]

        return connect_kwargs

    async def connect(self) -> None:
        """Open the SSH transport, then the SFTP subsystem."""
        if self.connected:
            return

        logger.debug("Connecting to SFTP server %s:%d", self.config.host, self.config.port)
        conn = await asyncssh.connect(**self._connect_kwargs())

        try:
            sftp = await conn.start_sftp_client()
        except Exception as e:
            logger.info("SFTP subsystem failed on %s, closing SSH transport: %s", self.config.host, e)
            conn.close()
            await conn.wait_closed()
            raise

        self._conn = conn
        self._sftp = sftp
        self.connected = True
        logger.info("Connected to SFTP server %s:%d", self.config.host, self.config.port)

    async def disconnect(self) -> None:
        """Close the SFTP subsystem and the SSH transport."""
        if not self.connected:
            return

        sftp, self._sftp = self._sftp, None
        conn, self._conn = self._conn, None
        self.connected = False

        sftp.exit()
        conn.close()
        await conn.wait_closed()
        logger.info("Disconnected from SFTP server %s", self.config.host)

    @property
    def sftp(self) -> Any:
        """The asyncssh SFTP session of a connected SftpClient."""
        if not self.connected or self._sftp is None:
            raise NotConnectedError(self.protocol)
        return self._sftp

    def create_read_stream(self, remote: RemotePath, options: Options = None) -> ReadStream:
        return SftpReadStream(self.sftp, remote_str(remote), _stream_options(options))

    def create_write_stream(self, remote: RemotePath, options: Options = None) -> WriteStream:
        return SftpWriteStream(self.sftp, remote_str(remote), _stream_options(options))

    async def get(self, remote: RemotePath, local: LocalPath) -> None:
        """Download a file using parallel block requests."""
        sftp = self.sftp
        logger.debug("SFTP get %s -> %s", remote, local)
        await sftp.get(remote_str(remote), local)

    async def put(self, local: LocalPath, remote: RemotePath, options: Options = None) -> None:
        """
        Upload a file using parallel block requests.

        Args:
            options: Keyword arguments forwarded to asyncssh's put
                     (``preserve``, ``block_size``, ``max_requests``, ...)
        """
        sftp = self.sftp
        await check_local_file(local)
        logger.debug("SFTP put %s -> %s", local, remote)
        await sftp.put(local, remote_str(remote), **dict(options or {}))

    async def mkdir(
        self,
        remote: RemotePath,
        mode_or_options: Union[str, int, Options] = None,
    ) -> None:
        """
        Create a directory.

        Args:
            mode_or_options: An octal permission string such as ``"700"``,
                             an integer mode, or a mapping with a ``mode`` key
        """
        sftp = self.sftp

        if isinstance(mode_or_options, (str, int)):
            options: Dict[str, Any] = {"mode": mode_or_options}
        else:
            options = dict(mode_or_options or {})

        attrs = asyncssh.SFTPAttrs()
        mode = options.get("mode")
        if mode is not None:
            attrs.permissions = int(mode, 8) if isinstance(mode, str) else mode

        logger.debug("SFTP mkdir %s (mode=%s)", remote, mode)
        await sftp.mkdir(remote_str(remote), attrs)

    async def rmdir(self, remote: RemotePath) -> None:
        sftp = self.sftp
        logger.debug("SFTP rmdir %s", remote)
        await sftp.rmdir(remote_str(remote))

    async def readdir(self, remote: RemotePath) -> List[str]:
        sftp = self.sftp
        logger.debug("SFTP readdir %s", remote)
        entries = await sftp.readdir(remote_str(remote))
        return [entry.filename for entry in entries if entry.filename not in (".", "..")]

    async def unlink(self, remote: RemotePath) -> None:
        sftp = self.sftp
        logger.debug("SFTP unlink %s", remote)
        await sftp.remove(remote_str(remote))
