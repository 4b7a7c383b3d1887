"""FTP/FTPS client implementation using aioftp."""

import errno
import logging
import os
from pathlib import PurePosixPath
from typing import Any, List, Mapping, Optional, Union

import aiofiles
import aioftp

from filetransfer.clients.client import (
    Client,
    LocalPath,
    Options,
    RemotePath,
    check_local_file,
    remote_str,
)
from filetransfer.config import FtpConfig
from filetransfer.exceptions import NotConnectedError
from filetransfer.streams import ReadStream, WriteStream

logger = logging.getLogger(__name__)

# MLSD entry types for the listed directory itself and its parent
_SYNTHETIC_TYPES = ("cdir", "pdir")
_SYNTHETIC_NAMES = (".", "..")


class FtpClient(Client):
    """FTP/FTPS client using the aioftp library.

    Transfers go over a single control channel, so the client expects one
    command in flight at a time. Streaming is not supported: use ``get`` and
    ``put`` for whole-file transfers.
    """

    protocol = "FTP"
    block_size = 8192

    def __init__(self, config: Union[FtpConfig, Mapping[str, Any], None] = None) -> None:
        """
        Initialize the FTP client.

        Args:
            config: An FtpConfig, or a mapping accepted by FtpConfig.from_dict
                    (``user``/``username`` and ``pass``/``password`` are
                    both accepted)
        """
        super().__init__()
        self.config = FtpConfig.coerce(config)
        self._client: Optional[aioftp.Client] = None

    def name(self) -> str:
        return self.config.name

    def supports_streams(self) -> bool:
        return False

    async def connect(self) -> None:
        """Open the control channel and log in."""
        if self.connected:
            return

        config = self.config
        client = aioftp.Client(ssl=True) if config.tls else aioftp.Client()

        logger.debug("Connecting to FTP server %s:%d", config.host, config.port)
        try:
            await client.connect(config.host, config.port)
            await client.login(config.username, config.password)
        except Exception:
            client.close()
            raise

        self._client = client
        self.connected = True
        logger.info("Connected to FTP server %s:%d", config.host, config.port)

    async def disconnect(self) -> None:
        """Close the control channel."""
        if not self.connected:
            return

        client = self._client
        self._client = None
        self.connected = False

        assert client is not None
        try:
            await client.quit()
        except (aioftp.StatusCodeError, OSError) as e:
            logger.warning("FTP QUIT failed, closing the connection anyway: %s", e)
        finally:
            client.close()
        logger.info("Disconnected from FTP server %s", self.config.host)

    @property
    def ftp(self) -> aioftp.Client:
        """The underlying aioftp client of a connected FtpClient."""
        if not self.connected or self._client is None:
            raise NotConnectedError(self.protocol)
        return self._client

    def create_read_stream(self, remote: RemotePath, options: Options = None) -> ReadStream:
        raise NotImplementedError("Not implemented")

    def create_write_stream(self, remote: RemotePath, options: Options = None) -> WriteStream:
        raise NotImplementedError("Not implemented")

    async def get(self, remote: RemotePath, local: LocalPath) -> None:
        """Download a file into a newly created local file."""
        ftp = self.ftp
        remote_path = remote_str(remote)
        logger.debug("FTP get %s -> %s", remote_path, local)

        # The remote file is opened first so that a missing file leaves no local file behind
        async with ftp.download_stream(remote_path) as stream:
            async with aiofiles.open(local, "wb") as local_file:
                async for block in stream.iter_by_block(self.block_size):
                    await local_file.write(block)

    async def put(self, local: LocalPath, remote: RemotePath, options: Options = None) -> None:
        """Upload a local regular file. ``options`` is accepted and ignored."""
        ftp = self.ftp
        await check_local_file(local)

        remote_path = remote_str(remote)
        logger.debug("FTP put %s -> %s", local, remote_path)

        async with aiofiles.open(local, "rb") as local_file:
            async with ftp.upload_stream(remote_path) as stream:
                while True:
                    block = await local_file.read(self.block_size)
                    if not block:
                        break
                    await stream.write(block)

    async def mkdir(
        self,
        remote: RemotePath,
        mode_or_options: Union[str, int, Options] = None,
    ) -> None:
        """Create a directory and any missing parents. Modes are not supported by FTP."""
        ftp = self.ftp
        remote_path = remote_str(remote)
        logger.debug("FTP mkdir %s", remote_path)

        if await ftp.exists(remote_path):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), remote_path)
        await ftp.make_directory(remote_path)

    async def rmdir(self, remote: RemotePath) -> None:
        """Remove a directory together with its content."""
        ftp = self.ftp
        remote_path = remote_str(remote)
        logger.debug("FTP rmdir %s", remote_path)

        # stat raises the server's 550 when the path does not exist
        if not await ftp.is_dir(remote_path):
            raise NotADirectoryError(errno.ENOTDIR, os.strerror(errno.ENOTDIR), remote_path)
        await ftp.remove(remote_path)

    async def readdir(self, remote: RemotePath) -> List[str]:
        ftp = self.ftp
        remote_path = remote_str(remote)
        logger.debug("FTP readdir %s", remote_path)

        names: List[str] = []
        for entry_path, entry_info in await ftp.list(remote_path):
            if entry_info.get("type") in _SYNTHETIC_TYPES:
                continue
            name = PurePosixPath(entry_path).name
            if not name or name in _SYNTHETIC_NAMES:
                continue
            names.append(name)
        return names

    async def unlink(self, remote: RemotePath) -> None:
        ftp = self.ftp
        remote_path = remote_str(remote)
        logger.debug("FTP unlink %s", remote_path)
        await ftp.remove_file(remote_path)
