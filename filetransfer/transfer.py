"""Protocol dispatch: turn a protocol name and a configuration into a connected client.

Example usage:

    # Awaitable
    client = await connect("sftp", {"host": "example.com", "user": "me", "pass": "secret"})
    try:
        names = await client.readdir("/")
    finally:
        await client.disconnect()

    # Protocol carried by the configuration, disconnect guaranteed on exit
    async with scoped_connect({"protocol": "webdav", "base_url": "https://dav.example.com/files"}) as client:
        await client.put("local.txt", "remote.txt")

    # Completion callback
    def done(error, client):
        ...

    connect("ftp", {"host": "ftp.example.com"}, callback=done)

    # Blocking code
    with scoped_connect_sync("ftp", {"host": "ftp.example.com"}) as client:
        client.get("/pub/README", "README")
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    Iterator,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
)

from filetransfer.async_runner import AsyncRunner
from filetransfer.clients.client import Client
from filetransfer.clients.ftpclient import FtpClient
from filetransfer.clients.sftpclient import SftpClient
from filetransfer.clients.sync_wrapper import SyncClient
from filetransfer.clients.webdavclient import WebDavClient
from filetransfer.config import BaseConnectionConfig
from filetransfer.exceptions import UnknownProtocolError

logger = logging.getLogger(__name__)

ConfigLike = Union[BaseConnectionConfig, Mapping[str, Any]]
ConnectCallback = Callable[[Optional[BaseException], Optional[Client]], Any]


class Protocol(Enum):
    """The closed set of supported protocols."""

    FTP = "ftp"
    SFTP = "sftp"
    WEBDAV = "webdav"

    @classmethod
    def parse(cls, name: Union[str, "Protocol", None]) -> "Protocol":
        """
        Match a protocol name case-insensitively.

        Raises:
            UnknownProtocolError: If the name is not a supported protocol
        """
        if isinstance(name, cls):
            return name
        if isinstance(name, str):
            try:
                return cls(name.lower())
            except ValueError:
                pass
        raise UnknownProtocolError(name)


CLIENTS: Dict[Protocol, Type[Client]] = {
    Protocol.FTP: FtpClient,
    Protocol.SFTP: SftpClient,
    Protocol.WEBDAV: WebDavClient,
}


def _split_arguments(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike],
) -> Tuple[Protocol, Optional[ConfigLike]]:
    """Resolve the protocol, which may be given explicitly or inside the configuration."""
    if isinstance(protocol_or_config, BaseConnectionConfig):
        return Protocol.parse(protocol_or_config.type), protocol_or_config

    if isinstance(protocol_or_config, Mapping):
        options = dict(protocol_or_config)
        protocol = options.pop("protocol", None)
        return Protocol.parse(protocol), options

    return Protocol.parse(protocol_or_config), config


def create_client(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike] = None,
) -> Client:
    """Instantiate the disconnected client for a protocol.

    Args:
        protocol_or_config: A protocol name, or a configuration carrying its
                            protocol (a config instance's ``type``, or a
                            mapping's ``protocol`` key, which is removed)
        config: The configuration when the protocol is given explicitly

    Raises:
        UnknownProtocolError: If the protocol is not supported
        ValidationError: If the configuration is invalid
    """
    protocol, options = _split_arguments(protocol_or_config, config)
    client_class = CLIENTS[protocol]
    return client_class(options)  # type: ignore[call-arg]


async def _connect(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike],
) -> Client:
    client = create_client(protocol_or_config, config)
    logger.debug("Connecting %s client %s", client.protocol, client.name())
    await client.connect()
    return client


def _callback_adapter(callback: ConnectCallback) -> Callable[["asyncio.Task[Client]"], None]:
    def on_done(task: "asyncio.Task[Client]") -> None:
        if task.cancelled():
            callback(asyncio.CancelledError(), None)
        elif task.exception() is not None:
            callback(task.exception(), None)
        else:
            callback(None, task.result())

    return on_done


def connect(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike] = None,
    callback: Optional[ConnectCallback] = None,
) -> "asyncio.Task[Client]":
    """Create a client and connect it.

    Must be called while an event loop is running. The returned task can be
    awaited for the connected client; when ``callback`` is given it is also
    called as ``callback(error, client)`` once the attempt settles.

    Args:
        protocol_or_config: ``"ftp"``, ``"sftp"`` or ``"webdav"`` (any case),
                            or a configuration carrying its protocol
        config: The connection configuration
        callback: Optional completion callback

    Returns:
        A task resolving to the connected client

    Raises (through the task):
        UnknownProtocolError: If the protocol is not supported; no
                              connection is attempted
        Exception: Any transport error raised while connecting
    """
    loop = asyncio.get_running_loop()
    task = loop.create_task(_connect(protocol_or_config, config))
    if callback is not None:
        task.add_done_callback(_callback_adapter(callback))
    return task


@asynccontextmanager
async def scoped_connect(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike] = None,
) -> AsyncIterator[Client]:
    """Connect for the duration of an ``async with`` block.

    The client is disconnected exactly once when the block exits, whether it
    completes, returns early or raises. Errors raised inside the block are
    never suppressed; if disconnecting then fails too, that failure is logged
    and the block's error is the one raised.
    """
    client = await connect(protocol_or_config, config)
    try:
        yield client
    except BaseException:
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning("Disconnect of %s client failed after an error: %s", client.protocol, e)
        raise
    await client.disconnect()


disposer = scoped_connect


def connect_sync(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike] = None,
    runner: Optional[AsyncRunner] = None,
) -> SyncClient:
    """Create a client and connect it from blocking code.

    Args:
        runner: Optional AsyncRunner to share between clients. By default
                the returned SyncClient owns a runner of its own.

    Returns:
        A connected SyncClient
    """
    client = SyncClient(create_client(protocol_or_config, config), runner)
    client.connect()
    return client


@contextmanager
def scoped_connect_sync(
    protocol_or_config: Union[str, Protocol, ConfigLike],
    config: Optional[ConfigLike] = None,
    runner: Optional[AsyncRunner] = None,
) -> Iterator[SyncClient]:
    """Blocking counterpart of scoped_connect."""
    client = connect_sync(protocol_or_config, config, runner)
    try:
        yield client
    except BaseException:
        try:
            client.disconnect()
        except Exception as e:
            logger.warning(
                "Disconnect of %s client failed after an error: %s", client.client.protocol, e
            )
        raise
    client.disconnect()
