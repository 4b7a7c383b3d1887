"""filetransfer - one client interface over FTP, SFTP and WebDAV.

Every protocol client exposes the same operations (connect, disconnect,
get, put, mkdir, rmdir, readdir, unlink, and streams where the protocol
supports them) with the same error shapes.

Quick Start:
    import filetransfer

    # Async, disconnect guaranteed
    async with filetransfer.scoped_connect("sftp", {"host": "example.com", "user": "me"}) as client:
        await client.put("local.txt", "/remote.txt")

    # Protocol inside the configuration
    client = await filetransfer.connect({"protocol": "ftp", "host": "ftp.example.com"})

    # Blocking code
    with filetransfer.scoped_connect_sync("webdav", {"base_url": "https://dav.example.com/files"}) as client:
        print(client.readdir("/"))
"""

import logging

from filetransfer.clients import Client, FtpClient, SftpClient, SyncClient, WebDavClient
from filetransfer.config import FtpConfig, SftpConfig, WebDavConfig
from filetransfer.exceptions import (
    ClientError,
    ConfigError,
    EmptyResponseError,
    FileTransferError,
    NotAFileError,
    NotConnectedError,
    UnknownProtocolError,
    UnsupportedMethodsError,
    ValidationError,
    WebDavError,
)
from filetransfer.streams import ReadStream, WriteStream
from filetransfer.transfer import (
    CLIENTS,
    Protocol,
    connect,
    connect_sync,
    create_client,
    disposer,
    scoped_connect,
    scoped_connect_sync,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Dispatch
    "CLIENTS",
    "Protocol",
    "connect",
    "connect_sync",
    "create_client",
    "disposer",
    "scoped_connect",
    "scoped_connect_sync",
    # Clients
    "Client",
    "FtpClient",
    "SftpClient",
    "WebDavClient",
    "SyncClient",
    "ReadStream",
    "WriteStream",
    # Configuration
    "FtpConfig",
    "SftpConfig",
    "WebDavConfig",
    # Exceptions
    "FileTransferError",
    "ConfigError",
    "ValidationError",
    "ClientError",
    "NotConnectedError",
    "UnknownProtocolError",
    "NotAFileError",
    "WebDavError",
    "UnsupportedMethodsError",
    "EmptyResponseError",
]

__version__ = "0.1.0"
