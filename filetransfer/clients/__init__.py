"""Protocol clients for filetransfer."""

from filetransfer.clients.client import Client
from filetransfer.clients.ftpclient import FtpClient
from filetransfer.clients.sftpclient import SftpClient
from filetransfer.clients.sync_wrapper import SyncClient, SyncReadStream, SyncWriteStream
from filetransfer.clients.webdavclient import WebDavClient

__all__ = [
    "Client",
    "FtpClient",
    "SftpClient",
    "WebDavClient",
    "SyncClient",
    "SyncReadStream",
    "SyncWriteStream",
]
