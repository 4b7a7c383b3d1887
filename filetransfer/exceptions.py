"""Centralized exception definitions for filetransfer."""

from http import HTTPStatus
from typing import Iterable, Optional


class FileTransferError(Exception):
    """Base exception for all filetransfer errors."""


# Configuration Exceptions


class ConfigError(FileTransferError):
    """Base exception for configuration errors."""


class ValidationError(ConfigError):
    """Exception raised when configuration validation fails."""


# Client Exceptions


class ClientError(FileTransferError):
    """Base exception for client operation errors."""


class NotConnectedError(ClientError):
    """An operation was attempted on a client that is not connected."""

    def __init__(self, protocol: str) -> None:
        super().__init__(f"{protocol} client not connected")
        self.protocol = protocol


class UnknownProtocolError(ClientError):
    """The requested protocol name is not registered."""

    def __init__(self, protocol: object) -> None:
        super().__init__(f"Unknown file transfer protocol: {protocol}")
        self.protocol = protocol


class NotAFileError(ClientError):
    """The local source of an upload is not a regular file."""

    def __init__(self, path: object) -> None:
        super().__init__(f"Not a file: {path}")
        self.path = path


# WebDAV Exceptions


class WebDavError(ClientError):
    """An HTTP status >= 400 returned by a WebDAV server."""

    def __init__(self, status_code: int, status_message: Optional[str] = None) -> None:
        super().__init__("WebDAV request error")
        self.status_code = status_code
        self.status_message = status_message or reason_phrase(status_code)


class UnsupportedMethodsError(ClientError):
    """The WebDAV server does not allow every method the client needs."""

    def __init__(self, methods: Iterable[str]) -> None:
        self.methods = list(methods)
        super().__init__(f"Unsupported HTTP methods: {', '.join(self.methods)}")


class EmptyResponseError(ClientError):
    """A PROPFIND request returned no body."""

    def __init__(self) -> None:
        super().__init__("Empty response on PROPFIND")


def reason_phrase(status_code: int) -> str:
    """Standard reason phrase for an HTTP status code, or an empty string."""
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return ""
