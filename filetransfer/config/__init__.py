"""Connection configuration for filetransfer."""

from .base import BaseConnectionConfig, ConfigError, ValidationError, normalize_credentials
from .remotes import FtpConfig, SftpConfig, WebDavConfig

__all__ = [
    "BaseConnectionConfig",
    "ConfigError",
    "ValidationError",
    "normalize_credentials",
    "FtpConfig",
    "SftpConfig",
    "WebDavConfig",
]
