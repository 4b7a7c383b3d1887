from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from .base import BaseConnectionConfig, ValidationError, normalize_credentials, validate_port


@dataclass
class FtpConfig(BaseConnectionConfig):
    host: str = ""
    port: int = 21
    username: str = "anonymous"
    password: str = "anonymous@"
    tls: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: str = "") -> "FtpConfig":
        host = data.get("host") or data.get("url")
        if not host:
            raise ValidationError("FTP configuration requires 'host' field")

        username, password = normalize_credentials(data)

        return cls(
            name=name or data.get("name") or host,
            type="ftp",
            host=host,
            port=data.get("port", 21),
            username=username or "anonymous",
            password=password if password is not None else "anonymous@",
            tls=data.get("tls", False),
        )

    def validate(self) -> None:
        if self.type != "ftp":
            raise ValidationError(f"Expected type 'ftp', got '{self.type}'")

        if not self.host:
            raise ValidationError("FTP host cannot be empty")

        validate_port("FTP", self.port)

        if not isinstance(self.tls, bool):
            raise ValidationError("TLS setting must be a boolean")


@dataclass
class SftpConfig(BaseConnectionConfig):
    host: str = ""
    port: int = 22
    username: Optional[str] = None
    password: Optional[str] = None
    key_filename: Optional[str] = None
    known_hosts: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: str = "") -> "SftpConfig":
        host = data.get("host") or data.get("url")
        if not host:
            raise ValidationError("SFTP configuration requires 'host' field")

        username, password = normalize_credentials(data)

        return cls(
            name=name or data.get("name") or f"SFTP:{host}",
            type="sftp",
            host=host,
            port=data.get("port", 22),
            username=username,
            password=password,
            key_filename=data.get("key_filename") or data.get("private_key"),
            known_hosts=data.get("known_hosts"),
        )

    def validate(self) -> None:
        if self.type != "sftp":
            raise ValidationError(f"Expected type 'sftp', got '{self.type}'")

        if not self.host:
            raise ValidationError("SFTP host cannot be empty")

        validate_port("SFTP", self.port)


@dataclass
class WebDavConfig(BaseConnectionConfig):
    host: str = ""
    port: int = 80
    secure: bool = False
    base_path: str = "/"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: str = "") -> "WebDavConfig":
        credentials = data.get("credentials")
        if isinstance(credentials, Mapping):
            username, password = normalize_credentials(credentials)
        else:
            username, password = normalize_credentials(data)

        base_url = data.get("base_url") or data.get("baseURL")
        if base_url:
            # URL format: http[s]://[user:pass@]host[:port]/base/path
            parsed = urlsplit(base_url)
            if parsed.scheme not in ("http", "https"):
                raise ValidationError(
                    f"WebDAV base URL must use http or https, got '{parsed.scheme}'"
                )
            secure = parsed.scheme == "https"
            host = parsed.hostname or ""
            port = parsed.port or (443 if secure else 80)
            base_path = parsed.path or "/"
            username = username or parsed.username
            password = password or parsed.password
        else:
            host = data.get("host", "")
            secure = data.get("secure", False)
            port = data.get("port", 443 if secure else 80)
            base_path = data.get("base_path") or data.get("path") or data.get("prefix") or "/"

        if not host:
            raise ValidationError("WebDAV configuration requires 'host' or 'base_url' field")

        if not base_path.startswith("/"):
            base_path = "/" + base_path

        return cls(
            name=name or data.get("name") or host,
            type="webdav",
            host=host,
            port=port,
            secure=secure,
            base_path=base_path,
            username=username,
            password=password,
            timeout=data.get("timeout", 30.0),
        )

    def validate(self) -> None:
        if self.type != "webdav":
            raise ValidationError(f"Expected type 'webdav', got '{self.type}'")

        if not self.host:
            raise ValidationError("WebDAV host cannot be empty")

        validate_port("WebDAV", self.port)

        if not isinstance(self.secure, bool):
            raise ValidationError("Secure setting must be a boolean")

        if not self.base_path.startswith("/"):
            raise ValidationError("WebDAV base path must be absolute")

        if not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
            raise ValidationError("WebDAV timeout must be a positive number")

    @property
    def scheme(self) -> str:
        return "https" if self.secure else "http"
