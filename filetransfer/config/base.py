from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, TypeVar, Union

from filetransfer.exceptions import ConfigError, ValidationError

__all__ = ["ConfigError", "ValidationError", "BaseConnectionConfig", "normalize_credentials"]

C = TypeVar("C", bound="BaseConnectionConfig")

USERNAME_KEYS = ("username", "user")
PASSWORD_KEYS = ("password", "pass")


def _first(data: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[Any]:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def normalize_credentials(data: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Collapse the accepted credential spellings into one (username, password) pair.

    ``username`` wins over ``user`` and ``password`` over ``pass`` when both
    spellings are present.
    """
    return _first(data, USERNAME_KEYS), _first(data, PASSWORD_KEYS)


def validate_port(protocol: str, port: Any) -> None:
    if isinstance(port, bool) or not isinstance(port, int) or port < 1 or port > 65535:
        raise ValidationError(f"{protocol} port must be an integer between 1 and 65535")


@dataclass
class BaseConnectionConfig(ABC):
    name: str
    type: str

    @classmethod
    @abstractmethod
    def from_dict(cls: type[C], data: Mapping[str, Any], name: str = "") -> C:
        """Create a connection configuration from a dictionary.

        Args:
            data: Dictionary containing configuration data
            name: Optional human-readable name of the connection

        Returns:
            Instance of the connection configuration class

        Raises:
            ValidationError: If configuration data is invalid
        """

    @abstractmethod
    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValidationError: If configuration is invalid
        """

    @classmethod
    def coerce(cls: type[C], config: Union[C, Mapping[str, Any], None]) -> C:
        """Accept either a ready configuration or a plain mapping and validate it."""
        if isinstance(config, cls):
            result = config
        elif isinstance(config, Mapping):
            result = cls.from_dict(config)
        elif config is None:
            result = cls.from_dict({})
        else:
            raise ConfigError(
                f"Expected {cls.__name__} or a mapping, got {type(config).__name__}"
            )

        result.validate()
        return result
