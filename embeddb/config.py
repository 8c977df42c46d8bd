import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import embeddb.settings as default_settings
from embeddb.exceptions import ConfigurationError

log = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _require_path(name: str, value: Optional[PathLike]) -> Path:
    # Path("") collapses to "." and would silently point at the working directory.
    if value is None or (isinstance(value, Path) and not value.parts) or not str(value).strip():
        raise ConfigurationError(f"'{name}' must be a non-empty path.")
    return Path(value)


@dataclass(frozen=True)
class Configuration:
    """
    Immutable description of one embedded database instance.

    Every component reads the same snapshot; nothing mutates it after construction.
    Use ConfigurationBuilder to set the knobs one at a time.
    """
    base_dir: Path
    data_dir: Path
    port: int
    version: str
    distributions_dir: Path = default_settings.DISTRIBUTIONS_DIR
    download_url_template: str = default_settings.DOWNLOAD_URL_TEMPLATE
    ready_timeout: float = default_settings.READY_TIMEOUT
    shutdown_grace_period: float = default_settings.SHUTDOWN_GRACE_PERIOD

    def __post_init__(self) -> None:
        # frozen dataclass: coerce through object.__setattr__
        object.__setattr__(self, "base_dir", _require_path("base_dir", self.base_dir))
        object.__setattr__(self, "data_dir", _require_path("data_dir", self.data_dir))
        object.__setattr__(self, "distributions_dir", _require_path("distributions_dir", self.distributions_dir))

        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ConfigurationError(f"Port must be an integer, got {self.port!r}.")
        if not 1 <= self.port <= 65535:
            raise ConfigurationError(f"Port {self.port} is not a valid TCP port (1-65535).")
        if not self.version or not str(self.version).strip():
            raise ConfigurationError("'version' must be a non-empty identifier.")
        if self.ready_timeout <= 0:
            raise ConfigurationError(f"'ready_timeout' must be positive, got {self.ready_timeout}.")
        if self.shutdown_grace_period < 0:
            raise ConfigurationError(f"'shutdown_grace_period' must not be negative, got {self.shutdown_grace_period}.")

    @classmethod
    def from_settings(cls, **overrides: Any) -> "Configuration":
        """
        Builds a Configuration from the settings module, applying keyword overrides.

        :param overrides: Field values that take precedence over the defaults.
        :return Configuration: The resulting immutable configuration.
        """
        values: Dict[str, Any] = {
            "base_dir": default_settings.BASE_DIR,
            "data_dir": default_settings.DATA_DIR,
            "port": default_settings.PORT,
            "version": default_settings.VERSION,
            "distributions_dir": default_settings.DISTRIBUTIONS_DIR,
            "download_url_template": default_settings.DOWNLOAD_URL_TEMPLATE,
            "ready_timeout": default_settings.READY_TIMEOUT,
            "shutdown_grace_period": default_settings.SHUTDOWN_GRACE_PERIOD,
        }
        unknown = set(overrides) - set(values)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        values.update(overrides)
        return cls(**values)


class ConfigurationBuilder:
    """Collects configuration knobs independently, then freezes them with build()."""

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def set_base_dir(self, base_dir: PathLike) -> "ConfigurationBuilder":
        self._values["base_dir"] = base_dir
        return self

    def set_data_dir(self, data_dir: PathLike) -> "ConfigurationBuilder":
        self._values["data_dir"] = data_dir
        return self

    def set_port(self, port: int) -> "ConfigurationBuilder":
        self._values["port"] = port
        return self

    def set_version(self, version: str) -> "ConfigurationBuilder":
        self._values["version"] = version
        return self

    def set_distributions_dir(self, distributions_dir: PathLike) -> "ConfigurationBuilder":
        self._values["distributions_dir"] = distributions_dir
        return self

    def set_download_url_template(self, template: str) -> "ConfigurationBuilder":
        self._values["download_url_template"] = template
        return self

    def set_ready_timeout(self, seconds: float) -> "ConfigurationBuilder":
        self._values["ready_timeout"] = seconds
        return self

    def set_shutdown_grace_period(self, seconds: float) -> "ConfigurationBuilder":
        self._values["shutdown_grace_period"] = seconds
        return self

    def build(self) -> Configuration:
        """
        Returns the immutable Configuration; unset knobs fall back to settings.py.

        :raises ConfigurationError: If any value is invalid.
        """
        config = Configuration.from_settings(**self._values)
        log.debug(f"Built configuration: {config}")
        return config
