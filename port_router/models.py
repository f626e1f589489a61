import tomllib
from typing import List, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class ConfigError(Exception):
    """Raised when the configuration document cannot be loaded."""


class Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    description: str = ""

    @property
    def encoded_name(self) -> str:
        return quote(self.name, safe="")

    @property
    def authority(self) -> str:
        return f"localhost:{self.port}"

    def proxy_prefix(self, segment: str) -> str:
        """Path prefix under which this target is exposed, e.g. ``/proxy/alpha``."""
        return f"/{segment}/{self.encoded_name}"


class RouterConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    router_port: int = Field(ge=1, le=65535)
    targets: List[Target] = Field(default_factory=list)

    @field_validator("targets")
    @classmethod
    def _unique_names(cls, targets: List[Target]) -> List[Target]:
        seen = set()
        for target in targets:
            if target.name in seen:
                raise ValueError(f"duplicate target name: {target.name!r}")
            seen.add(target.name)
        return targets

    def find_target(self, name: str) -> Optional[Target]:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def default_target(self) -> Optional[Target]:
        return self.targets[0] if self.targets else None


def load_config(path: str) -> RouterConfig:
    """
    Load and validate the router configuration from a TOML document.

    Expected layout::

        router_port = 8080

        [[targets]]
        name = "frontend"
        port = 5173
        description = "Vite dev server"

    Raises:
        ConfigError: if the file is missing, is not valid TOML, or does not
            describe a valid configuration.
    """
    try:
        with open(path, "rb") as fh:
            raw = tomllib.load(fh)
    except FileNotFoundError as e:
        raise ConfigError(f"Configuration file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Could not read configuration file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Could not parse configuration file {path}: {e}") from e

    try:
        return RouterConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e
