"""Data models for team-config."""

from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

if TYPE_CHECKING:
    from .vault import SecretVault


def empty_config() -> dict[str, Any]:
    """Return a config document with the required sections initialized as empty."""
    return {"profiles": {}, "defaults": {}}


class Layer(Enum):
    """Configuration layers, listed from highest to lowest precedence."""

    PROJECT_USER = "project-user"
    PROJECT = "project"
    GLOBAL_USER = "global-user"
    GLOBAL = "global"

    @property
    def user(self) -> bool:
        return self in (Layer.PROJECT_USER, Layer.GLOBAL_USER)

    @property
    def global_(self) -> bool:
        return self in (Layer.GLOBAL_USER, Layer.GLOBAL)


@dataclass
class ConfigLayer:
    """One configuration file and its parsed content.

    Attributes:
        path: Absolute path of the config file
        user: True for the user-specific (``*.config.user.json``) layers
        global_: True for the layers stored in the home directory
        exists: True once the file has been read from or written to disk
        properties: Parsed JSONC document (comments are retained)
    """

    path: Path
    user: bool
    global_: bool
    exists: bool = False
    properties: dict[str, Any] = field(default_factory=empty_config)


@dataclass(frozen=True)
class ConfigOpts:
    """Options controlling where and how a Config is loaded.

    Attributes:
        home_dir: Directory holding the global layers (default: ``~/.<app>``)
        project_dir: Directory where the project layer search starts (default: cwd)
        vault: Secret store for secure properties; secure values stay absent without one
        no_load: Build layer descriptors without reading any file or the vault
    """

    home_dir: Path | None = None
    project_dir: Path | None = None
    vault: "SecretVault | None" = None
    no_load: bool = False


@dataclass(frozen=True)
class SchemaInfo:
    """Location of the schema referenced by the active layer's ``$schema``."""

    original: str | None
    resolved: str | None
    local: bool


@dataclass(frozen=True)
class SecureInfo:
    """Path of the ``secure`` list that owns a property, and the property's leaf name."""

    path: str
    prop: str


@dataclass
class ProfileProperty:
    """Schema description of a single profile property."""

    type: str | list[str]
    secure: bool = False
    description: str | None = None
    default: Any = None
    allowed_values: list[Any] | None = None
    include_in_template: bool = True


@dataclass
class ProfileTypeConfiguration:
    """Schema of the ``properties`` object for one profile type."""

    type: str
    properties: dict[str, ProfileProperty] = field(default_factory=dict)
    title: str | None = None
    description: str | None = None
    required: list[str] = field(default_factory=list)

    @property
    def secure_properties(self) -> list[str]:
        return [name for name, prop in self.properties.items() if prop.secure]


@dataclass
class TypedProfile:
    """A profile's properties tagged with its type.

    ``known`` is False when the profile has no type, or a type the schema does not
    describe; ``properties`` is then an unchecked mapping.
    """

    type: str | None
    properties: dict[str, Any]
    known: bool = False


@dataclass(frozen=True)
class PromptParams:
    """Login parameters advertised by an auth handler."""

    default_token_type: str
    service_description: str | None = None
