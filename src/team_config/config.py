"""Layered team configuration."""

import copy
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from urllib.request import url2pathname

from . import jsonc
from .constants import END_OF_SCHEMA
from .constants import END_OF_TEAM_CONFIG
from .constants import END_OF_USER_CONFIG
from .constants import SECURE_VALUE
from .exceptions import ConfigError
from .exceptions import ConfigFileError
from .exceptions import ProfileNotFoundError
from .layers import ConfigLayers
from .layers import ensure_sections
from .layers import schema_first
from .models import ConfigLayer
from .models import ConfigOpts
from .models import Layer
from .models import SchemaInfo
from .profiles import ConfigProfiles
from .secure import ConfigSecure
from .utils import get_path
from .utils import search as search_file

logger = logging.getLogger(__name__)

URL_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


@dataclass
class ConfigApi:
    """The operation groups of a Config."""

    layers: ConfigLayers
    profiles: ConfigProfiles
    secure: ConfigSecure


class Config:
    """Configuration assembled from four layered JSONC files.

    Layers, from highest to lowest precedence:
    1. Project user (``<app>.config.user.json`` found up from the project directory)
    2. Project (``<app>.config.json`` found up from the project directory)
    3. Global user (``<home>/<app>.config.user.json``)
    4. Global (``<home>/<app>.config.json``)

    Edits apply to the active layer, chosen with ``api.layers.activate``. Secure
    property values are kept in a vault and never written to the files.

    Use ``await Config.load(app)`` to create an instance.

    Args:
        app: Application name, used as the config file name prefix
        opts: Load options
    """

    def __init__(self, app: str, opts: ConfigOpts | None = None):
        self.app = app
        self.opts = opts or ConfigOpts()
        self.vault = self.opts.vault
        self.home_dir = Path(self.opts.home_dir or Path.home() / f".{app}").resolve()
        self.project_dir = Path(self.opts.project_dir or Path.cwd()).resolve()

        self.config_layers: list[ConfigLayer] = []
        self.secure_store: dict[str, dict[str, Any]] = {}
        self.active_user = False
        self.active_global = False

        self.api = ConfigApi(layers=ConfigLayers(self), profiles=ConfigProfiles(self), secure=ConfigSecure(self))

    # ===== Loading =====

    @classmethod
    async def load(cls, app: str, opts: ConfigOpts | None = None) -> "Config":
        """Create a Config and read its layers and secure values.

        Args:
            app: Application name
            opts: Load options

        Returns:
            Loaded Config

        Raises:
            ConfigFileError: If a layer file is not valid JSONC
        """
        config = cls(app, opts)
        await config.reload()
        return config

    async def reload(self, opts: ConfigOpts | None = None) -> None:
        """Rebuild the layers from disk, discarding unsaved edits.

        Args:
            opts: New load options (default: the options the Config was loaded with)
        """
        if opts is not None:
            self.opts = opts
            self.vault = opts.vault or self.vault
            if opts.home_dir is not None:
                self.home_dir = Path(opts.home_dir).resolve()
            if opts.project_dir is not None:
                self.project_dir = Path(opts.project_dir).resolve()

        self.config_layers = [
            ConfigLayer(path=self._layer_path(kind), user=kind.user, global_=kind.global_) for kind in Layer
        ]
        self.secure_store = {}
        self.active_user = False
        self.active_global = False

        active_found = False
        for layer in self.config_layers:
            if not self.opts.no_load:
                self.api.layers.read(layer)
            if layer.exists and not active_found:
                self.active_user = layer.user
                self.active_global = layer.global_
                active_found = True

        if not self.opts.no_load:
            await self.api.secure.load()

        existing = [str(layer.path) for layer in self.config_layers if layer.exists]
        logger.debug(f"Loaded {self.app} config from {len(existing)} layer(s): {existing}")

    def _layer_path(self, kind: Layer) -> Path:
        name = self.user_config_name if kind.user else self.config_name
        if kind.global_:
            return self.home_dir / name
        found = search_file(name, self.project_dir, ignore_dirs=[self.home_dir])
        return found or self.project_dir / name

    async def save(self, all_layers: bool = False, prune: bool = False) -> list[str]:
        """Save the active layer (or all layers) and its secure values.

        Secure values are saved to the vault before any file is written.

        Args:
            all_layers: Save every layer that exists or has been edited
            prune: Drop vault entries of config files that no longer exist

        Returns:
            Paths of the config files whose secure entries were pruned

        Raises:
            SecureSaveError: If secure values exist but no working vault is available
            ConfigFileError: If a file cannot be written
        """
        pruned = await self.api.secure.save(all_layers=all_layers, prune=prune)

        for layer in self.config_layers:
            if all_layers:
                if layer.exists or layer is self.layer_active():
                    self.api.layers.write(layer)
            elif layer is self.layer_active():
                self.api.layers.write(layer)
        return pruned

    @staticmethod
    def search(file_name: str, start_dir: Path | str, ignore_dirs: Iterable[Path | str] = ()) -> Path | None:
        """Search up the directory tree for a file."""
        return search_file(file_name, Path(start_dir), [Path(d) for d in ignore_dirs])

    # ===== Names and Paths =====

    @property
    def config_name(self) -> str:
        return f"{self.app}{END_OF_TEAM_CONFIG}"

    @property
    def user_config_name(self) -> str:
        return f"{self.app}{END_OF_USER_CONFIG}"

    @property
    def schema_name(self) -> str:
        return f"{self.app}{END_OF_SCHEMA}"

    @property
    def paths(self) -> list[Path]:
        return [layer.path for layer in self.config_layers]

    @property
    def exists(self) -> bool:
        """True if at least one layer file exists."""
        return any(layer.exists for layer in self.config_layers)

    @property
    def layers(self) -> list[ConfigLayer]:
        """Deep copies of all layers, highest precedence first."""
        return copy.deepcopy(self.config_layers)

    # ===== Merged View =====

    @property
    def properties(self) -> dict[str, Any]:
        """The merged configuration with secure values included."""
        return self.layer_merge()

    @property
    def masked_properties(self) -> dict[str, Any]:
        """The merged configuration with secure values replaced by a placeholder."""
        return self.layer_merge(mask_secure=True)

    def layer_merge(self, mask_secure: bool = False, exclude_global: bool = False, clone: bool = True) -> dict[str, Any]:
        """Merge the layers into one document.

        Layers are visited from highest to lowest precedence:
        - A profile name defined in a higher layer hides the whole profile in lower layers
        - A default set in a higher layer wins
        - ``autoStore`` comes from the highest layer that sets it
        - ``$schema`` comes from the active layer only

        Layers whose file does not exist are skipped, except the active layer.

        Args:
            mask_secure: Replace secure values with a placeholder
            exclude_global: Skip the global layers
            clone: Copy values instead of sharing them with the layers

        Returns:
            Merged config document
        """
        active = self.layer_active()
        merged: dict[str, Any] = {"profiles": {}, "defaults": {}}
        auto_store = None

        for layer in self.config_layers:
            if not layer.exists and layer is not active:
                continue
            if exclude_global and layer.global_:
                continue

            properties = layer.properties
            if mask_secure:
                properties = copy.deepcopy(properties)
                for prop_path in self.api.secure.secure_fields(layer):
                    owner, leaf = prop_path.rsplit(".", 1)
                    parent = get_path(properties, owner)
                    if isinstance(parent, dict) and leaf in parent:
                        parent[leaf] = SECURE_VALUE
            elif clone:
                properties = copy.deepcopy(properties)

            for name, profile in (properties.get("profiles") or {}).items():
                merged["profiles"].setdefault(name, profile)
            for profile_type, profile_name in (properties.get("defaults") or {}).items():
                merged["defaults"].setdefault(profile_type, profile_name)
            if auto_store is None:
                auto_store = properties.get("autoStore")

        if auto_store is not None:
            merged["autoStore"] = auto_store
        if "$schema" in active.properties:
            merged = {"$schema": active.properties["$schema"], **merged}
        return merged

    # ===== Layers =====

    def find_layer(self, user: bool, global_: bool) -> ConfigLayer:
        for layer in self.config_layers:
            if layer.user == user and layer.global_ == global_:
                return layer
        raise ConfigError(f"No config layer with user={user}, global={global_}")

    def layer_active(self) -> ConfigLayer:
        return self.find_layer(self.active_user, self.active_global)

    def layer_exists(self, in_dir: Path | str, user: bool | None = None) -> bool:
        """Check whether a config file exists in a directory.

        Args:
            in_dir: Directory to look in
            user: Look for the user config (True), the shared config (False) or either (None)
        """
        if user is None:
            names = [self.config_name, self.user_config_name]
        else:
            names = [self.user_config_name if user else self.config_name]
        return any((Path(in_dir) / name).exists() for name in names)

    # ===== Editing =====

    def set(self, prop_path: str, value: Any, parse_string: bool = False, secure: bool | None = None) -> None:
        """Set a value in the active layer.

        Args:
            prop_path: Dotted path, e.g. ``profiles.base.properties.host``
            value: Value to set
            parse_string: Append the value when the target is a list
            secure: Mark (True) or unmark (False) the property as secure; None leaves it as is

        Raises:
            ConfigError: If ``secure`` is given for a path that is not a profile property
        """
        if secure and self.api.secure.secure_info_for_prop(prop_path) is None:
            raise ConfigError(f"Only profile properties can be stored securely: '{prop_path}'")

        layer = self.layer_active()
        obj = layer.properties
        *parents, leaf = prop_path.split(".")
        for segment in parents:
            if not isinstance(obj.get(segment), dict):
                obj[segment] = jsonc.CommentedMap()
            obj = obj[segment]

        if parse_string and isinstance(obj.get(leaf), list):
            obj[leaf].append(value)
        else:
            obj[leaf] = value

        if secure is not None:
            self._mark_secure(layer, prop_path, secure)
        logger.debug(f"Set {prop_path} in {layer.path}")

    def delete(self, prop_path: str, secure: bool | None = None) -> None:
        """Delete a value from the active layer.

        Args:
            prop_path: Dotted path of the value
            secure: Also drop the property from its ``secure`` list (default: True)
        """
        layer = self.layer_active()
        *parents, leaf = prop_path.split(".")
        parent = get_path(layer.properties, ".".join(parents)) if parents else layer.properties
        if isinstance(parent, dict):
            parent.pop(leaf, None)

        if secure is not False and ".properties." in prop_path:
            self._mark_secure(layer, prop_path, False)
        logger.debug(f"Deleted {prop_path} from {layer.path}")

    def _mark_secure(self, layer: ConfigLayer, prop_path: str, secure: bool) -> None:
        info = self.api.secure.secure_info_for_prop(prop_path)
        if info is None:
            return

        secure_list = get_path(layer.properties, info.path)
        if secure and not isinstance(secure_list, list):
            *owner, _ = info.path.split(".")
            get_path(layer.properties, ".".join(owner))["secure"] = jsonc.CommentedList([info.prop])
        elif secure and info.prop not in secure_list:
            secure_list.append(info.prop)
        elif not secure and isinstance(secure_list, list) and info.prop in secure_list:
            secure_list.remove(info.prop)

    def move(self, original: str, new: str) -> None:
        """Rename a profile in the active layer, carrying its cached secure values along.

        Args:
            original: Dotted name of the profile to move
            new: Dotted name it is moved to

        Raises:
            ProfileNotFoundError: If the active layer does not define the original profile
            ConfigError: If a profile already exists at the new name
        """
        layer = self.layer_active()
        original_path = ConfigProfiles.get_profile_path_from_name(original)
        new_path = ConfigProfiles.get_profile_path_from_name(new)

        profile = get_path(layer.properties, original_path)
        if not isinstance(profile, dict):
            raise ProfileNotFoundError(original)
        if self.api.profiles.exists(new):
            raise ConfigError(f"Profile '{new}' already exists and cannot be overwritten")

        cached = self.secure_store.get(str(layer.path)) or {}
        for key in list(cached):
            if key.startswith(f"{original_path}."):
                cached[new_path + key[len(original_path) :]] = cached.pop(key)

        *parents, leaf = original_path.split(".")
        del get_path(layer.properties, ".".join(parents))[leaf]
        self.api.profiles.set(new, profile)
        logger.info(f"Moved profile '{original}' to '{new}' in {layer.path}")

    # ===== Schema =====

    def set_schema(self, schema: str | dict[str, Any]) -> None:
        """Reference a schema from the active layer.

        Args:
            schema: Schema URI or path, or a schema document to write beside the layer file

        Raises:
            ConfigFileError: If a schema document cannot be written
        """
        layer = self.layer_active()
        reference = schema if isinstance(schema, str) else f"./{self.schema_name}"
        layer.properties = schema_first(ensure_sections(layer.properties), reference)

        if isinstance(schema, dict):
            schema_path = layer.path.parent / self.schema_name
            try:
                schema_path.parent.mkdir(parents=True, exist_ok=True)
                schema_path.write_text(jsonc.dumps(schema) + "\n", encoding="utf-8")
            except OSError as e:
                raise ConfigFileError(f"Error writing the schema file '{schema_path}': {e}", schema_path) from e
            logger.info(f"Wrote schema {schema_path}")

    def get_schema_info(self) -> SchemaInfo:
        """Describe the schema referenced by the active layer.

        Relative references resolve against the layer file's directory.
        """
        layer = self.layer_active()
        original = layer.properties.get("$schema")
        if not original:
            return SchemaInfo(original=None, resolved=None, local=False)

        reference = original
        if original.startswith("file://"):
            reference = url2pathname(urlparse(original).path)
        elif URL_RE.match(original):
            return SchemaInfo(original=original, resolved=original, local=False)

        resolved = (layer.path.parent / reference).resolve()
        return SchemaInfo(original=original, resolved=str(resolved), local=True)
