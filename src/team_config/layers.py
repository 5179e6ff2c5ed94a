"""Layer API: read, write and edit individual config files."""

import copy
import logging
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

from . import jsonc
from .exceptions import ConfigFileError
from .models import ConfigLayer
from .profiles import ConfigProfiles
from .utils import get_path
from .utils import merge_missing

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


def schema_first(properties: dict[str, Any], schema: str | None = None) -> dict[str, Any]:
    """Return a copy of a config document with ``$schema`` as its first key.

    Args:
        properties: Config document
        schema: Schema reference to use (default: the document's own ``$schema``)
    """
    doc = jsonc.CommentedMap()
    doc["$schema"] = schema if schema is not None else properties["$schema"]
    for key, value in properties.items():
        if key != "$schema":
            doc[key] = value
    doc.comments = dict(getattr(properties, "comments", {}))
    return doc


def ensure_sections(properties: dict[str, Any]) -> dict[str, Any]:
    """Make sure the required ``profiles`` and ``defaults`` sections are objects."""
    for section in ("profiles", "defaults"):
        if not isinstance(properties.get(section), dict):
            properties[section] = jsonc.CommentedMap()
    return properties


class ConfigLayers:
    """Operations on the layer files of a Config.

    Args:
        config: Config whose layers are managed
    """

    def __init__(self, config: "Config"):
        self._config = config

    # ===== File I/O =====

    def read(self, layer: ConfigLayer | None = None) -> None:
        """Read a layer file from disk, replacing its in-memory content.

        Secure values cached from the vault are merged back into the document.
        A layer whose file has disappeared is reset to an empty document.

        Args:
            layer: Layer to read (default: the active layer)

        Raises:
            ConfigFileError: If the file cannot be read or is not a valid JSONC object
        """
        layer = layer or self._config.layer_active()

        if layer.path.exists():
            try:
                text = layer.path.read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigFileError(
                    f"An error was encountered while trying to read the file '{layer.path}'.\nError details: {e}",
                    layer.path,
                ) from e

            try:
                properties = jsonc.loads(text)
            except jsonc.JsoncDecodeError as e:
                raise ConfigFileError(
                    f"Error parsing JSON in the file '{layer.path}'.\n"
                    "Please check this configuration file for errors.\n"
                    f"Error details: {e.msg}\nLine {e.lineno}, Column {e.colno}",
                    layer.path,
                ) from e

            if not isinstance(properties, dict):
                raise ConfigFileError(
                    f"Error parsing JSON in the file '{layer.path}'.\nThe document root must be a JSON object.",
                    layer.path,
                )

            layer.properties = ensure_sections(properties)
            layer.exists = True
            logger.debug(f"Read config layer {layer.path}")
            self._config.api.secure.load_cached(layer)
        elif layer.exists:
            layer.properties = ensure_sections(jsonc.CommentedMap())
            layer.exists = False
            logger.debug(f"Config layer {layer.path} no longer exists")
        else:
            ensure_sections(layer.properties)

    def write(self, layer: ConfigLayer | None = None) -> None:
        """Write a layer to disk with its secure values removed.

        Secure values are cached for the vault instead. Parent directories are
        created as needed.

        Args:
            layer: Layer to write (default: the active layer)

        Raises:
            ConfigFileError: If the file cannot be written
        """
        layer = layer or self._config.layer_active()

        properties = copy.deepcopy(layer.properties)
        self._config.api.secure.cache_and_prune(layer, properties)
        if "$schema" in properties:
            properties = schema_first(properties)

        try:
            layer.path.parent.mkdir(parents=True, exist_ok=True)
            layer.path.write_text(jsonc.dumps(properties) + "\n", encoding="utf-8")
        except OSError as e:
            raise ConfigFileError(f"Error writing the config file '{layer.path}': {e}", layer.path) from e

        layer.exists = True
        logger.info(f"Wrote config layer {layer.path}")

    # ===== Active Layer =====

    def activate(self, user: bool, global_: bool, in_dir: Path | str | None = None) -> None:
        """Select the layer that edits apply to.

        Args:
            user: Select a user layer
            global_: Select a global layer
            in_dir: Directory to move the selected layer to; the layer is re-read from there
        """
        self._config.active_user = user
        self._config.active_global = global_

        if in_dir is not None:
            layer = self._config.layer_active()
            new_path = Path(in_dir).resolve() / layer.path.name
            if new_path != layer.path:
                layer.path = new_path
                self.read(layer)

    def get(self) -> ConfigLayer:
        """Return a deep copy of the active layer."""
        return copy.deepcopy(self._config.layer_active())

    def set(self, document: dict[str, Any]) -> None:
        """Replace the active layer's document."""
        layer = self._config.layer_active()
        layer.properties = ensure_sections(document)

    def merge(self, document: dict[str, Any], dry_run: bool = False) -> ConfigLayer | None:
        """Merge a document into the active layer without overwriting existing values.

        Profiles and defaults already in the layer win; lists such as ``secure``
        are combined. ``autoStore`` is taken from the merged document when present.

        Args:
            document: Document to merge in
            dry_run: Return the merged result without modifying the layer

        Returns:
            The merged layer copy for a dry run, otherwise None
        """
        layer = self._config.layer_active()
        if dry_run:
            layer = copy.deepcopy(layer)

        properties = ensure_sections(layer.properties)
        merge_missing(properties["profiles"], document.get("profiles") or {})
        merge_missing(properties["defaults"], document.get("defaults") or {})
        if document.get("autoStore") is not None:
            properties["autoStore"] = document["autoStore"]

        return layer if dry_run else None

    def find(self, profile_name: str) -> ConfigLayer | None:
        """Find the highest-precedence layer that defines a profile.

        Args:
            profile_name: Dotted profile name

        Returns:
            The live layer object, or None if no layer defines the profile
        """
        profile_path = ConfigProfiles.get_profile_path_from_name(profile_name)
        for layer in self._config.config_layers:
            if get_path(layer.properties, profile_path) is not None:
                return layer
        return None
