"""Secure API: keep secure property values in a vault instead of config files.

Secure values of every layer are stored together under one vault account as a
base64-encoded JSON object keyed by absolute layer path::

    {"/home/me/.app/app.config.json": {"profiles.base.properties.password": "..."}}
"""

import base64
import binascii
import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

from .constants import SECURE_ACCOUNT
from .exceptions import ConfigError
from .exceptions import SecureSaveError
from .exceptions import VaultUnavailableError
from .models import ConfigLayer
from .models import SecureInfo
from .profiles import ConfigProfiles
from .utils import get_path
from .utils import set_path
from .utils import unset_path

if TYPE_CHECKING:
    from .config import Config
    from .vault import SecretVault

logger = logging.getLogger(__name__)


def encode_secure_store(store: dict[str, dict[str, Any]]) -> str:
    """Encode secure values for the vault."""
    return base64.b64encode(json.dumps(store).encode("utf-8")).decode("ascii")


def decode_secure_store(blob: str) -> dict[str, dict[str, Any]]:
    """Decode the vault blob written by ``encode_secure_store``.

    Raises:
        ConfigError: If the blob is not base64-encoded JSON
    """
    try:
        store = json.loads(base64.b64decode(blob, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to decode secure configuration stored in the vault: {e}") from e
    if not isinstance(store, dict):
        raise ConfigError("Failed to decode secure configuration stored in the vault: expected a JSON object")
    return store


class ConfigSecure:
    """Operations on the secure properties of a Config.

    Args:
        config: Config whose secure properties are managed
    """

    def __init__(self, config: "Config"):
        self._config = config
        self._load_failed: bool | None = None

    # ===== Vault I/O =====

    async def load(self, vault: "SecretVault | None" = None) -> None:
        """Load secure values from the vault into every layer.

        Args:
            vault: Vault to use from now on (default: the Config's current vault)

        Raises:
            Exception: Whatever the vault raises, other than ``VaultUnavailableError``;
                ``load_failed`` is set first
        """
        if vault is not None:
            self._config.vault = vault

        if self._config.vault is None:
            self._load_failed = True
            if self.secure_fields():
                logger.warning("No credential vault is configured; secure properties are not available")
            return

        try:
            blob = await self._config.vault.load(SECURE_ACCOUNT)
        except VaultUnavailableError as e:
            self._load_failed = True
            logger.warning(f"Credential vault is unavailable; secure properties are not available: {e}")
            return
        except Exception:
            self._load_failed = True
            raise
        self._load_failed = False

        self._config.secure_store = decode_secure_store(blob) if blob else {}
        for layer in self._config.config_layers:
            self.load_cached(layer)
        logger.debug(f"Loaded secure values for {len(self._config.secure_store)} config file(s)")

    async def save(self, all_layers: bool = False, prune: bool = False) -> list[str]:
        """Save secure values of the active layer (or all layers) to the vault.

        Args:
            all_layers: Save every layer instead of only the active one
            prune: Also drop vault entries of config files that no longer exist

        Returns:
            Paths of the config files whose entries were pruned

        Raises:
            SecureSaveError: If secure values exist but no working vault is available
        """
        targets = [
            layer for layer in self._config.config_layers if all_layers or layer is self._config.layer_active()
        ]

        if self._config.vault is None or self._load_failed:
            if any(self._secure_values(layer) for layer in targets):
                raise SecureSaveError()
            return []

        had_entries = bool(self._config.secure_store)
        for layer in targets:
            self.cache_and_prune(layer)
        pruned = self.rm_unused_props(ignore=[str(layer.path) for layer in targets]) if prune else []

        if self._config.secure_store or had_entries:
            await self.direct_save()
        return pruned

    async def direct_save(self) -> None:
        """Write the cached secure values to the vault as they are."""
        await self._config.vault.save(SECURE_ACCOUNT, encode_secure_store(self._config.secure_store))
        logger.info(f"Saved secure values for {len(self._config.secure_store)} config file(s)")

    @property
    def load_failed(self) -> bool:
        """True when no vault is configured or loading from it failed."""
        if self._load_failed is None:
            return self._config.vault is None
        return self._load_failed

    # ===== Cache =====

    def load_cached(self, layer: ConfigLayer | None = None) -> None:
        """Merge cached secure values into a layer's document."""
        if self._config.vault is None:
            return

        layer = layer or self._config.layer_active()
        cached = self._config.secure_store.get(str(layer.path))
        if not cached:
            return

        for prop_path in self.secure_fields(layer):
            if prop_path in cached:
                set_path(layer.properties, prop_path, cached[prop_path])

    def cache_and_prune(self, layer: ConfigLayer | None = None, properties: dict[str, Any] | None = None) -> None:
        """Cache a layer's secure values and optionally strip them from a document.

        Args:
            layer: Layer whose secure values are cached (default: the active layer)
            properties: Copy of the layer's document to remove secure values from
        """
        layer = layer or self._config.layer_active()
        values = self._secure_values(layer, properties)

        if properties is not None:
            for prop_path in values:
                unset_path(properties, prop_path)

        if self._config.vault is not None:
            self._config.secure_store.pop(str(layer.path), None)
            if values:
                self._config.secure_store[str(layer.path)] = values

    def rm_unused_props(self, ignore: Iterable[str] = ()) -> list[str]:
        """Remove cached entries of config files that no longer exist.

        Args:
            ignore: Paths kept even if their file is missing

        Returns:
            Paths whose entries were removed
        """
        kept = set(ignore)
        pruned = []
        for file_path in list(self._config.secure_store):
            if file_path in kept or Path(file_path).exists():
                continue
            del self._config.secure_store[file_path]
            pruned.append(file_path)
        if pruned:
            logger.info(f"Pruned secure values of missing config files: {', '.join(pruned)}")
        return pruned

    def _secure_values(self, layer: ConfigLayer, properties: dict[str, Any] | None = None) -> dict[str, Any]:
        source = layer.properties if properties is None else properties
        values = {}
        for prop_path in self.secure_fields(layer):
            value = get_path(source, prop_path)
            if value is not None:
                values[prop_path] = value
        return values

    # ===== Secure Fields =====

    def secure_fields(self, layer: ConfigLayer | None = None) -> list[str]:
        """List the property paths marked secure.

        Args:
            layer: Layer to inspect (default: every layer that exists)

        Returns:
            Paths such as ``profiles.lpar1.profiles.zosmf.properties.password``
        """
        if layer is not None:
            return self.find_secure(layer.properties.get("profiles") or {}, "profiles")

        fields: list[str] = []
        for each in self._config.config_layers:
            if each.exists:
                found = self.find_secure(each.properties.get("profiles") or {}, "profiles")
                fields.extend(f for f in found if f not in fields)
        return fields

    def find_secure(self, profiles: dict[str, Any], path: str) -> list[str]:
        """Recursively collect the secure property paths of a profiles map.

        Args:
            profiles: Profiles map to walk
            path: Dotted path of the profiles map
        """
        fields = []
        for name, profile in profiles.items():
            if not isinstance(profile, dict):
                continue
            profile_path = f"{path}.{name}"
            for prop in profile.get("secure") or []:
                fields.append(f"{profile_path}.properties.{prop}")
            if isinstance(profile.get("profiles"), dict):
                fields.extend(self.find_secure(profile["profiles"], f"{profile_path}.profiles"))
        return fields

    def secure_info_for_prop(self, prop_path: str, find_up: bool = False) -> SecureInfo | None:
        """Find the ``secure`` list that governs a property.

        Args:
            prop_path: Full property path, ``profiles.<...>.properties.<name>``
            find_up: Prefer an ancestor profile's ``secure`` list that already names the property

        Returns:
            SecureInfo, or None for a path that does not address a profile property
        """
        if ".properties." not in prop_path:
            return None

        owner, prop = prop_path.rsplit(".properties.", 1)
        secure_path = f"{owner}.secure"

        if find_up:
            layer = self._config.layer_active()
            segments = owner.split(".")
            while layer.exists and len(segments) >= 2:
                candidate = ".".join([*segments, "secure"])
                if prop in (get_path(layer.properties, candidate) or []):
                    secure_path = candidate
                    break
                segments = segments[:-2]

        return SecureInfo(path=secure_path, prop=prop)

    def secure_props_for_profile(self, profile_name: str) -> list[str]:
        """List the secure property names that apply to a profile, including inherited ones."""
        profile_path = ConfigProfiles.get_profile_path_from_name(profile_name)
        props: list[str] = []
        for field_path in self.secure_fields():
            owner, prop = field_path.rsplit(".properties.", 1)
            if (profile_path == owner or profile_path.startswith(f"{owner}.")) and prop not in props:
                props.append(prop)
        return props
