"""Profile API: address, read and edit profiles by dotted name."""

import logging
from typing import TYPE_CHECKING
from typing import Any

from .exceptions import ProfileNotFoundError
from .utils import get_path
from .utils import set_path

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class ConfigProfiles:
    """Operations on the profiles of a Config.

    Profiles nest: the name ``lpar1.zosmf`` lives at ``profiles.lpar1.profiles.zosmf``
    and inherits the properties of ``lpar1``.

    Args:
        config: Config whose profiles are managed
    """

    def __init__(self, config: "Config"):
        self._config = config

    # ===== Naming =====

    @staticmethod
    def get_profile_path_from_name(profile_name: str) -> str:
        """Convert a dotted profile name to its document path.

        Examples:
            >>> ConfigProfiles.get_profile_path_from_name("lpar1.zosmf")
            'profiles.lpar1.profiles.zosmf'
        """
        return "profiles." + profile_name.replace(".", ".profiles.")

    @staticmethod
    def get_profile_name_from_path(path: str) -> str:
        """Convert a document path back to a dotted profile name.

        A trailing ``.properties.<name>``, ``.secure`` or ``.type`` is ignored.

        Examples:
            >>> ConfigProfiles.get_profile_name_from_path("profiles.lpar1.profiles.zosmf.properties.password")
            'lpar1.zosmf'
        """
        segments = path.split(".")
        names = []
        for index in range(0, len(segments) - 1, 2):
            if segments[index] != "profiles":
                break
            names.append(segments[index + 1])
        return ".".join(names)

    # ===== Read =====

    def build(self, profiles: dict[str, Any] | None = None, prefix: str = "", acc: list[str] | None = None) -> list[str]:
        """List the dotted names of all profiles, parents before children.

        Args:
            profiles: Profiles map to walk (default: the merged profiles)
            prefix: Dotted name of the profile owning the map
            acc: List the names are appended to

        Returns:
            Profile names in document order
        """
        if profiles is None:
            profiles = self._config.layer_merge(clone=False).get("profiles") or {}
        acc = [] if acc is None else acc

        for name, profile in profiles.items():
            profile_name = f"{prefix}.{name}" if prefix else name
            acc.append(profile_name)
            if isinstance(profile, dict) and profile.get("profiles"):
                self.build(profile["profiles"], profile_name, acc)
        return acc

    def exists(self, profile_name: str) -> bool:
        """Check whether a profile is defined in the merged configuration."""
        merged = self._config.layer_merge(clone=False)
        return isinstance(get_path(merged, self.get_profile_path_from_name(profile_name)), dict)

    def get(self, profile_name: str, must_exist: bool = True) -> dict[str, Any] | None:
        """Get a profile's properties, including those inherited from parent profiles.

        Child values win over parent values.

        Args:
            profile_name: Dotted profile name
            must_exist: Raise instead of returning None for a missing profile

        Returns:
            Property mapping, or None if the profile is missing and must_exist is False

        Raises:
            ProfileNotFoundError: If the profile is missing and must_exist is True
        """
        merged = self._config.layer_merge()
        if not isinstance(get_path(merged, self.get_profile_path_from_name(profile_name)), dict):
            if must_exist:
                raise ProfileNotFoundError(profile_name)
            return None

        properties: dict[str, Any] = {}
        profiles = merged.get("profiles") or {}
        for segment in profile_name.split("."):
            profile = profiles[segment]
            properties.update(profile.get("properties") or {})
            profiles = profile.get("profiles") or {}
        return properties

    def get_type(self, profile_name: str) -> str | None:
        """Get a profile's declared type."""
        merged = self._config.layer_merge(clone=False)
        return get_path(merged, f"{self.get_profile_path_from_name(profile_name)}.type")

    # ===== Write =====

    def set(self, profile_name: str, profile: dict[str, Any]) -> None:
        """Set a profile in the active layer, creating parent profiles as needed.

        Args:
            profile_name: Dotted profile name
            profile: Profile object (``type``, ``properties``, ``secure``, ``profiles``)
        """
        profile.setdefault("properties", {})
        set_path(self._config.layer_active().properties, self.get_profile_path_from_name(profile_name), profile)
        logger.debug(f"Set profile '{profile_name}'")

    # ===== Defaults =====

    def default_get(self, profile_type: str) -> dict[str, Any] | None:
        """Get the properties of the default profile for a type.

        Returns:
            Property mapping, or None if no default is set or the profile is missing
        """
        profile_name = self.default_name(profile_type)
        if profile_name is None:
            return None
        return self.get(profile_name, must_exist=False)

    def default_name(self, profile_type: str) -> str | None:
        defaults = self._config.layer_merge(clone=False).get("defaults") or {}
        return defaults.get(profile_type)

    def default_set(self, profile_type: str, profile_name: str) -> None:
        """Set the default profile for a type in the active layer."""
        self._config.layer_active().properties["defaults"][profile_type] = profile_name
