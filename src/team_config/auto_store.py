"""Store connection properties entered at runtime back into the config.

When ``autoStore`` is enabled, values a user types at a prompt (host, port,
credentials) are saved into the profile they belong to. When an auth handler
can log in for that profile, a user and password are exchanged for a token and
only the token is stored.
"""

import logging
from typing import TYPE_CHECKING
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from .constants import AUTH_TYPE_TOKEN
from .constants import TOKEN_TYPE_APIML
from .exceptions import AuthLoginError
from .models import PromptParams
from .profiles import ConfigProfiles
from .schema import ConfigSchema

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

BASE_PROFILE_TYPE = "base"


@runtime_checkable
class AuthHandler(Protocol):
    """Logs in to a service and returns a session token."""

    prompt_params: PromptParams

    def create_sess_cfg(self, profile_props: dict[str, Any]) -> dict[str, Any]:
        """Build a session configuration from profile properties."""
        ...

    async def session_login(self, session: dict[str, Any]) -> str:
        """Log in and return the token value."""
        ...


class ConfigAutoStore:
    """Finds where runtime values belong and stores them.

    Args:
        config: Config values are stored in
        schema: Profile type definitions (secure flags and property names)
        auth_handlers: Auth handlers keyed by the profile type they serve
    """

    def __init__(
        self,
        config: "Config",
        schema: ConfigSchema | None = None,
        auth_handlers: dict[str, list[AuthHandler]] | None = None,
    ):
        self.config = config
        self.schema = schema or ConfigSchema()
        self.auth_handlers = auth_handlers or {}

    # ===== Profile Lookup =====

    def active_profile_name(self, profile_type: str, profile_name: str | None = None) -> str:
        """Name of the profile in use for a type: explicit name, then default, then ``my_<type>``."""
        if profile_name:
            return profile_name
        return self.config.api.profiles.default_name(profile_type) or f"my_{profile_type}"

    def find_active_profile(
        self, profile_types: list[str], profile_props: list[str], profile_name: str | None = None
    ) -> tuple[str, str] | None:
        """Find the first profile type that declares all the given properties.

        Returns:
            (profile type, profile name), or None if no type declares them all
        """
        for type_name in profile_types:
            profile_type = self.schema.profile_type(type_name)
            if profile_type is not None and all(prop in profile_type.properties for prop in profile_props):
                return type_name, self.active_profile_name(type_name, profile_name)
        return None

    def find_auth_handler_for_profile(self, profile_path: str) -> AuthHandler | None:
        """Find an auth handler able to fetch a token for a profile.

        A base profile needs a ``tokenType``. A service profile needs a ``basePath``;
        without its own ``tokenType`` the default base profile is used instead.

        Args:
            profile_path: Document path of the profile, e.g. ``profiles.lpar1.profiles.zosmf``

        Returns:
            Matching handler, or None
        """
        profile_name = ConfigProfiles.get_profile_name_from_path(profile_path)
        profile_type = self.config.api.profiles.get_type(profile_name)
        profile = self.config.api.profiles.get(profile_name, must_exist=False)
        if profile is None or profile_type is None:
            return None

        if profile_type == BASE_PROFILE_TYPE:
            if profile.get("tokenType") is None:
                return None
        else:
            if profile.get("basePath") is None:
                return None
            if profile.get("tokenType") is None:
                base_name = self.active_profile_name(BASE_PROFILE_TYPE)
                if base_name == profile_name:
                    return None
                return self.find_auth_handler_for_profile(ConfigProfiles.get_profile_path_from_name(base_name))

        token_type = profile["tokenType"]
        handlers = list(self.auth_handlers.get(profile_type, []))
        if profile_type != BASE_PROFILE_TYPE:
            handlers.extend(self.auth_handlers.get(BASE_PROFILE_TYPE, []))
        for handler in handlers:
            if token_type == handler.prompt_params.default_token_type or token_type.startswith(TOKEN_TYPE_APIML):
                return handler
        return None

    # ===== Storing =====

    async def fetch_token_for_sess_cfg(
        self, sess_cfg: dict[str, Any], profile_path: str, token_type: str | None = None
    ) -> bool:
        """Log in with the session's user and password and put the token in their place.

        Args:
            sess_cfg: Session configuration; updated in place on success
            profile_path: Document path of the profile the session came from
            token_type: Token type to request (default: the handler's default)

        Returns:
            True if a token was fetched, False if no auth handler applies

        Raises:
            AuthLoginError: If the login fails
        """
        handler = self.find_auth_handler_for_profile(profile_path)
        if handler is None:
            return False

        sess_cfg["type"] = AUTH_TYPE_TOKEN
        sess_cfg["tokenType"] = token_type or handler.prompt_params.default_token_type

        base_type = self.schema.profile_type(BASE_PROFILE_TYPE)
        prop_names = list(base_type.properties) if base_type else list(sess_cfg)
        session = {"type": sess_cfg["type"], "tokenType": sess_cfg["tokenType"]}
        for name in prop_names:
            sess_name = "hostname" if name == "host" else name
            if sess_cfg.get(sess_name) is not None:
                session[sess_name] = sess_cfg[sess_name]

        logger.info(f"Fetching {sess_cfg['tokenType']} for {profile_path}")
        try:
            token = await handler.session_login(session)
        except Exception as e:
            raise AuthLoginError(sess_cfg["tokenType"], profile_path, e) from e

        sess_cfg["tokenValue"] = token
        sess_cfg["user"] = None
        sess_cfg["password"] = None
        return True

    async def store_sess_cfg_props(
        self,
        sess_cfg: dict[str, Any],
        props_to_store: list[str],
        profile_type: str | None = None,
        profile_name: str | None = None,
        profile_types: list[str] | None = None,
        set_secure: bool | None = None,
    ) -> None:
        """Store session properties in the profile they belong to.

        Nothing is stored unless the config exists and ``autoStore`` is enabled.
        Values go to the profile's own layer and, when the base profile already owns
        a property, to the base profile. The active layer is restored afterwards.

        Args:
            sess_cfg: Session configuration holding the values (``hostname`` for ``host``)
            props_to_store: Profile property names to store
            profile_type: Profile type to store into when no schema type matches
            profile_name: Profile name to store into (default: the active profile)
            profile_types: Candidate profile types, searched in order
            set_secure: Force the secure flag instead of deriving it

        Raises:
            AuthLoginError: If exchanging credentials for a token fails
            SecureSaveError: If secure values cannot be saved
        """
        config = self.config
        if not props_to_store or not config.exists or not config.properties.get("autoStore"):
            return

        profile_props = ["host" if prop == "hostname" else prop for prop in props_to_store]
        profile_data = self.find_active_profile(profile_types or [], profile_props, profile_name)
        if profile_data is None:
            if profile_type is None:
                logger.debug(f"No profile found to store {', '.join(profile_props)}")
                return
            profile_data = (profile_type, self.active_profile_name(profile_type, profile_name))
        profile_type, profile_name = profile_data
        profile_path = ConfigProfiles.get_profile_path_from_name(profile_name)

        if "user" in profile_props and "password" in profile_props:
            if await self.fetch_token_for_sess_cfg(sess_cfg, profile_path):
                profile_props = [prop for prop in profile_props if prop not in ("user", "password")]
                profile_props.append("tokenValue")

        previous = (config.active_user, config.active_global)
        layer = config.api.layers.find(profile_name)
        if layer is not None:
            config.api.layers.activate(layer.user, layer.global_)

        try:
            self._set_props(sess_cfg, profile_props, profile_type, profile_name, set_secure)
            await config.save()
            logger.info(f"Stored properties in {config.layer_active().path}: {', '.join(profile_props)}")
        finally:
            config.api.layers.activate(*previous)

    def _set_props(
        self,
        sess_cfg: dict[str, Any],
        profile_props: list[str],
        profile_type: str,
        profile_name: str,
        set_secure: bool | None,
    ) -> None:
        config = self.config
        profiles = config.api.profiles
        profile_path = ConfigProfiles.get_profile_path_from_name(profile_name)
        profile = profiles.get(profile_name, must_exist=False) or {}
        profile_secure = config.api.secure.secure_props_for_profile(profile_name)

        base_name = self.active_profile_name(BASE_PROFILE_TYPE)
        base_path = ConfigProfiles.get_profile_path_from_name(base_name)
        base = profiles.get(base_name, must_exist=False) or {}
        base_secure = config.api.secure.secure_props_for_profile(base_name)
        use_base_profile = not profiles.exists(profile_name) and profiles.exists(base_name)

        for prop in profile_props:
            prop_path = profile_path
            is_secure = self._declared_secure(profile_type, prop) or prop in profile_secure

            owned_by_base = prop not in profile and prop not in profile_secure and (prop in base or prop in base_secure)
            token_from_base = (
                prop == "tokenValue" and profile.get("tokenType") is None and base.get("tokenType") is not None
            )
            if use_base_profile or owned_by_base or token_from_base or profile_type == BASE_PROFILE_TYPE:
                prop_path = base_path
                is_secure = self._declared_secure(BASE_PROFILE_TYPE, prop) or prop in base_secure

            if is_secure:
                info = config.api.secure.secure_info_for_prop(f"{prop_path}.properties.{prop}", find_up=True)
                if info is not None and info.path.count(".") < prop_path.count(".") + 1:
                    prop_path = info.path.rsplit(".", 1)[0]

            sess_name = "hostname" if prop == "host" else prop
            config.set(
                f"{prop_path}.properties.{prop}",
                sess_cfg.get(sess_name),
                secure=is_secure if set_secure is None else set_secure,
            )

    def _declared_secure(self, type_name: str, prop: str) -> bool:
        declared = self.schema.property(type_name, prop)
        return declared is not None and declared.secure
