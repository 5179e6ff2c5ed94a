"""Command handlers for securing and setting config properties.

Handlers take an async ``prompt(message, hide_text)`` callable so that any
front end (terminal, GUI, test double) can collect the values.
"""

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING
from typing import Any

from .auto_store import ConfigAutoStore
from .constants import SKIP_PROMPT
from .exceptions import AuthLoginError
from .exceptions import ConfigError
from .exceptions import ConfigFileError
from .exceptions import SecureSaveError
from .profiles import ConfigProfiles
from .schema import ConfigSchema
from .utils import coerce_prop_value

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

PromptFn = Callable[[str, bool], Awaitable[str]]


@dataclass
class SecureResult:
    """Outcome of a secure pass.

    Attributes:
        secured: Property paths that received a value
        pruned: Config files whose vault entries were dropped
    """

    secured: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)


class SecureHandler:
    """Prompt for every secure property of a layer and store the answers in the vault.

    Values are collected first and saved together, so a failed login leaves the
    config and the vault untouched.

    Args:
        config: Loaded Config
        prompt: Async callable ``prompt(message, hide_text)`` returning the user's input
        auto_store: Provides auth handlers for token properties
        schema: Profile type definitions used to type the values entered
    """

    def __init__(
        self,
        config: "Config",
        prompt: PromptFn,
        auto_store: ConfigAutoStore | None = None,
        schema: ConfigSchema | None = None,
    ):
        self.config = config
        self.prompt = prompt
        self.auto_store = auto_store
        self.schema = schema

    async def process(
        self,
        user_config: bool = False,
        global_config: bool = False,
        profile: str | None = None,
        prune: bool = False,
    ) -> SecureResult:
        """Run the secure pass on one layer.

        Args:
            user_config: Secure the user layer
            global_config: Secure the global layer
            profile: Only prompt for the secure properties of this profile (case-insensitive);
                all properties are prompted for when none match
            prune: Drop vault entries of config files that no longer exist

        Returns:
            SecureResult

        Raises:
            SecureSaveError: If no working vault is available
            ConfigFileError: If the selected layer does not exist
            AuthLoginError: If fetching a token fails
        """
        config = self.config
        if config.api.secure.load_failed:
            raise SecureSaveError()

        config.api.layers.activate(user_config, global_config)
        layer = config.layer_active()
        if not layer.exists:
            raise ConfigFileError(f"The config file '{layer.path}' does not exist", layer.path)

        secure_props = config.api.secure.secure_fields(layer)
        if not secure_props:
            logger.info(f"No secure properties found in {layer.path}")
            return SecureResult()
        if profile:
            secure_props = self.filter_by_profile(secure_props, profile)

        values: dict[str, Any] = {}
        for prop_path in secure_props:
            value = None
            if prop_path.endswith(".tokenValue"):
                value = await self._login_for_token(prop_path)
            if value is None:
                answer = await self.prompt(f"Enter {prop_path} {SKIP_PROMPT}", True)
                if answer:
                    value = self._coerce(prop_path, answer)
            if value is not None and value != "":
                values[prop_path] = value

        for prop_path, value in values.items():
            config.set(prop_path, value, secure=True)
        pruned = await config.save(prune=prune)

        if pruned:
            logger.info(f"Deleted secure values of missing config files: {', '.join(pruned)}")
        logger.info(f"Secured {len(values)} of {len(secure_props)} properties in {layer.path}")
        return SecureResult(secured=list(values), pruned=pruned)

    @staticmethod
    def filter_by_profile(secure_props: list[str], profile: str) -> list[str]:
        """Keep the properties owned by a profile, or all of them if none match."""
        wanted = profile.lower()
        matched = [p for p in secure_props if ConfigProfiles.get_profile_name_from_path(p).lower() == wanted]
        return matched or list(secure_props)

    def _coerce(self, prop_path: str, answer: str) -> Any:
        if self.schema is None:
            return answer
        return coerce_prop_value(answer, self.schema.find_property_type(prop_path, self.config.properties))

    async def _login_for_token(self, prop_path: str) -> str | None:
        if self.auto_store is None:
            return None

        profile_path = prop_path.rsplit(".properties.", 1)[0]
        handler = self.auto_store.find_auth_handler_for_profile(profile_path)
        if handler is None:
            return None

        params = handler.prompt_params
        if params.service_description:
            logger.info(f"Logging in to {params.service_description}")

        profile_name = ConfigProfiles.get_profile_name_from_path(profile_path)
        profile = self.config.api.profiles.get(profile_name, must_exist=False) or {}
        session = handler.create_sess_cfg(profile)
        for name, hide_text in (("user", False), ("password", True)):
            if not session.get(name):
                answer = await self.prompt(f"Enter {name} {SKIP_PROMPT}", hide_text)
                if answer:
                    session[name] = answer

        token_type = profile.get("tokenType") or params.default_token_type
        logger.info(f"Fetching {token_type} for {prop_path}")
        try:
            token = await handler.session_login(session)
        except Exception as e:
            raise AuthLoginError(token_type, prop_path, e) from e
        logger.info(f"Logged in to fetch {token_type} for {prop_path}")
        return token


class SetHandler:
    """Set one property in a layer, typed by the schema.

    Args:
        config: Loaded Config
        prompt: Async callable used when no value is given
        schema: Profile type definitions used to coerce the value
    """

    def __init__(self, config: "Config", prompt: PromptFn | None = None, schema: ConfigSchema | None = None):
        self.config = config
        self.prompt = prompt
        self.schema = schema

    async def process(
        self,
        prop_path: str,
        value: str | None = None,
        user_config: bool = False,
        global_config: bool = False,
        secure: bool | None = None,
        json: bool = False,
    ) -> Any:
        """Set a property and save the layer.

        Args:
            prop_path: Dotted path of the property
            value: Raw value (prompted for when None)
            user_config: Set in the user layer
            global_config: Set in the global layer
            secure: Store securely (default: whether the property is already secure)
            json: Parse the value as JSON

        Returns:
            The value as stored

        Raises:
            ConfigValidationError: If the value cannot be parsed; nothing is written
            SecureSaveError: If a secure value cannot be stored
        """
        config = self.config
        config.api.layers.activate(user_config, global_config)
        layer = config.layer_active()

        if secure is None:
            secure = prop_path in config.api.secure.secure_fields(layer)
        if secure and config.api.secure.load_failed:
            raise SecureSaveError()

        if value is None:
            if self.prompt is None:
                raise ConfigError(f"No value given for '{prop_path}'")
            value = await self.prompt(f"Enter {prop_path} {SKIP_PROMPT}", secure)
            if not value:
                logger.info(f"Skipped setting {prop_path}")
                return None

        if json:
            typed_value = coerce_prop_value(value, json=True)
        else:
            prop_type = self.schema.find_property_type(prop_path, config.properties) if self.schema else None
            typed_value = coerce_prop_value(value, prop_type)

        config.set(prop_path, typed_value, secure=secure)
        await config.save()
        logger.info(f"Set {prop_path} in {layer.path}")
        return typed_value
