"""team-config: Layered team configuration with secure credential storage.

This library manages connection profiles stored in four JSONC config files:
- Project user (``<app>.config.user.json`` in or above the project directory)
- Project (``<app>.config.json`` in or above the project directory)
- Global user (typically ~/.<app>/<app>.config.user.json)
- Global (typically ~/.<app>/<app>.config.json)

Higher layers shadow lower ones. Properties listed in a profile's ``secure``
array are kept in a credential vault (the OS keyring by default) and never
written to the files.

Public API:
    Config: Loads, merges, edits and saves the layered configuration
    ConfigOpts: Options for loading a Config
    ConfigSchema: Profile type definitions and their JSON Schema
    ConfigAutoStore, AuthHandler: Store runtime connection values and tokens
    SecureHandler, SetHandler: Prompt-driven secure and set commands
    SecretVault, KeyringVault: Credential vault protocol and keyring implementation
    ConfigError and subclasses: Exception types

Example:
    ```python
    from team_config import Config, ConfigOpts, KeyringVault

    config = await Config.load("zowe", ConfigOpts(vault=KeyringVault("Zowe")))

    # Read the merged view
    host = config.api.profiles.get("lpar1.zosmf")["host"]

    # Edit the project layer
    config.api.layers.activate(user=False, global_=False)
    config.set("profiles.lpar1.properties.password", "secret", secure=True)
    await config.save()
    ```
"""

from .auto_store import AuthHandler
from .auto_store import ConfigAutoStore
from .config import Config
from .exceptions import AuthLoginError
from .exceptions import ConfigError
from .exceptions import ConfigFileError
from .exceptions import ConfigValidationError
from .exceptions import ProfileNotFoundError
from .exceptions import SecureSaveError
from .exceptions import VaultUnavailableError
from .handlers import SecureHandler
from .handlers import SecureResult
from .handlers import SetHandler
from .models import ConfigLayer
from .models import ConfigOpts
from .models import Layer
from .models import ProfileProperty
from .models import ProfileTypeConfiguration
from .models import PromptParams
from .models import SchemaInfo
from .models import SecureInfo
from .models import TypedProfile
from .schema import ConfigSchema
from .utils import coerce_prop_value
from .vault import KeyringVault
from .vault import SecretVault

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ConfigOpts",
    "ConfigLayer",
    "Layer",
    "SchemaInfo",
    "SecureInfo",
    "ConfigSchema",
    "ProfileProperty",
    "ProfileTypeConfiguration",
    "TypedProfile",
    "ConfigAutoStore",
    "AuthHandler",
    "PromptParams",
    "SecureHandler",
    "SetHandler",
    "SecureResult",
    "SecretVault",
    "KeyringVault",
    "coerce_prop_value",
    "ConfigError",
    "ConfigFileError",
    "ConfigValidationError",
    "ProfileNotFoundError",
    "SecureSaveError",
    "AuthLoginError",
    "VaultUnavailableError",
]
