"""Exceptions for team-config."""

from pathlib import Path


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Error reading, parsing or writing a configuration file."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = path


class ConfigValidationError(ConfigError):
    """Error validating configuration data or coercing a property value."""

    pass


class ProfileNotFoundError(ConfigError):
    """A profile path does not resolve to a profile."""

    def __init__(self, profile_path: str):
        super().__init__(f"Profile '{profile_path}' does not exist")
        self.profile_path = profile_path


class SecureSaveError(ConfigError):
    """Secure properties cannot be stored because no credential vault works."""

    def __init__(self, message: str = "Unable to securely save credentials."):
        super().__init__(
            f"{message} No working credential manager is configured. Install a keyring "
            "backend for your operating system (or configure a custom vault) and try again; "
            "until then, secure properties cannot be stored."
        )


class AuthLoginError(ConfigError):
    """Login through an auth handler failed while fetching a token."""

    def __init__(self, token_type: str | None, property_path: str, cause: Exception):
        super().__init__(f"Failed to fetch {token_type} for {property_path}: {cause}")
        self.token_type = token_type
        self.property_path = property_path


class VaultUnavailableError(ConfigError):
    """The credential vault cannot be used on this system."""

    pass
