"""Secret stores that hold secure config properties."""

import asyncio
import logging
from typing import Protocol
from typing import runtime_checkable

import keyring
from keyring.errors import KeyringError
from keyring.errors import PasswordDeleteError

from .exceptions import SecureSaveError
from .exceptions import VaultUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretVault(Protocol):
    """Opaque key-value store for secrets.

    Values are whole blobs: the vault is never asked to update part of a value.
    A vault that cannot work on this system raises ``VaultUnavailableError`` from
    ``load``; the config then loads without secure values.
    """

    async def load(self, key: str) -> str | None: ...

    async def save(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class KeyringVault:
    """SecretVault backed by the operating system credential store.

    Args:
        service: Service name the secrets are filed under (usually the app's display name)
    """

    def __init__(self, service: str):
        self.service = service

    @staticmethod
    def available() -> bool:
        """Check that keyring resolved a backend able to store secrets."""
        backend = type(keyring.get_keyring())
        backend_name = f"{backend.__module__}.{backend.__name__}".lower()
        return "fail" not in backend_name and "null" not in backend_name

    async def load(self, key: str) -> str | None:
        """Load a secret.

        Raises:
            VaultUnavailableError: If no usable keyring backend is installed
        """
        if not self.available():
            raise VaultUnavailableError(f"No keyring backend is available to load '{key}' for '{self.service}'")
        try:
            return await asyncio.to_thread(keyring.get_password, self.service, key)
        except KeyringError as e:
            raise VaultUnavailableError(f"Keyring failed to load '{key}' for '{self.service}': {e}") from e

    async def save(self, key: str, value: str) -> None:
        if not self.available():
            raise SecureSaveError()
        try:
            await asyncio.to_thread(keyring.set_password, self.service, key, value)
        except KeyringError as e:
            raise SecureSaveError(f"Unable to securely save credentials: {e}.") from e
        logger.debug(f"Saved credentials for service '{self.service}', account '{key}'")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(keyring.delete_password, self.service, key)
        except PasswordDeleteError as e:
            raise KeyError(f"No credentials stored for service '{self.service}', account '{key}'") from e
        logger.debug(f"Deleted credentials for service '{self.service}', account '{key}'")
