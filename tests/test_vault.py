"""Tests for the keyring-backed vault."""

import keyring
import pytest
from conftest import write_json
from keyring.backend import KeyringBackend
from keyring.backends import fail
from keyring.errors import PasswordDeleteError
from team_config import KeyringVault
from team_config import SecretVault
from team_config import SecureSaveError
from team_config import VaultUnavailableError


class MemoryKeyring(KeyringBackend):
    """Keyring backend keeping passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, username)]


class TestKeyringVault:
    """Test KeyringVault against an in-memory keyring backend."""

    @pytest.fixture
    def backend(self):
        """Install an in-memory keyring for the duration of a test."""
        previous = keyring.get_keyring()
        memory = MemoryKeyring()
        keyring.set_keyring(memory)
        yield memory
        keyring.set_keyring(previous)

    @pytest.mark.asyncio
    async def test_save_and_load(self, backend):
        vault = KeyringVault("Zowe")

        await vault.save("secure_config_props", "blob")

        assert await vault.load("secure_config_props") == "blob"
        assert backend.passwords == {("Zowe", "secure_config_props"): "blob"}

    @pytest.mark.asyncio
    async def test_load_missing(self, backend):
        assert await KeyringVault("Zowe").load("secure_config_props") is None

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        """Test deleting a stored value, and deleting a missing one."""
        vault = KeyringVault("Zowe")
        await vault.save("account", "value")

        await vault.delete("account")

        assert backend.passwords == {}
        with pytest.raises(KeyError):
            await vault.delete("account")

    def test_is_secret_vault(self):
        assert isinstance(KeyringVault("Zowe"), SecretVault)

    def test_available(self, backend):
        assert KeyringVault.available()



class TestKeyringUnavailable:
    """Test a system without a usable keyring backend."""

    @pytest.fixture
    def no_backend(self):
        """Install the keyring backend used when nothing else is available."""
        previous = keyring.get_keyring()
        keyring.set_keyring(fail.Keyring())
        yield
        keyring.set_keyring(previous)

    def test_not_available(self, no_backend):
        assert not KeyringVault.available()

    @pytest.mark.asyncio
    async def test_load_raises_unavailable(self, no_backend):
        with pytest.raises(VaultUnavailableError):
            await KeyringVault("Zowe").load("secure_config_props")

    @pytest.mark.asyncio
    async def test_save_raises_secure_save_error(self, no_backend):
        with pytest.raises(SecureSaveError):
            await KeyringVault("Zowe").save("secure_config_props", "blob")

    @pytest.mark.asyncio
    async def test_config_loads_without_secure_values(self, no_backend, layer_paths, load_config):
        """Test a config still loads, and refuses to save secure values."""
        write_json(
            layer_paths[(False, False)],
            {"profiles": {"base": {"type": "base", "properties": {"host": "example.com"}, "secure": ["password"]}}},
        )

        config = await load_config(vault=KeyringVault("Zowe"))

        assert config.api.secure.load_failed
        assert config.api.profiles.get("base") == {"host": "example.com"}

        config.set("profiles.base.properties.password", "secret", secure=True)
        with pytest.raises(SecureSaveError):
            await config.save()
        assert "secret" not in layer_paths[(False, False)].read_text()
