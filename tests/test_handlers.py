"""Tests for the secure and set command handlers."""

import pytest
from conftest import FakeAuthHandler
from conftest import MemoryVault
from conftest import Prompter
from conftest import read_json
from conftest import write_json
from team_config import AuthLoginError
from team_config import ConfigAutoStore
from team_config import ConfigFileError
from team_config import ConfigSchema
from team_config import ConfigValidationError
from team_config import ProfileProperty
from team_config import ProfileTypeConfiguration
from team_config import SecureHandler
from team_config import SecureSaveError
from team_config import SetHandler
from team_config.constants import SECURE_ACCOUNT
from team_config.constants import SKIP_PROMPT
from team_config.secure import encode_secure_store

SECURE_PROPS = [
    "profiles.GoodProfile.properties.user",
    "profiles.GoodProfile.properties.password",
    "profiles.lpar1.profiles.GoodProfile.properties.password",
    "profiles.lpar1.profiles.other.properties.password",
]


@pytest.fixture
def schema():
    return ConfigSchema(
        [
            ProfileTypeConfiguration(
                type="zosmf",
                properties={
                    "host": ProfileProperty(type="string"),
                    "port": ProfileProperty(type="number"),
                    "rejectUnauthorized": ProfileProperty(type="boolean"),
                    "user": ProfileProperty(type="string", secure=True),
                    "password": ProfileProperty(type="string", secure=True),
                    "pin": ProfileProperty(type="number", secure=True),
                },
            ),
            ProfileTypeConfiguration(
                type="base",
                properties={
                    "host": ProfileProperty(type="string"),
                    "tokenType": ProfileProperty(type="string"),
                    "tokenValue": ProfileProperty(type="string", secure=True),
                },
            ),
        ]
    )


@pytest.fixture
def secure_config(layer_paths):
    """Project layer with secure properties in top-level and nested profiles."""
    path = layer_paths[(False, False)]
    write_json(
        path,
        {
            "profiles": {
                "GoodProfile": {"type": "zosmf", "properties": {"host": "example.com"}, "secure": ["user", "password"]},
                "lpar1": {
                    "properties": {"host": "lpar1.example.com"},
                    "profiles": {
                        "GoodProfile": {"type": "zosmf", "properties": {}, "secure": ["password"]},
                        "other": {"type": "zosmf", "properties": {}, "secure": ["password"]},
                    },
                },
            },
            "defaults": {"zosmf": "GoodProfile"},
        },
    )
    return path


@pytest.fixture
def token_config(layer_paths):
    """Project layer with a base profile holding a secure token."""
    path = layer_paths[(False, False)]
    write_json(
        path,
        {
            "profiles": {
                "zosmf": {"type": "zosmf", "properties": {"port": 443}, "secure": ["password"]},
                "base": {
                    "type": "base",
                    "properties": {"host": "example.com", "tokenType": "jwtToken"},
                    "secure": ["tokenValue"],
                },
            },
            "defaults": {"zosmf": "zosmf", "base": "base"},
        },
    )
    return path


class TestSecureFilter:
    """Test limiting the secure pass to one profile."""

    def test_top_level_profile(self):
        assert SecureHandler.filter_by_profile(SECURE_PROPS, "GoodProfile") == SECURE_PROPS[:2]

    def test_nested_profile(self):
        assert SecureHandler.filter_by_profile(SECURE_PROPS, "lpar1.GoodProfile") == [SECURE_PROPS[2]]

    def test_case_insensitive(self):
        assert SecureHandler.filter_by_profile(SECURE_PROPS, "gOODpROFILE") == SECURE_PROPS[:2]

    def test_no_match_falls_back_to_all(self):
        assert SecureHandler.filter_by_profile(SECURE_PROPS, "missing") == SECURE_PROPS


class TestSecureHandler:
    """Test prompting for secure values."""

    @pytest.mark.asyncio
    async def test_prompts_for_every_secure_property(self, load_config, secure_config, vault):
        """Test each secure property is prompted for with hidden input and stored in the vault."""
        prompt = Prompter(["u1", "p1", "p2", "p3"])
        handler = SecureHandler(await load_config(), prompt)

        result = await handler.process()

        assert result.secured == SECURE_PROPS
        assert prompt.calls[0] == (f"Enter {SECURE_PROPS[0]} {SKIP_PROMPT}", True)
        assert all(hide_text for _, hide_text in prompt.calls)
        assert vault.secure_store()[str(secure_config)] == dict(zip(SECURE_PROPS, ["u1", "p1", "p2", "p3"]))
        assert "p1" not in secure_config.read_text()

    @pytest.mark.asyncio
    async def test_profile_filter(self, load_config, secure_config, vault):
        """Test only the requested profile's properties are prompted for."""
        prompt = Prompter(["p2"])
        handler = SecureHandler(await load_config(), prompt)

        result = await handler.process(profile="lpar1.GoodProfile")

        assert len(prompt.calls) == 1
        assert result.secured == [SECURE_PROPS[2]]

    @pytest.mark.asyncio
    async def test_blank_answer_skips(self, load_config, secure_config, vault):
        """Test a blank answer leaves the property unset."""
        prompt = Prompter(["", "p1"])
        handler = SecureHandler(await load_config(), prompt)

        result = await handler.process(profile="GoodProfile")

        assert result.secured == [SECURE_PROPS[1]]
        assert vault.secure_store()[str(secure_config)] == {SECURE_PROPS[1]: "p1"}

    @pytest.mark.asyncio
    async def test_values_typed_by_schema(self, load_config, layer_paths, schema, vault):
        """Test secure values are coerced to their declared type."""
        write_json(
            layer_paths[(False, False)],
            {"profiles": {"lpar1": {"type": "zosmf", "properties": {}, "secure": ["pin"]}}},
        )
        handler = SecureHandler(await load_config(), Prompter(["1234"]), schema=schema)

        await handler.process()

        assert vault.secure_store()[str(layer_paths[(False, False)])] == {"profiles.lpar1.properties.pin": 1234}

    @pytest.mark.asyncio
    async def test_token_login(self, load_config, token_config, schema, vault):
        """Test a token property is filled by logging in through the auth handler."""
        config = await load_config()
        auth = FakeAuthHandler(token_type="jwtToken")
        prompt = Prompter(["zosmf-pw", "ibmuser", "ibmpass"])
        handler = SecureHandler(
            config, prompt, auto_store=ConfigAutoStore(config, schema, {"base": [auth]}), schema=schema
        )

        result = await handler.process()

        assert result.secured == ["profiles.zosmf.properties.password", "profiles.base.properties.tokenValue"]
        assert prompt.calls[1:] == [(f"Enter user {SKIP_PROMPT}", False), (f"Enter password {SKIP_PROMPT}", True)]
        assert auth.created[0]["host"] == "example.com"
        assert auth.sessions[0]["user"] == "ibmuser"
        assert auth.sessions[0]["password"] == "ibmpass"
        assert vault.secure_store()[str(token_config)]["profiles.base.properties.tokenValue"] == "fake-token"

    @pytest.mark.asyncio
    async def test_token_login_failure_writes_nothing(self, load_config, token_config, schema, vault):
        """Test a failed login aborts the whole pass before anything is saved."""
        config = await load_config()
        auth = FakeAuthHandler(token_type="jwtToken", error=RuntimeError("bad creds"))
        handler = SecureHandler(
            config,
            Prompter(["zosmf-pw", "ibmuser", "ibmpass"]),
            auto_store=ConfigAutoStore(config, schema, {"base": [auth]}),
        )
        before = token_config.read_text()

        with pytest.raises(AuthLoginError) as exc_info:
            await handler.process()

        assert str(exc_info.value) == "Failed to fetch jwtToken for profiles.base.properties.tokenValue: bad creds"
        assert vault.saves == 0
        assert token_config.read_text() == before
        assert "password" not in config.api.profiles.get("zosmf")

    @pytest.mark.asyncio
    async def test_token_without_matching_handler_is_prompted(self, load_config, token_config, schema):
        """Test a token is prompted for like any value when no handler applies."""
        config = await load_config()
        auth = FakeAuthHandler(token_type="LtpaToken2")
        prompt = Prompter(["", "typed-token"])
        handler = SecureHandler(config, prompt, auto_store=ConfigAutoStore(config, schema, {"base": [auth]}))

        result = await handler.process()

        assert result.secured == ["profiles.base.properties.tokenValue"]
        assert auth.sessions == []

    @pytest.mark.asyncio
    async def test_requires_vault(self, load_config, secure_config):
        handler = SecureHandler(await load_config(vault=None), Prompter())

        with pytest.raises(SecureSaveError):
            await handler.process()

    @pytest.mark.asyncio
    async def test_missing_layer(self, load_config, secure_config):
        """Test securing a layer that does not exist fails."""
        handler = SecureHandler(await load_config(), Prompter())

        with pytest.raises(ConfigFileError):
            await handler.process(global_config=True)

    @pytest.mark.asyncio
    async def test_no_secure_properties(self, load_config, layer_paths, vault):
        write_json(layer_paths[(False, False)], {"profiles": {"a": {"properties": {}}}})
        prompt = Prompter()
        handler = SecureHandler(await load_config(), prompt)

        result = await handler.process()

        assert result.secured == []
        assert prompt.calls == []
        assert vault.saves == 0

    @pytest.mark.asyncio
    async def test_prune(self, load_config, secure_config, temp_dirs):
        """Test pruning drops entries of deleted config files."""
        gone = str(temp_dirs[0].parent / "gone" / "zowe.config.json")
        vault = MemoryVault({SECURE_ACCOUNT: encode_secure_store({gone: {SECURE_PROPS[0]: "old"}})})
        handler = SecureHandler(await load_config(vault=vault), Prompter(["u1"]))

        result = await handler.process(profile="GoodProfile", prune=True)

        assert result.pruned == [gone]
        assert set(vault.secure_store()) == {str(secure_config)}


class TestSetHandler:
    """Test setting single properties."""

    @pytest.fixture
    def project_config(self, layer_paths):
        path = layer_paths[(False, False)]
        write_json(
            path,
            {
                "profiles": {
                    "lpar1": {"type": "zosmf", "properties": {"host": "example.com"}, "secure": ["password"]},
                    "untyped": {"properties": {}},
                },
                "defaults": {},
            },
        )
        return path

    @pytest.mark.asyncio
    async def test_typed_value_survives_reload(self, load_config, project_config, schema):
        """Test a number property is stored as a number."""
        config = await load_config()
        handler = SetHandler(config, schema=schema)

        assert await handler.process("profiles.lpar1.properties.port", "443") == 443
        await config.reload()

        assert config.api.profiles.get("lpar1")["port"] == 443
        assert read_json(project_config)["profiles"]["lpar1"]["properties"]["port"] == 443

    @pytest.mark.asyncio
    async def test_boolean_and_string(self, load_config, project_config, schema):
        """Test only declared types are converted."""
        handler = SetHandler(await load_config(), schema=schema)

        assert await handler.process("profiles.lpar1.properties.rejectUnauthorized", "false") is False
        assert await handler.process("profiles.lpar1.properties.host", "123") == "123"
        assert await handler.process("profiles.untyped.properties.port", "443") == "443"

    @pytest.mark.asyncio
    async def test_json_value(self, load_config, project_config):
        handler = SetHandler(await load_config())

        await handler.process("profiles.untyped.properties.headers", '{"X-Id": [1, 2]}', json=True)

        assert read_json(project_config)["profiles"]["untyped"]["properties"]["headers"] == {"X-Id": [1, 2]}

    @pytest.mark.asyncio
    async def test_invalid_json_leaves_file_untouched(self, load_config, project_config):
        """Test malformed JSON is rejected before anything is written."""
        config = await load_config()
        handler = SetHandler(config)
        before = project_config.read_text()

        with pytest.raises(ConfigValidationError):
            await handler.process("profiles.untyped.properties.headers", "{bad", json=True)

        assert project_config.read_text() == before
        assert "headers" not in config.api.profiles.get("untyped")

    @pytest.mark.asyncio
    async def test_secure_by_default_when_listed(self, load_config, project_config, vault):
        """Test a property already in a secure list is stored in the vault."""
        handler = SetHandler(await load_config())

        await handler.process("profiles.lpar1.properties.password", "secret")

        assert "secret" not in project_config.read_text()
        assert vault.secure_store()[str(project_config)] == {"profiles.lpar1.properties.password": "secret"}

    @pytest.mark.asyncio
    async def test_explicit_secure(self, load_config, project_config, vault):
        handler = SetHandler(await load_config())

        await handler.process("profiles.lpar1.properties.user", "ibmuser", secure=True)

        assert read_json(project_config)["profiles"]["lpar1"]["secure"] == ["password", "user"]
        assert vault.secure_store()[str(project_config)] == {"profiles.lpar1.properties.user": "ibmuser"}

    @pytest.mark.asyncio
    async def test_prompts_when_value_missing(self, load_config, project_config, vault):
        """Test the value is prompted for, hidden for secure properties."""
        prompt = Prompter(["secret"])
        handler = SetHandler(await load_config(), prompt=prompt)

        await handler.process("profiles.lpar1.properties.password")

        assert prompt.calls == [(f"Enter profiles.lpar1.properties.password {SKIP_PROMPT}", True)]
        assert vault.secure_store()[str(project_config)] == {"profiles.lpar1.properties.password": "secret"}

    @pytest.mark.asyncio
    async def test_global_layer(self, load_config, project_config, layer_paths):
        """Test the global flags select the layer that is written."""
        handler = SetHandler(await load_config())

        await handler.process("profiles.base.properties.host", "global.example.com", global_config=True)

        assert read_json(layer_paths[(False, True)])["profiles"]["base"]["properties"]["host"] == "global.example.com"

    @pytest.mark.asyncio
    async def test_secure_without_vault(self, load_config, project_config):
        handler = SetHandler(await load_config(vault=None))

        with pytest.raises(SecureSaveError):
            await handler.process("profiles.lpar1.properties.password", "secret")
