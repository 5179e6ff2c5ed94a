"""Shared fixtures for team-config tests."""

import json
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

import pytest
from team_config import Config
from team_config import ConfigOpts
from team_config import PromptParams
from team_config.constants import SECURE_ACCOUNT
from team_config.secure import decode_secure_store

APP = "zowe"


class MemoryVault:
    """In-memory SecretVault."""

    def __init__(self, data: dict[str, str] | None = None):
        self.data = dict(data or {})
        self.saves = 0

    async def load(self, key: str) -> str | None:
        return self.data.get(key)

    async def save(self, key: str, value: str) -> None:
        self.data[key] = value
        self.saves += 1

    async def delete(self, key: str) -> None:
        if key not in self.data:
            raise KeyError(key)
        del self.data[key]

    def secure_store(self) -> dict[str, dict[str, Any]]:
        """Decoded secure values, keyed by config file path."""
        if SECURE_ACCOUNT not in self.data:
            return {}
        return decode_secure_store(self.data[SECURE_ACCOUNT])


class FailingVault(MemoryVault):
    """Vault whose load always fails."""

    async def load(self, key: str) -> str | None:
        raise RuntimeError("credential manager unavailable")


class FakeAuthHandler:
    """Auth handler returning a fixed token, or raising a given error."""

    def __init__(self, token_type: str = "jwtToken", token: str = "fake-token", error: Exception | None = None):
        self.prompt_params = PromptParams(default_token_type=token_type, service_description="Fake API")
        self.token = token
        self.error = error
        self.created: list[dict[str, Any]] = []
        self.sessions: list[dict[str, Any]] = []

    def create_sess_cfg(self, profile_props: dict[str, Any]) -> dict[str, Any]:
        self.created.append(dict(profile_props))
        return {
            "hostname": profile_props.get("host"),
            "port": profile_props.get("port"),
            "user": profile_props.get("user"),
            "password": profile_props.get("password"),
        }

    async def session_login(self, session: dict[str, Any]) -> str:
        self.sessions.append(dict(session))
        if self.error is not None:
            raise self.error
        return self.token


class Prompter:
    """Async prompt returning scripted answers and recording each call."""

    def __init__(self, answers: list[str] | None = None):
        self.answers = list(answers or [])
        self.calls: list[tuple[str, bool]] = []

    async def __call__(self, message: str, hide_text: bool = False) -> str:
        self.calls.append((message, hide_text))
        return self.answers.pop(0) if self.answers else ""


def write_json(path: Path, document: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=4))


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text())


@pytest.fixture
def temp_dirs():
    """Create temporary home and project directories."""
    with TemporaryDirectory() as tmpdir:
        root = Path(tmpdir).resolve()
        home_dir = root / "home"
        project_dir = root / "project"
        home_dir.mkdir()
        project_dir.mkdir()
        yield home_dir, project_dir


@pytest.fixture
def home_dir(temp_dirs):
    return temp_dirs[0]


@pytest.fixture
def project_dir(temp_dirs):
    return temp_dirs[1]


@pytest.fixture
def layer_paths(home_dir, project_dir):
    """Config file paths of the four layers, keyed by (user, global)."""
    return {
        (True, False): project_dir / f"{APP}.config.user.json",
        (False, False): project_dir / f"{APP}.config.json",
        (True, True): home_dir / f"{APP}.config.user.json",
        (False, True): home_dir / f"{APP}.config.json",
    }


@pytest.fixture
def vault():
    return MemoryVault()


@pytest.fixture
def load_config(home_dir, project_dir, vault):
    """Factory loading a Config over the temporary directories."""

    async def _load(**kwargs: Any) -> Config:
        kwargs.setdefault("home_dir", home_dir)
        kwargs.setdefault("project_dir", project_dir)
        kwargs.setdefault("vault", vault)
        return await Config.load(APP, ConfigOpts(**kwargs))

    return _load
