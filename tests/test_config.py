import json

import pytest

from menuchat.config import (
    DEFAULT_BASE_URL,
    ClientConfig,
    find_config,
    load_client_config,
    read_dotenv,
    resolve_token,
)
from menuchat.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("MENUCHAT_BASE_URL", raising=False)
    monkeypatch.delenv("MENUCHAT_TOKEN", raising=False)
    monkeypatch.delenv("MY_TOKEN", raising=False)


def _write_config(tmp_path, **data):
    path = tmp_path / "menuchat.json"
    path.write_text(json.dumps(data))
    return path


# ── read_dotenv ─────────────────────────────────────────────────


def test_read_dotenv_parses_pairs(tmp_path):
    env = tmp_path / ".env"
    env.write_text('# comment\nA=1\nB="two"\n\nC=\'three\'\nnot a pair\n')
    assert read_dotenv(env) == {"A": "1", "B": "two", "C": "three"}


def test_read_dotenv_missing_file(tmp_path):
    assert read_dotenv(tmp_path / ".env") == {}


# ── resolve_token ───────────────────────────────────────────────


def test_resolve_token_literal():
    assert resolve_token("abc", None) == "abc"


def test_resolve_token_dotenv_before_environment(tmp_path, monkeypatch):
    env = tmp_path / ".env"
    env.write_text("MY_TOKEN=from-dotenv\n")
    monkeypatch.setenv("MY_TOKEN", "from-env")
    assert resolve_token("$MY_TOKEN", env) == "from-dotenv"


def test_resolve_token_falls_back_to_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("MY_TOKEN", "from-env")
    assert resolve_token("$MY_TOKEN", tmp_path / ".env") == "from-env"


def test_resolve_token_unset():
    assert resolve_token("$MY_TOKEN", None) is None
    assert resolve_token(None, None) is None


# ── token_provider ──────────────────────────────────────────────


@pytest.mark.asyncio
async def test_token_provider_rereads_on_every_call(monkeypatch):
    provide = ClientConfig(token="$MY_TOKEN").token_provider()
    monkeypatch.setenv("MY_TOKEN", "first")
    assert await provide() == "first"
    monkeypatch.setenv("MY_TOKEN", "rotated")
    assert await provide() == "rotated"


@pytest.mark.asyncio
async def test_token_provider_raises_without_token():
    provide = ClientConfig(token="$MY_TOKEN").token_provider()
    with pytest.raises(ConfigError, match="No auth token"):
        await provide()


# ── load_client_config ──────────────────────────────────────────


def test_find_config(tmp_path):
    assert find_config(tmp_path) is None
    path = _write_config(tmp_path)
    assert find_config(tmp_path) == path


def test_load_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_client_config(None)
    assert config.base_url == DEFAULT_BASE_URL
    assert config.token == "$MENUCHAT_TOKEN"
    assert config.dotenv_path == tmp_path / ".env"


def test_load_from_file(tmp_path):
    path = _write_config(tmp_path, base_url="http://menu:9000", token="$MY_TOKEN",
                         timeout=30, registry_ttl=60)
    config = load_client_config(path)
    assert config.base_url == "http://menu:9000"
    assert config.token == "$MY_TOKEN"
    assert config.timeout == 30.0
    assert config.registry_ttl == 60.0
    assert config.dotenv_path == tmp_path / ".env"


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = _write_config(tmp_path, base_url="http://menu:9000", token="literal")
    monkeypatch.setenv("MENUCHAT_BASE_URL", "http://override")
    monkeypatch.setenv("MENUCHAT_TOKEN", "env-token")
    config = load_client_config(path)
    assert config.base_url == "http://override"
    assert config.token == "$MENUCHAT_TOKEN"


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_client_config(tmp_path / "nope.json")


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "menuchat.json"
    path.write_text("{broken")
    with pytest.raises(ConfigError, match="Invalid JSON"):
        load_client_config(path)


@pytest.mark.parametrize("timeout", [0, -5, "soon"])
def test_bad_timeout_raises(tmp_path, timeout):
    path = _write_config(tmp_path, timeout=timeout)
    with pytest.raises(ConfigError):
        load_client_config(path)
