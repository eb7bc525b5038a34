from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from menuchat.errors import ConfigError
from menuchat.types import ClientConfigDict

CONFIG_FILENAME = "menuchat.json"
DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 180.0
DEFAULT_REGISTRY_TTL = 30 * 60.0

TokenProvider = Callable[[], Awaitable[str]]


def read_dotenv(dotenv_path: Path) -> dict[str, str]:
    """Read a .env file and return key=value pairs as a dict."""
    env = {}
    if not dotenv_path.exists():
        return env
    for line in dotenv_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        # Strip surrounding quotes
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        env[key] = value
    return env


def find_config(cwd: Path) -> Path | None:
    path = cwd / CONFIG_FILENAME
    if path.is_file():
        return path
    return None


def resolve_token(token: str | None, dotenv_path: Path | None) -> str | None:
    """Resolve a `$VAR` token reference: .env first, then the environment."""
    if not token or not token.startswith("$"):
        return token or None
    env_var = token[1:]
    dotenv_vars = read_dotenv(dotenv_path) if dotenv_path else {}
    return dotenv_vars.get(env_var) or os.environ.get(env_var) or None


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    token: str | None = None          # literal token or "$VAR" reference
    timeout: float = DEFAULT_TIMEOUT
    registry_ttl: float = DEFAULT_REGISTRY_TTL
    dotenv_path: Path | None = None

    def token_provider(self) -> TokenProvider:
        """Return an async callable that resolves the token on every call.

        Long-lived streams must not reuse a stale credential, so `$VAR`
        references are re-read from .env / the environment each time.
        """
        token = self.token
        dotenv_path = self.dotenv_path

        async def provide() -> str:
            resolved = resolve_token(token, dotenv_path)
            if not resolved:
                raise ConfigError(
                    f"No auth token available (token reference: {token or 'unset'}). "
                    "Set MENUCHAT_TOKEN or the variable named in menuchat.json."
                )
            return resolved

        return provide


def load_client_config(config_path: Path | None = None) -> ClientConfig:
    """Load config from a JSON file (optional) with MENUCHAT_* environment overrides."""
    data: ClientConfigDict = {"base_url": DEFAULT_BASE_URL}
    dotenv_path = None
    if config_path is not None:
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
        dotenv_path = config_path.parent / ".env"
    else:
        dotenv_path = Path.cwd() / ".env"

    base_url = os.environ.get("MENUCHAT_BASE_URL") or data.get("base_url") or DEFAULT_BASE_URL
    token = data.get("token")
    if not token or os.environ.get("MENUCHAT_TOKEN"):
        token = "$MENUCHAT_TOKEN"

    try:
        timeout = float(data.get("timeout", DEFAULT_TIMEOUT))
        registry_ttl = float(data.get("registry_ttl", DEFAULT_REGISTRY_TTL))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"timeout and registry_ttl must be numbers: {e}") from e
    if timeout <= 0:
        raise ConfigError("timeout must be positive")

    return ClientConfig(
        base_url=base_url,
        token=token,
        timeout=timeout,
        registry_ttl=registry_ttl,
        dotenv_path=dotenv_path,
    )
