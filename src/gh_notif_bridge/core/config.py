"""Account configuration loaded from YAML.

The config file names the Matrix homeserver, the bot's access token and one
entry per GitHub account to relay::

    matrix_hs_url: https://matrix.example.org
    matrix_access_token: syt_...
    accounts:
      work:
        github_token: ghp_...
        matrix_room_id: "!abc:example.org"

Every field may instead come from the environment when it is absent from
the file: `MATRIX_HS_URL`, `MATRIX_ACCESS_TOKEN`, and per account
`<ACCOUNT>_GITHUB_TOKEN` / `<ACCOUNT>_MATRIX_ROOM_ID`. The camelCase keys
used by earlier deployments (`matrixHsUrl`, `githubToken`, ...) are still
accepted in the file.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class ConfigError(ValueError):
    """Raised when the configuration is missing or unusable."""


class AccountConfig(BaseModel):
    """Settings for one GitHub account and the room it reports into."""

    model_config = ConfigDict(frozen=True)

    name: str
    github_token: str
    matrix_room_id: str


class AppConfig(BaseModel):
    """Validated application configuration."""

    model_config = ConfigDict(frozen=True)

    matrix_hs_url: str
    matrix_access_token: str
    accounts: dict[str, AccountConfig]

    @field_validator("matrix_hs_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


_APP_FIELDS: dict[str, tuple[str, ...]] = {
    "matrix_hs_url": ("matrixHsUrl",),
    "matrix_access_token": ("matrixAccessToken",),
}

_ACCOUNT_FIELDS: dict[str, tuple[str, ...]] = {
    "github_token": ("githubToken",),
    "matrix_room_id": ("matrixRoomId",),
}


def account_env_prefix(account: str) -> str:
    """Return the environment variable prefix used for an account name."""
    return re.sub(r"[^A-Za-z0-9]", "_", account).upper()


def _lookup(raw: Mapping[str, Any], field: str, legacy: tuple[str, ...]) -> Any:
    for key in (field, *legacy):
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def _fill_or_fail(
    raw: Mapping[str, Any],
    field: str,
    legacy: tuple[str, ...],
    env_name: str,
    environ: Mapping[str, str],
    *,
    account: str | None = None,
) -> str:
    value = _lookup(raw, field, legacy)
    if value is None:
        value = environ.get(env_name) or None
    if value is None:
        suffix = f" for account {account}" if account else ""
        raise ConfigError(f"{field} not found{suffix} (set it in the config file or {env_name})")
    return str(value)


def build_config(
    raw: Mapping[str, Any] | None, environ: Mapping[str, str] | None = None
) -> AppConfig:
    """Validate a parsed config mapping, filling gaps from the environment."""

    env = os.environ if environ is None else environ
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ConfigError("Config file must contain a mapping at the top level")

    values: dict[str, Any] = {
        field: _fill_or_fail(raw, field, legacy, field.upper(), env)
        for field, legacy in _APP_FIELDS.items()
    }

    raw_accounts = raw.get("accounts") or {}
    if not isinstance(raw_accounts, Mapping) or not raw_accounts:
        raise ConfigError("No accounts configured")

    accounts: dict[str, AccountConfig] = {}
    for name, raw_account in raw_accounts.items():
        name = str(name)
        raw_account = raw_account or {}
        if not isinstance(raw_account, Mapping):
            raise ConfigError(f"Account {name} must be a mapping")
        prefix = account_env_prefix(name)
        fields = {
            field: _fill_or_fail(
                raw_account, field, legacy, f"{prefix}_{field.upper()}", env, account=name
            )
            for field, legacy in _ACCOUNT_FIELDS.items()
        }
        accounts[name] = AccountConfig(name=name, **fields)

    values["accounts"] = accounts
    try:
        return AppConfig(**values)
    except ValidationError as exc:  # pragma: no cover - all fields are coerced to str above
        raise ConfigError(str(exc)) from exc


def load_config(path: str | Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Read and validate the YAML config file at ``path``."""

    config_path = Path(path)
    try:
        with config_path.open(encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file {config_path} not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {config_path} is not valid YAML: {exc}") from exc

    return build_config(raw, environ)
