"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import SecretStr, ValidationError

from photo_echo.config.defaults import load_defaults, merge_configs
from photo_echo.config.models import AppConfig
from photo_echo.config.settings import EnvSettings
from photo_echo.errors import StartupError

# Matches ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")


def _resolve_env_str(value: str) -> str:
    """Replace all ${VAR} / ${VAR:-default} references in a string."""

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        if default is not None:
            return default.replace("\\}", "}")
        msg = f"Environment variable '{var_name}' is not set and no default provided"
        raise ValueError(msg)

    return _ENV_PATTERN.sub(_replace, value)


def resolve_env_vars(data: Any) -> Any:
    """Recursively resolve ${VAR} and ${VAR:-default} in parsed YAML data."""
    if isinstance(data, str):
        return _resolve_env_str(data)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML file and return its env-resolved contents as a dict."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        with p.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"Failed to parse YAML in {p}"
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            msg += f" at line {mark.line + 1}, column {mark.column + 1}"
        msg += f": {exc}"
        raise ValueError(msg) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {p}, got {type(data).__name__}"
        raise TypeError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def build_app_config(
    overrides: dict[str, Any] | None = None,
    *,
    env: EnvSettings | None = None,
) -> AppConfig:
    """Merge built-in defaults with *overrides* and fill in the credential.

    The token falls back to ``TELEGRAM_TOKEN`` (environment or ``.env``) when
    the merged config leaves it empty.
    """
    base = cast(dict[str, Any], resolve_env_vars(load_defaults("app")))
    merged = merge_configs(base, overrides or {})
    config = AppConfig.model_validate(merged)
    if config.gateway.token is None:
        settings = env if env is not None else EnvSettings()
        token = settings.telegram_token
        if token is not None and token.get_secret_value().strip():
            gateway = config.gateway.model_copy(
                update={"token": SecretStr(token.get_secret_value().strip())}
            )
            config = config.model_copy(update={"gateway": gateway})
    return config


def load_app_config(
    path: str | Path | None = None,
    *,
    env: EnvSettings | None = None,
    require_token: bool = True,
) -> AppConfig:
    """Load and validate the app config; any failure is a ``StartupError``."""
    source = str(path) if path is not None else "built-in defaults"
    try:
        overrides = load_yaml(path) if path is not None else {}
        config = build_app_config(overrides, env=env)
    except ValidationError as exc:
        msg = f"Invalid config ({source}):\n{exc}"
        raise StartupError(msg) from exc
    except (OSError, ValueError, TypeError) as exc:
        msg = f"Unable to load config ({source}): {exc}"
        raise StartupError(msg) from exc
    if require_token and config.gateway.token is None:
        msg = "Unable to get Telegram token: set TELEGRAM_TOKEN or gateway.token"
        raise StartupError(msg)
    return config
