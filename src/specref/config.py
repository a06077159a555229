"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for specref:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.specref/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- a single :class:`~specref.models.GlobalConfig` JSON
  file storing loader and output defaults.
* **Project config** -- an optional ``./specref.json`` whose sections
  override the global config for one repository.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  effective configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`).
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from specref.exceptions import ConfigError
from specref.models import GlobalConfig

_APP_NAME = "specref"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "specref.json"

ENV_TIMEOUT = "SPECREF_TIMEOUT"
ENV_FORMAT = "SPECREF_FORMAT"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/specref/`` (default ``~/.config/specref/``).
    On macOS/Windows: ``~/.specref/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/specref/`` (default ``~/.local/share/specref/``).
    On macOS/Windows: ``~/.specref/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~specref.models.GlobalConfig`, or a default
        instance if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./specref.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


# --- Precedence resolution ---


def resolve_config(
    cli_timeout: Optional[float] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_timeout``, ``cli_format``)
        2. Environment variables (``SPECREF_TIMEOUT``, ``SPECREF_FORMAT``)
        3. Project config (``./specref.json``)
        4. User config (``~/.config/specref/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    # 5 + 4
    data = load_global_config().model_dump(mode="json")

    # 3
    project = load_project_config()
    if project is not None:
        for section in ("loader", "output"):
            overrides = project.get(section)
            if isinstance(overrides, dict):
                data[section].update(overrides)

    # 2
    env_timeout = os.environ.get(ENV_TIMEOUT)
    if env_timeout:
        try:
            data["loader"]["timeout"] = float(env_timeout)
        except ValueError as exc:
            raise ConfigError(
                f"{ENV_TIMEOUT} must be a number of seconds, got: {env_timeout}"
            ) from exc
    env_format = os.environ.get(ENV_FORMAT)
    if env_format:
        data["output"]["format"] = env_format

    # 1
    if cli_timeout is not None:
        data["loader"]["timeout"] = cli_timeout
    if cli_format is not None:
        data["output"]["format"] = cli_format

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
