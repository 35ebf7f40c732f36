# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.12
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/config/manager.py

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Final, Literal, Mapping, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from devbox.system.exceptions import ConfigError


# ---- Constants ----

USER_CFG: Final = "devbox.yml"

ENV_REPO_PATH: Final = "DEVBOX_REPO_PATH"
ENV_CLONE_PATH_PREFIX: Final = "DEVBOX_CLONE_PATH_PREFIX"
ENV_REPO_URL: Final = "DEVBOX_REPO_URL"

# Config field -> environment variable that supplies it
ENV_FIELDS: Final[dict[str, str]] = {
    "repo_path": ENV_REPO_PATH,
    "clone_path_prefix": ENV_CLONE_PATH_PREFIX,
    "repo_url": ENV_REPO_URL,
}

_SESSION_NAME_RE: Final = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def _get_user_config_search_paths(env: Mapping[str, str]) -> tuple[Path, ...]:
    """Get config file search paths (ordered by priority: lowest to highest)."""
    return (
        Path("/etc/devbox") / USER_CFG,
        Path.home() / ".config" / "devbox" / USER_CFG,
        Path(env.get("XDG_CONFIG_HOME", "")) / "devbox" / USER_CFG,
        Path(env.get("DEVBOX_CONFIG_HOME", "")) / USER_CFG,
    )


def _load_merged_config_data(candidates: tuple[Path, ...]) -> dict:
    """Load and merge YAML data from every candidate that exists.

    Unlike project configuration, a user config is optional: when no file is
    found the defaults apply.
    """
    merged_data = {}
    found_configs = []

    for candidate in candidates:
        # Relative candidates come from unset environment variables
        if not candidate.is_absolute() or not candidate.is_file():
            continue
        try:
            with candidate.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {candidate}: {e}")
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {candidate} must contain a mapping")
        merged_data.update(data)
        found_configs.append(str(candidate))
        logger.debug(f"Loaded config from {candidate}")

    if found_configs:
        logger.debug(f"Merged config from: {', '.join(found_configs)}")
    return merged_data


# ---- Models ----

class UserConfig(BaseModel):
    """Per-operator settings from devbox.yml."""
    image_name: str = "devbox"
    container_home: str = "/home/devbox"
    container_workdir: str = "/src"
    # Mount points of the credential pair, relative to container_home
    container_auth_dir: str = ".claude"
    container_auth_file: str = ".claude.json"
    auth_dir: Path = Field(default_factory=lambda: Path.home() / ".devbox")
    auth_file: Path = Field(default_factory=lambda: Path.home() / ".devbox.json")
    default_source_branch: str = "main"
    local_log: Optional[Path] = None
    rename_similarity: int = Field(default=90, ge=1, le=100)
    fallback_copier: Literal["auto", "rsync", "python"] = "auto"

    @field_validator("auth_dir", "auth_file", "local_log", mode="before")
    @classmethod
    def expand_user(cls, value):
        if isinstance(value, str):
            return Path(value).expanduser()
        return value


class Config(BaseModel):
    """Process-wide configuration, constructed once and passed to every component."""
    repo_path: Optional[Path] = None
    clone_path_prefix: Optional[Path] = None
    repo_url: Optional[str] = None
    user: UserConfig = Field(default_factory=UserConfig)

    @classmethod
    def load(cls, env: Mapping[str, str] | None = None) -> "Config":
        """Build the configuration from the environment and user config files.

        Args:
            env: Environment mapping (defaults to os.environ)

        Returns:
            Config with env-supplied paths and merged user settings

        Raises:
            ConfigError: If a user config file cannot be parsed or validated
        """
        if env is None:
            env = os.environ

        user_data = _load_merged_config_data(_get_user_config_search_paths(env))
        try:
            user = UserConfig(**user_data)
        except ValueError as e:
            raise ConfigError(f"Invalid user configuration: {e}")

        def _path(var: str) -> Optional[Path]:
            value = env.get(var, "").strip()
            return Path(value).expanduser() if value else None

        return cls(
            repo_path=_path(ENV_REPO_PATH),
            clone_path_prefix=_path(ENV_CLONE_PATH_PREFIX),
            repo_url=env.get(ENV_REPO_URL, "").strip() or None,
            user=user,
        )

    def require(self, *fields: str) -> None:
        """Raise ConfigError naming the environment variable of each unset field."""
        missing = [ENV_FIELDS[f] for f in fields if getattr(self, f) is None]
        if missing:
            raise ConfigError(
                f"{', '.join(missing)} environment variable{'s are' if len(missing) > 1 else ' is'} not set."
            )

    def clone_path_for(self, name: str) -> Path:
        self.require("clone_path_prefix")
        return self.clone_path_prefix / name


def validate_session_name(name: str) -> str:
    """Check that name is usable as a branch name, a container name and a directory name.

    Raises:
        ConfigError: If the name is empty or would be rejected by git or docker
    """
    if not name:
        raise ConfigError("Container name is required")
    if (
        not _SESSION_NAME_RE.match(name)
        or ".." in name
        or name.endswith(".lock")
        or name.endswith(".")
    ):
        raise ConfigError(
            f"Invalid session name '{name}'",
            recovery_hint="Use letters, digits, '.', '_' and '-', starting with a letter or digit",
        )
    return name
