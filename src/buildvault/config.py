"""Configuration loading for buildvault.

Configuration is resolved once at startup and handed to every command as
an immutable ``Config`` value. Precedence, lowest to highest: built-in
defaults, the YAML config file, environment variables, CLI flags.

Example ``config.yml``::

    library: ~/blender-builds
    all_platforms: false
    max_concurrency: 4
    github:
      user: octocat
      token: ghp_...
    repos:
      daily:
        url: https://builder.blender.org/download/daily/?format=json&v=1
        kind: builder_api
        nickname: Daily
        fetch_interval: 3600
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from buildvault.constants import Constants, RepoKind
from buildvault.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GithubAuth:
    """Credentials sent to GitHub-backed repositories."""
    user: str
    token: str


@dataclass(frozen=True)
class RepoConfig:
    """One configured remote repository."""
    repo_id: str
    url: str
    kind: RepoKind = RepoKind.BUILDER_API
    nickname: str = ""
    fetch_interval: timedelta = Constants.FETCH_INTERVAL

    @property
    def display_name(self) -> str:
        return self.nickname or self.repo_id

    @classmethod
    def from_dict(cls, repo_id: str, data: Dict[str, Any]) -> "RepoConfig":
        if not isinstance(data, dict) or not data.get("url"):
            raise ConfigError(f"Repository {repo_id!r} needs a 'url'")
        try:
            kind = RepoKind(data.get("kind", RepoKind.BUILDER_API.value))
        except ValueError as exc:
            raise ConfigError(
                f"Repository {repo_id!r} has unknown kind {data.get('kind')!r}"
            ) from exc
        interval = data.get("fetch_interval")
        try:
            fetch_interval = (
                timedelta(seconds=int(interval)) if interval is not None else Constants.FETCH_INTERVAL
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise ConfigError(
                f"Repository {repo_id!r} has invalid fetch_interval {interval!r}; expected seconds"
            ) from exc
        return cls(
            repo_id=repo_id,
            url=str(data["url"]),
            kind=kind,
            nickname=str(data.get("nickname") or ""),
            fetch_interval=fetch_interval,
        )


def _default_repos() -> Tuple[RepoConfig, ...]:
    return tuple(
        RepoConfig(repo_id=repo_id, url=url) for repo_id, url in Constants.DEFAULT_REPOS.items()
    )


def _xdg_dir(env_name: str, fallback: str) -> Path:
    base = os.environ.get(env_name)
    return Path(base) if base else Path.home() / fallback


def default_config_path() -> Path:
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        return Path(env_path).expanduser()
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / Constants.APP_NAME / Constants.CONFIG_FILE


def default_library_path() -> Path:
    return _xdg_dir("XDG_DATA_HOME", ".local/share") / Constants.APP_NAME / "library"


@dataclass(frozen=True)
class Config:
    """Immutable runtime configuration."""
    library: Path = field(default_factory=default_library_path)
    repo_cache: Optional[Path] = None
    repos: Tuple[RepoConfig, ...] = field(default_factory=_default_repos)
    all_platforms: bool = False
    max_concurrency: int = Constants.FETCH_MAX_CONCURRENCY
    request_timeout: int = Constants.REQUEST_TIMEOUT
    github_auth: Optional[GithubAuth] = None
    config_path: Optional[Path] = None

    @property
    def cache_dir(self) -> Path:
        return self.repo_cache or self.library / Constants.REPO_CACHE_DIR

    def repo(self, repo_id: str) -> Optional[RepoConfig]:
        for repo in self.repos:
            if repo.repo_id == repo_id:
                return repo
        return None

    def repo_path(self, repo_id: str) -> Path:
        """Folder holding the installed builds of ``repo_id``."""
        return self.library / repo_id


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Could not read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def config_from_dict(data: Dict[str, Any], config_path: Optional[Path] = None) -> Config:
    """Build a Config from a parsed YAML mapping, filling in defaults."""
    kwargs: Dict[str, Any] = {"config_path": config_path}
    if data.get("library"):
        kwargs["library"] = Path(str(data["library"])).expanduser()
    if data.get("repo_cache"):
        kwargs["repo_cache"] = Path(str(data["repo_cache"])).expanduser()
    if "all_platforms" in data:
        kwargs["all_platforms"] = bool(data["all_platforms"])
    try:
        if data.get("max_concurrency") is not None:
            kwargs["max_concurrency"] = max(1, int(data["max_concurrency"]))
        if data.get("request_timeout") is not None:
            kwargs["request_timeout"] = int(data["request_timeout"])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc

    github = data.get("github")
    if github:
        if not isinstance(github, dict) or not github.get("user") or not github.get("token"):
            raise ConfigError("'github' needs both 'user' and 'token'")
        kwargs["github_auth"] = GithubAuth(user=str(github["user"]), token=str(github["token"]))

    repos = data.get("repos")
    if repos is not None:
        if not isinstance(repos, dict):
            raise ConfigError("'repos' must be a mapping of repository ids")
        kwargs["repos"] = tuple(RepoConfig.from_dict(str(k), v) for k, v in repos.items())
    return Config(**kwargs)


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from ``path`` (or the default location).

    A missing default config file is not an error; a missing explicit one is.
    """
    explicit = path is not None
    config_path = Path(path).expanduser() if path is not None else default_config_path()
    if config_path.exists():
        logger.debug("Loading config from %s", config_path)
        cfg = config_from_dict(_read_yaml(config_path), config_path)
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")
    else:
        cfg = Config(config_path=config_path)

    env_library = os.environ.get(Constants.ENV_LIBRARY)
    if env_library:
        cfg = replace(cfg, library=Path(env_library).expanduser())
    return cfg


def apply_cli_overrides(cfg: Config, args: Any) -> Config:
    """Apply CLI flags, which take precedence over file and environment."""
    if getattr(args, "LIBRARY", None):
        cfg = replace(cfg, library=Path(args.LIBRARY).expanduser())
    if getattr(args, "ALL_PLATFORMS", False):
        cfg = replace(cfg, all_platforms=True)
    return cfg


def save_github_auth(path: Path, auth: GithubAuth) -> None:
    """Store GitHub credentials in the config file, keeping its other settings.

    The token is written in plain text.
    """
    path = Path(path)
    data = _read_yaml(path) if path.exists() else {}
    data["github"] = {"user": auth.user, "token": auth.token}
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)
