"""``github-auth``: store GitHub credentials for release repositories."""

from __future__ import annotations

import logging
from typing import Any

from buildvault.config import Config, GithubAuth, default_config_path, save_github_auth
from buildvault.constants import ExitCodes
from buildvault.errors import NotEnoughInputError

logger = logging.getLogger(__name__)


def run_github_auth(cfg: Config, args: Any) -> int:
    user = getattr(args, "USER", None)
    token = getattr(args, "TOKEN", None)
    if not user or not token:
        raise NotEnoughInputError("github-auth needs both USER and TOKEN")
    path = cfg.config_path or default_config_path()
    save_github_auth(path, GithubAuth(user=user, token=token))
    logger.info("Saved GitHub credentials for %s to %s", user, path)
    return ExitCodes.SUCCESS.value
