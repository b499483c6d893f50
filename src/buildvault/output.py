"""Rendering of ``ls`` listings.

Works on the repository/build entries produced by ``commands.ls.collect``
and never changes them.
"""

import json
from typing import Any, Dict, List

from buildvault.constants import LsFormat
from buildvault.versioning.models import format_timestamp

_BRANCH = "├── "
_LAST = "└── "
_PIPE = "│   "
_SPACE = "    "


def _build_label(entry) -> str:
    build = entry.build
    label = str(build.version)
    if build.branch:
        label += f"-{build.branch}"
    label += f" #{build.build_hash}  {build.commit_time:%Y-%m-%d %H:%M}"
    if entry.installed:
        label += "  [installed]"
    return label


def _repo_label(repo) -> str:
    label = repo.nickname
    if repo.nickname != repo.repo_id:
        label += f" ({repo.repo_id})"
    if not repo.known:
        label += " [unknown repository]"
    return label


def render_tree(repos: List[Any], show_variants: bool = False) -> str:
    lines: List[str] = []
    for repo in repos:
        lines.append(_repo_label(repo))
        for i, entry in enumerate(repo.builds):
            last = i == len(repo.builds) - 1
            lines.append((_LAST if last else _BRANCH) + _build_label(entry))
            if not show_variants:
                continue
            prefix = _SPACE if last else _PIPE
            variants = entry.build.variants
            for j, variant in enumerate(variants):
                marker = _LAST if j == len(variants) - 1 else _BRANCH
                lines.append(prefix + marker + str(variant))
    return "\n".join(lines)


def render_paths(repos: List[Any]) -> str:
    """One install folder per line; builds that are not installed are skipped."""
    return "\n".join(
        str(entry.install.install_path)
        for repo in repos
        for entry in repo.builds
        if entry.installed
    )


def to_data(repos: List[Any]) -> List[Dict[str, Any]]:
    data = []
    for repo in repos:
        builds = []
        for entry in repo.builds:
            item = entry.build.to_dict()
            item["installed"] = entry.installed
            if entry.installed:
                item["install_path"] = str(entry.install.install_path)
                item["installed_at"] = format_timestamp(entry.install.installed_at)
            builds.append(item)
        data.append(
            {
                "repo_id": repo.repo_id,
                "nickname": repo.nickname,
                "known": repo.known,
                "url": repo.url,
                "builds": builds,
            }
        )
    return data


def render(repos: List[Any], fmt: LsFormat, show_variants: bool = False) -> str:
    if fmt is LsFormat.TREE:
        return render_tree(repos, show_variants)
    if fmt is LsFormat.PATHS:
        return render_paths(repos)
    if fmt is LsFormat.PRETTY_JSON:
        return json.dumps(to_data(repos), ensure_ascii=False, indent=2)
    return json.dumps(to_data(repos), ensure_ascii=False)
