"""Data models for build identity, queries and installed builds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Tuple, Union


class Wild(Enum):
    """Wildcard placement for a query axis."""
    ANY = "*"
    NEWEST = "^"
    OLDEST = "-"


class HashMatch(Enum):
    """How a query's build hash is compared."""
    PREFIX = "+"
    EXACT = "#"


# A version component in a query: a literal integer or a wildcard.
Component = Union[int, Wild]


class Version(NamedTuple):
    """Numeric build version, ordered lexicographically."""
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_timestamp(value: Any) -> datetime:
    """Read an ISO-8601 string or epoch seconds into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC."""
    return value.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class BuildVariant:
    """One downloadable artifact of a build for a specific platform."""
    platform: str
    arch: str
    download_url: str
    file_name: str = ""
    file_extension: str = ""
    file_size: Optional[int] = None
    checksum: Optional[str] = None
    checksum_url: Optional[str] = None

    def __str__(self) -> str:
        ext = f" (.{self.file_extension})" if self.file_extension else ""
        return f"{self.platform}-{self.arch}{ext}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "arch": self.arch,
            "download_url": self.download_url,
            "file_name": self.file_name,
            "file_extension": self.file_extension,
            "file_size": self.file_size,
            "checksum": self.checksum,
            "checksum_url": self.checksum_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildVariant":
        return cls(
            platform=data["platform"],
            arch=data["arch"],
            download_url=data["download_url"],
            file_name=data.get("file_name") or "",
            file_extension=data.get("file_extension") or "",
            file_size=data.get("file_size"),
            checksum=data.get("checksum"),
            checksum_url=data.get("checksum_url"),
        )


@dataclass(frozen=True)
class BuildRecord:
    """Identity of one remote build.

    ``(repo, build_hash)`` is unique: artifacts of the same commit for
    different platforms are carried as ``variants`` of a single record.
    """
    repo: str
    version: Version
    build_hash: str
    commit_time: datetime
    branch: Optional[str] = None
    variants: Tuple[BuildVariant, ...] = field(default_factory=tuple)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.repo, self.build_hash)

    def to_query(self, with_repo: bool = True) -> "Query":
        """Exact query that selects this record and nothing else in its repo."""
        return Query(
            repo=self.repo if with_repo else None,
            major=self.version.major,
            minor=self.version.minor,
            patch=self.version.patch,
            branch=self.branch,
            build_hash=self.build_hash,
            hash_match=HashMatch.EXACT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "version": str(self.version),
            "branch": self.branch,
            "hash": self.build_hash,
            "commit_time": format_timestamp(self.commit_time),
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildRecord":
        major, minor, patch = (int(p) for p in str(data["version"]).split("."))
        return cls(
            repo=data["repo"],
            version=Version(major, minor, patch),
            build_hash=data["hash"],
            commit_time=parse_timestamp(data["commit_time"]),
            branch=data.get("branch"),
            variants=tuple(BuildVariant.from_dict(v) for v in data.get("variants") or []),
        )


@dataclass(frozen=True)
class Query:
    """Filter over BuildRecord fields produced by the query parser.

    ``None`` for ``repo``/``branch``/``build_hash`` means "no constraint".
    ``commit_time`` is always a wildcard; the grammar has no literal timestamps.
    """
    repo: Optional[str] = None
    major: Component = Wild.ANY
    minor: Component = Wild.ANY
    patch: Component = Wild.ANY
    branch: Optional[str] = None
    build_hash: Optional[str] = None
    hash_match: HashMatch = HashMatch.EXACT
    commit_time: Wild = Wild.ANY

    @property
    def components(self) -> Tuple[Component, Component, Component]:
        return (self.major, self.minor, self.patch)

    def with_commit_time(self, commit_time: Wild) -> "Query":
        return Query(
            repo=self.repo,
            major=self.major,
            minor=self.minor,
            patch=self.patch,
            branch=self.branch,
            build_hash=self.build_hash,
            hash_match=self.hash_match,
            commit_time=commit_time,
        )

    def __str__(self) -> str:
        def comp(c: Component) -> str:
            return c.value if isinstance(c, Wild) else str(c)

        text = ".".join(comp(c) for c in self.components)
        if self.repo:
            text = f"{self.repo}/{text}"
        if self.branch:
            text += f"-{self.branch}"
        if self.build_hash:
            text += f"{self.hash_match.value}{self.build_hash}"
        if self.commit_time is not Wild.ANY:
            text += f"@{self.commit_time.value}"
        return text


@dataclass
class InstallRecord:
    """Join between a build hash and its folder in the library.

    ``build`` is a snapshot taken at install time so the build stays
    listable after it disappears from the remote catalog.
    """
    build_hash: str
    install_path: Path
    installed_at: datetime
    build: BuildRecord
    variant: Optional[BuildVariant] = None

    @property
    def repo(self) -> str:
        return self.build.repo

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.build_hash,
            "install_path": str(self.install_path),
            "installed_at": format_timestamp(self.installed_at),
            "build": self.build.to_dict(),
            "variant": self.variant.to_dict() if self.variant else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstallRecord":
        variant = data.get("variant")
        return cls(
            build_hash=data["hash"],
            install_path=Path(data["install_path"]),
            installed_at=parse_timestamp(data["installed_at"]),
            build=BuildRecord.from_dict(data["build"]),
            variant=BuildVariant.from_dict(variant) if variant else None,
        )
