"""Constants used in the project."""

from datetime import timedelta
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    USAGE_ERROR = 2
    CONNECTION_ERROR = 3
    CANCELLED = 130


class RepoKind(Enum):
    """Kinds of remote repositories buildvault knows how to read.

    Args:
        Enum (string): Value used in configuration files.
    """

    BUILDER_API = "builder_api"
    GITHUB_RELEASES = "github_releases"


class LsFormat(Enum):
    """Output formats supported by ``ls``."""

    TREE = "tree"
    PATHS = "paths"
    JSON = "json"
    PRETTY_JSON = "pretty-json"


class SortFormat(Enum):
    """Sort keys supported by ``ls``."""

    VERSION = "version"
    DATETIME = "datetime"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    APP_NAME = "buildvault"
    BUILDER_BASE_URL = "https://builder.blender.org/download/"
    GITHUB_API_BASE = "https://api.github.com"
    DEFAULT_REPOS = {
        "daily": BUILDER_BASE_URL + "daily/?format=json&v=1",
        "experimental": BUILDER_BASE_URL + "experimental/?format=json&v=1",
        "patch": BUILDER_BASE_URL + "patch/?format=json&v=1",
    }
    FETCH_INTERVAL = timedelta(hours=1)
    FETCH_MAX_CONCURRENCY = 4
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_CHUNK_SIZE = 1024 * 64
    USER_AGENT = "buildvault/0.3"

    CONFIG_FILE = "config.yml"
    INSTALLED_INDEX_FILE = "installed.json"
    BUILD_INFO_FILE = ".build_info.json"
    REPO_CACHE_DIR = ".repos"
    PARTIAL_SUFFIX = ".part"

    ENV_CONFIG = "BUILDVAULT_CONFIG"
    ENV_LIBRARY = "BUILDVAULT_LIBRARY"
    ENV_LOG_LEVEL = "BUILDVAULT_LOG_LEVEL"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    QUERY_SYNTAX = (
        "[<repo>/]<major>.<minor>[.<patch>][-<branch>][(+ or #)<build_hash>][@<commit time>]"
    )

    # Executable to launch inside an installed build folder, keyed by platform tag.
    LAUNCH_TARGETS = {
        "linux": "blender",
        "windows": "blender.exe",
        "darwin": "Blender.app/Contents/MacOS/Blender",
    }
