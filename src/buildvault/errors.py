"""Exception hierarchy for buildvault.

Every error carries the process exit status the CLI should use when the
error ends a command. Library code raises these; only ``cli.main`` exits.
"""

from __future__ import annotations

from typing import Iterable, Optional

from buildvault.constants import Constants, ExitCodes


class BuildVaultError(Exception):
    """Base class for all buildvault errors."""

    exit_code = ExitCodes.FILE_ERROR


# Query parsing ---------------------------------------------------------------

class QueryParseError(BuildVaultError):
    """A query string does not follow the query grammar."""

    exit_code = ExitCodes.USAGE_ERROR

    def __init__(self, query: str, reason: str):
        self.query = query
        self.reason = reason
        super().__init__(
            f"Could not parse query {query!r}: {reason}\n"
            f"    Query syntax: {Constants.QUERY_SYNTAX}"
        )


class EmptyQueryError(QueryParseError):
    """The query string is empty."""

    def __init__(self, query: str = ""):
        super().__init__(query, "query is empty")


class InvalidVersionComponentError(QueryParseError):
    """A version component is neither digits nor one of ``^ * -``."""


class InvalidTimeWildcardError(QueryParseError):
    """The commit time part after ``@`` is not one of ``^ * -``."""


class MalformedHashMarkerError(QueryParseError):
    """A ``+``/``#`` hash marker is empty, repeated or holds invalid characters."""


class InvalidRepositoryError(QueryParseError):
    """The repository prefix before ``/`` is empty or malformed."""


# Fetching -------------------------------------------------------------------

class FetchError(BuildVaultError):
    """Remote metadata could not be fetched or decoded."""

    exit_code = ExitCodes.CONNECTION_ERROR

    def __init__(self, repo_id: str, reason: str, status_code: Optional[int] = None):
        self.repo_id = repo_id
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed fetching from {repo_id}: {reason}")


class DownloadError(BuildVaultError):
    """An archive download failed."""

    exit_code = ExitCodes.CONNECTION_ERROR


class ChecksumMismatchError(DownloadError):
    """A downloaded archive does not match its published checksum."""

    exit_code = ExitCodes.FILE_ERROR


# Library lifecycle ----------------------------------------------------------

class InstallError(BuildVaultError):
    """A build could not be installed into the library."""


class AlreadyInstalledError(InstallError):
    """The build hash is already installed."""


class TargetExistsError(InstallError):
    """The install folder already holds files that are not tracked."""


class ExtractError(InstallError):
    """An archive could not be extracted."""


class RemoveError(BuildVaultError):
    """An installed build could not be removed."""


class NotInstalledError(RemoveError):
    """No InstallRecord exists for the requested hash."""

    exit_code = ExitCodes.USAGE_ERROR

    def __init__(self, build_hash: str):
        self.build_hash = build_hash
        super().__init__(f"Build {build_hash} is not installed")


# Identification --------------------------------------------------------------

class IdentifyError(BuildVaultError):
    """A file could not be resolved to a build."""


class UnrecognizedFormatError(IdentifyError):
    """The file carries no readable build header."""


class NoMatchingBuildError(IdentifyError):
    """The header parsed but no known build corresponds to it."""

    exit_code = ExitCodes.USAGE_ERROR


# Command level -----------------------------------------------------------------

class MissingQueryError(BuildVaultError):
    """A command that needs at least one query got none."""

    exit_code = ExitCodes.USAGE_ERROR

    def __init__(self):
        super().__init__("No query has been given but is required")


class NotEnoughInputError(BuildVaultError):
    """The command line does not carry enough input to act on."""

    exit_code = ExitCodes.USAGE_ERROR

    def __init__(self, detail: str = "see --help for details"):
        super().__init__(f"Not enough command input, {detail}")


class QueryResultEmptyError(BuildVaultError):
    """One or more queries matched nothing."""

    exit_code = ExitCodes.USAGE_ERROR

    def __init__(self, queries: Iterable[str]):
        self.queries = list(queries)
        super().__init__(f"No matches for query(s) {', '.join(self.queries)}")


class LaunchError(BuildVaultError):
    """An installed build could not be launched."""


class ConfigError(BuildVaultError):
    """The configuration file is unreadable or invalid."""

    exit_code = ExitCodes.USAGE_ERROR
