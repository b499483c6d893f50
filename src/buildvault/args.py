"""Argument parsing for buildvault."""

import argparse

from buildvault import __version__
from buildvault.constants import Constants, LsFormat, SortFormat

RUN_MODES = ("build", "file")


def _add_fetch(subparsers):
    parser = subparsers.add_parser(
        "fetch",
        help="Refresh the build lists of the configured repositories",
    )
    parser.add_argument("-f", "--force",
                        dest="FORCE",
                        help="Fetch even when the cached list is still fresh",
                        action="store_true")
    parser.add_argument("-p", "--parallel",
                        dest="PARALLEL",
                        help="Fetch repositories concurrently instead of one after another",
                        action="store_true")
    parser.add_argument("-i", "--ignore-errors",
                        dest="IGNORE_ERRORS",
                        help="Keep fetching the remaining repositories after a failure",
                        action="store_true")


def _add_pull(subparsers):
    parser = subparsers.add_parser(
        "pull",
        help="Download and install builds matching the given queries",
        description=f"Query syntax: {Constants.QUERY_SYNTAX}",
    )
    parser.add_argument("QUERIES",
                        help="Build queries, e.g. daily/4.2.^ or 4.2#a1b2c3d4e5f6",
                        nargs="*",
                        type=str)
    parser.add_argument("-a", "--all-platforms",
                        dest="ALL_PLATFORMS",
                        help="Consider builds for every platform, not only this one",
                        action="store_true")


def _add_rm(subparsers):
    parser = subparsers.add_parser(
        "rm",
        help="Remove installed builds matching the given queries",
        description=f"Query syntax: {Constants.QUERY_SYNTAX}",
    )
    parser.add_argument("QUERIES",
                        help="Build queries matched against installed builds",
                        nargs="*",
                        type=str)
    parser.add_argument("-n", "--no-trash",
                        dest="NO_TRASH",
                        help="Delete the build folder instead of moving it to the trash",
                        action="store_true")


def _add_ls(subparsers):
    parser = subparsers.add_parser("ls", help="List known and installed builds")
    parser.add_argument("-f", "--format",
                        dest="FORMAT",
                        help="Output format (default: tree)",
                        action="store",
                        type=str.lower,
                        choices=[f.value for f in LsFormat],
                        default=LsFormat.TREE.value)
    parser.add_argument("--sort-by",
                        dest="SORT_BY",
                        help="Sort builds by version or by commit time (default: version)",
                        action="store",
                        type=str.lower,
                        choices=[s.value for s in SortFormat],
                        default=SortFormat.VERSION.value)
    parser.add_argument("-i", "--installed-only",
                        dest="INSTALLED_ONLY",
                        help="Only show installed builds",
                        action="store_true")
    parser.add_argument("-v", "--variants",
                        dest="VARIANTS",
                        help="Show the downloadable artifacts of each build (tree format)",
                        action="store_true")
    parser.add_argument("-a", "--all-builds",
                        dest="ALL_BUILDS",
                        help="Show builds for every platform, not only this one",
                        action="store_true")


def _add_verify(subparsers):
    parser = subparsers.add_parser(
        "verify",
        help="Check installed build folders and repair the library index",
    )
    parser.add_argument("REPOS",
                        help="Only verify these repositories",
                        nargs="*",
                        type=str)


def _add_run(subparsers):
    parser = subparsers.add_parser(
        "run",
        help="Launch an installed build",
        usage=(
            "%(prog)s [QUERY_OR_FILE] [-- ARGS...]\n"
            "       %(prog)s build QUERY [-- ARGS...]\n"
            "       %(prog)s file PATH"
        ),
        description=f"Query syntax: {Constants.QUERY_SYNTAX}",
    )
    parser.add_argument("TARGET",
                        help="A query, a .blend file, or one of: build, file",
                        nargs="?",
                        type=str)
    parser.add_argument("ARGS",
                        help="Arguments passed to the launched build",
                        nargs=argparse.REMAINDER)


def _add_github_auth(subparsers):
    parser = subparsers.add_parser(
        "github-auth",
        help="Store GitHub credentials used for release repositories",
    )
    parser.add_argument("USER", help="GitHub user name", type=str)
    parser.add_argument("TOKEN", help="GitHub personal access token", type=str)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="buildvault",
        description="buildvault - fetch, install and launch Blender builds",
        add_help=True,
    )
    parser.add_argument("--version",
                        action="version",
                        version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to the YAML configuration file",
                        action="store",
                        type=str)
    parser.add_argument("--library",
                        dest="LIBRARY",
                        help="Library folder holding installed builds",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    subparsers = parser.add_subparsers(dest="COMMAND", metavar="COMMAND")
    _add_fetch(subparsers)
    _add_pull(subparsers)
    _add_rm(subparsers)
    _add_ls(subparsers)
    _add_verify(subparsers)
    _add_run(subparsers)
    _add_github_auth(subparsers)
    return parser


def _normalize_run(args):
    """Split ``run build QUERY ...`` and ``run file PATH`` out of the generic form."""
    args.RUN_MODE = None
    args.QUERY = None
    args.PATH = None
    extra = list(args.ARGS or [])
    if args.TARGET in RUN_MODES:
        args.RUN_MODE = args.TARGET
        value = extra.pop(0) if extra and extra[0] != "--" else None
        if args.RUN_MODE == "build":
            args.QUERY = value
        else:
            args.PATH = value
        args.TARGET = None
    args.ARGS = extra
    return args


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    args = build_parser().parse_args(argv)
    if args.COMMAND == "run":
        _normalize_run(args)
    return args
