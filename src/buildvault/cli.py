"""buildvault command line entry point.

    Returns:
        int: Exit code (via ``sys.exit``)
"""

import logging
import sys

from buildvault.args import build_parser, parse_args
from buildvault.commands.fetch import run_fetch
from buildvault.commands.github_auth import run_github_auth
from buildvault.commands.ls import run_ls
from buildvault.commands.pull import run_pull
from buildvault.commands.rm import run_rm
from buildvault.commands.run import run_run
from buildvault.commands.verify import run_verify
from buildvault.common.logging_utils import configure_logging, extra_context, is_debug_enabled
from buildvault.config import apply_cli_overrides, load_config
from buildvault.constants import ExitCodes
from buildvault.errors import BuildVaultError

logger = logging.getLogger(__name__)

COMMANDS = {
    "fetch": run_fetch,
    "pull": run_pull,
    "rm": run_rm,
    "ls": run_ls,
    "verify": run_verify,
    "run": run_run,
    "github-auth": run_github_auth,
}


def run(argv=None) -> int:
    """Parse ``argv``, run the selected command and return its exit status.

    Every failure is logged once here and mapped to its exit code.
    """
    args = parse_args(argv)
    configure_logging(getattr(args, "LOG_LEVEL", None), getattr(args, "LOG_FILE", None))

    if not args.COMMAND:
        build_parser().print_help()
        return ExitCodes.USAGE_ERROR.value

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    try:
        cfg = apply_cli_overrides(load_config(getattr(args, "CONFIG", None)), args)
        return COMMANDS[args.COMMAND](cfg, args)
    except BuildVaultError as exc:
        logger.error("%s", exc)
        return exc.exit_code.value
    except OSError as exc:
        logger.error("%s", exc)
        return ExitCodes.FILE_ERROR.value
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return ExitCodes.CANCELLED.value


def main():
    """Main function of the program."""
    sys.exit(run())


if __name__ == "__main__":
    main()
