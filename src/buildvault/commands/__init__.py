"""Command workflows behind the CLI subcommands.

Each ``run_*`` function takes the loaded Config and the parsed arguments
and returns an exit status; failures are raised as BuildVaultError.
"""
