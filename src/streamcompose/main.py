"""Subcommand dispatcher for streamcompose.

Usage:
    streamcompose compose   --manifest ... --output ...
    streamcompose validate  --manifest ...
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="streamcompose",
        description="Compose live video streams through a scene graph.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Both delegate to cli.main().
    subparsers.add_parser("compose", help="Compose manifest streams into one video")
    subparsers.add_parser("validate", help="Check a manifest, its scene graph and paths")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    from .cli import main as cli_main
    if parsed.command == "validate":
        cli_main([*remaining, "--validate"])
    else:
        cli_main(remaining)


if __name__ == "__main__":
    main()
