"""Subcommand dispatcher for clipstitch.

Usage:
    clipstitch merge  seg-1.mov seg-2.mov --output final.mp4
    clipstitch probe  seg-1.mov seg-2.mov
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="clipstitch",
        description="Merge recorded segments into one vertical video.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("merge", help="Merge and export segments")
    subparsers.add_parser("probe", help="Show segment metadata")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "merge":
        from .merge_cli import main as merge_main
        merge_main(remaining)
    elif parsed.command == "probe":
        from .probe_cli import main as probe_main
        probe_main(remaining)


if __name__ == "__main__":
    main()
