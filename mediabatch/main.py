"""Entry point for the mediabatch command."""

from __future__ import annotations

import logging
import sys

from . import cli


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
    )


def run(argv: list[str] | None = None) -> int:
    """Configure logging and hand off to the CLI."""

    argv = sys.argv[1:] if argv is None else argv
    configure_logging(verbose="--verbose" in argv)
    return cli.main(argv)


if __name__ == "__main__":
    sys.exit(run())
