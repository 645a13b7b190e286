"""StackDeck command line entry point."""

from __future__ import annotations

import click

from stackdeck import __version__
from stackdeck.cli.commands.deploy import deploy


@click.group()
@click.version_option(__version__, prog_name="stackdeck")
def main() -> None:
    """StackDeck - deploy local content servers as infrastructure stand-ins."""


main.add_command(deploy)


if __name__ == "__main__":
    main()
