import sys

import click

from nool.cli import cli
from nool.common import NoolExpectedError


def main() -> None:
    try:
        cli(prog_name="nool")
    except NoolExpectedError as e:
        # Same stream as the notifications, so stdout only carries command output.
        click.secho(f"{e.__class__.__module__}.{e.__class__.__name__}: ", fg="red", nl=False, err=True)
        click.echo(str(e), err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
