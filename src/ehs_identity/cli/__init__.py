"""CLI entry points for EHS Identity.

Provides command-line tools for:
- Duplicate detection
- Offender merging
- Statistics maintenance
"""

import sys

import click

from .. import __version__
from .duplicates import cli as duplicates_cli
from .maintenance import agencies_cli, legislation_cli
from .merge import cli as merge_cli


@click.group()
@click.version_option(version=__version__, prog_name="ehs-identity")
def main():
    """EHS Identity - identity resolution for enforcement records.

    Command-line tools for finding duplicates, merging offenders
    and maintaining offender statistics.
    """
    from ..logging import setup_logging

    setup_logging(stream=sys.stderr)


main.add_command(duplicates_cli, name="duplicates")
main.add_command(merge_cli, name="merge")
main.add_command(agencies_cli, name="agencies")
main.add_command(legislation_cli, name="legislation")


if __name__ == "__main__":
    main()
