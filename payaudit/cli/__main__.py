"""Pay Audit CLI - Command-line interface for auditing military pay statements."""

import logging
import os

import click

from payaudit import __version__

from .audit_commands import audit_cmd, bases_cmd
from .codes_commands import codes as codes_group
from .settings_commands import settings as settings_group
from .tax_commands import tax as tax_group


@click.group()
@click.version_option(version=__version__, prog_name="pay-audit")
def cli():
    """Pay Audit - Military pay statement (LES) audit tools.

    Checks line items against expected entitlements, statutory payroll
    tax rates, withholding estimates, and net pay arithmetic.

    Configuration is loaded from (in order):

    \b
    1. PAY_AUDIT_CONFIG_PATH environment variable
    2. ~/.config/pay-audit/ (XDG default)

    Set LOG_LEVEL=DEBUG to trace each rule decision.
    """
    pass


cli.add_command(audit_cmd)
cli.add_command(bases_cmd)
cli.add_command(codes_group)
cli.add_command(tax_group)
cli.add_command(settings_group)


def main():
    """Entry point for the CLI."""
    # Configure logging based on LOG_LEVEL environment variable
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s.%(msecs)03d %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    cli()


if __name__ == "__main__":
    main()
