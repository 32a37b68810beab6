"""Line code registry commands."""

import json

import click
from rich.console import Console
from rich.table import Table

from payaudit.sdk import (
    SECTIONS,
    UnknownLineCodeError,
    get_line_code_definition,
    load_default_registry,
    validate_and_normalize_code,
)


@click.group()
def codes():
    """Look up and normalize LES line codes."""
    pass


@codes.command("normalize")
@click.argument("texts", nargs=-1, required=True)
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Output format (default: text)")
def codes_normalize(texts, output_format):
    """Map raw statement text to canonical codes.

    Unrecognized text maps to OTHER with a warning.

    \b
    Examples:
      pay-audit codes normalize "SOC SEC" "BAH W/DEP"
    """
    results = [(text, validate_and_normalize_code(text)) for text in texts]

    if output_format == "json":
        click.echo(json.dumps([
            {
                "raw": text,
                "code": r.code,
                "warning": r.warning.model_dump() if r.warning else None,
            }
            for text, r in results
        ], indent=2))
        return

    for text, r in results:
        if r.is_known:
            click.echo(f"{text} -> {r.code}")
        else:
            click.echo(f"{text} -> {r.code} " + click.style("(unrecognized)", fg="yellow"))


@codes.command("list")
@click.option("--section", type=click.Choice(SECTIONS, case_sensitive=False),
              help="Only list codes in this section")
def codes_list(section):
    """List registry codes with their taxability."""
    registry = load_default_registry()

    table = Table(title=f"Line Codes (registry {registry.version or 'unversioned'})")
    table.add_column("Code", style="bold")
    table.add_column("Section")
    table.add_column("Description")
    table.add_column("Fed", justify="center")
    table.add_column("State", justify="center")
    table.add_column("OASDI", justify="center")
    table.add_column("Medicare", justify="center")

    for code in registry.codes:
        definition = registry.get(code)
        if section and definition.section != section.upper():
            continue
        t = definition.taxability
        table.add_row(
            code,
            definition.section or "-",
            definition.description,
            *("x" if flag else "" for flag in (t.fed, t.state, t.oasdi, t.medicare)),
        )

    Console().print(table)


@codes.command("show")
@click.argument("code")
def codes_show(code):
    """Show the registry entry for a canonical CODE."""
    try:
        definition = get_line_code_definition(code.upper())
    except UnknownLineCodeError:
        raise click.ClickException(
            f"Unknown line code: {code}\n"
            f"Try: pay-audit codes normalize \"{code}\""
        )
    click.echo(json.dumps(definition.model_dump(), indent=2))
