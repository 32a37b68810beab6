"""Audit commands: run a full audit or compute taxable bases for a statement."""

import json
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from payaudit.sdk import (
    AuditRequest,
    MalformedInputError,
    ProfileNotFoundError,
    TaxRulesNotFoundError,
    apply_audit_masking,
    audit_bases,
    get_audit_policy,
    get_setting,
    load_profile,
    parse_audit_request,
    run_audit,
)

from .renderers import render_audit


def load_request_file(path: str) -> AuditRequest:
    """Read an audit request from a JSON or YAML file.

    Raises:
        click.ClickException: If the file cannot be parsed or validated
    """
    file_path = Path(path)
    try:
        with open(file_path, "r") as f:
            if file_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise click.ClickException(f"Cannot parse {file_path}: {e}")

    if not isinstance(data, dict):
        raise click.ClickException(f"{file_path} must contain an object with a 'lines' list")

    try:
        return parse_audit_request(data)
    except MalformedInputError as e:
        raise click.ClickException(str(e))


@click.command("audit")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tier", default=None,
              help="Mask output for a subscription tier (free, premium, staff). "
                   "Default: settings 'default_tier', else unmasked.")
@click.option("--use-profile", is_flag=True,
              help="Fill filer metadata from profile.yaml when the request has none.")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Output format (default: text)")
def audit_cmd(file, tier, use_profile, output_format):
    """Audit a pay statement.

    FILE is a JSON or YAML audit request:

    \b
      lines:          [{code, amount_cents, section}, ...]
      net_pay_cents:  reported net pay (optional)
      expected:       reference amounts (optional)
      filer:          {filing_status, allowances, state, czte} (optional)

    All amounts are integer cents.

    \b
    Examples:
      pay-audit audit les-2025-01.yaml
      pay-audit audit les.json --tier free --format json
    """
    request = load_request_file(file)

    if use_profile and request.filer is None:
        try:
            profile = load_profile(require_exists=True)
        except (ProfileNotFoundError, MalformedInputError) as e:
            raise click.ClickException(str(e))
        request = request.model_copy(update={"filer": profile})

    try:
        result = run_audit(request)
    except (MalformedInputError, TaxRulesNotFoundError) as e:
        raise click.ClickException(str(e))

    tier = tier or get_setting("default_tier")
    output = apply_audit_masking(result, get_audit_policy(tier)) if tier else result

    if output_format == "json":
        click.echo(output.model_dump_json(indent=2))
        return

    render_audit(Console(), output.model_dump())
    if not tier:
        click.echo()
        click.echo(result.math_proof)


@click.command("bases")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Output format (default: text)")
def bases_cmd(file, output_format):
    """Show the four taxable bases for a pay statement.

    Only allowance lines count. BAH and BAS are in no base; combat pay
    (HFP/IDP) is in the Social Security and Medicare bases only.
    """
    request = load_request_file(file)
    bases = audit_bases(request.lines)

    if output_format == "json":
        click.echo(bases.model_dump_json(indent=2))
        return

    table = Table(title="Taxable Bases")
    table.add_column("Base")
    table.add_column("Amount", justify="right")
    for label, cents in [
        ("Federal income", bases.fed),
        ("State income", bases.state),
        ("Social Security", bases.oasdi),
        ("Medicare", bases.medicare),
    ]:
        table.add_row(label, f"${cents / 100:,.2f}")
    Console().print(table)
