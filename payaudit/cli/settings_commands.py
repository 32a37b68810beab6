"""Settings CLI commands for Pay Audit.

Manages settings.json - tax year, thresholds, tier policies, profile path.
"""

import json

import click
from pydantic import ValidationError

from payaudit.sdk import (
    AuditPolicy,
    get_settings_path,
    merge_thresholds,
    load_settings,
    set_setting,
    unset_setting,
)


@click.group()
def settings():
    """Manage settings (settings.json).

    Available settings:
    - tax_year: year of tax-rules table used for estimates
    - default_tier: tier used by 'audit' when --tier is not given
    - thresholds: JSON overrides for audit thresholds
    - tier_policies: JSON overrides for tier masking policies
    - profile: path to profile.yaml
    """
    pass


@settings.command("show")
def settings_show():
    """Show current settings and their values."""
    settings_path = get_settings_path()
    current = load_settings()

    click.echo(f"Settings file: {settings_path}")
    click.echo(f"File exists: {settings_path.exists()}")
    click.echo()

    if not current:
        click.echo("No settings configured (using defaults).")
        return

    click.echo("Current settings:")
    for key, value in current.items():
        if isinstance(value, (dict, list)):
            value = json.dumps(value)
        click.echo(f"  {key}: {value}")


def _parse_value(raw: str):
    """JSON when it parses (numbers, objects), else the plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


@settings.command("set")
@click.argument("key")
@click.argument("value")
def settings_set(key, value):
    """Set KEY to VALUE. VALUE is parsed as JSON when possible.

    Examples:
        pay-audit settings set tax_year 2025
        pay-audit settings set default_tier premium
        pay-audit settings set thresholds '{"tax_variance_cents": 2500}'
    """
    parsed = _parse_value(value)

    try:
        if key == "thresholds":
            if not isinstance(parsed, dict):
                raise click.ClickException("thresholds must be a JSON object")
            merge_thresholds(parsed)
        elif key == "tier_policies":
            if not isinstance(parsed, dict):
                raise click.ClickException("tier_policies must be a JSON object of tier -> policy")
            for policy in parsed.values():
                AuditPolicy.model_validate(policy)
    except ValidationError as e:
        raise click.ClickException(f"Invalid {key}: {e}")

    set_setting(key, parsed)
    click.echo(f"Set {key}: {value}")
    click.echo(f"Saved to: {get_settings_path()}")


@settings.command("unset")
@click.argument("key")
def settings_unset(key):
    """Remove KEY from settings.json."""
    if unset_setting(key):
        click.echo(f"Cleared {key} setting.")
    else:
        click.echo(f"{key} was not set.")
