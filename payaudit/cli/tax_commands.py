"""Tax estimate commands."""

import click

from payaudit.sdk import (
    MalformedInputError,
    TaxRulesNotFoundError,
    estimate_tax_withholding,
    load_tax_rules,
)
from payaudit.sdk.taxes import find_tax_rules_file


@click.group()
def tax():
    """Estimate income tax withholding.

    \b
    Commands:
      estimate  Estimate monthly federal and state withholding
      rules     Show which tax-rules file is in effect
    """
    pass


@tax.command("estimate")
@click.option("--income", "income_cents", type=int, required=True,
              help="Monthly federal taxable income in cents")
@click.option("--state-income", "state_income_cents", type=int, default=None,
              help="Monthly state taxable income in cents (default: --income)")
@click.option("--status", "filing_status", type=click.Choice(["single", "married", "head_of_household"]),
              default="single", help="Filing status (default: single)")
@click.option("--allowances", type=int, default=0, help="W-4 allowances (default: 0)")
@click.option("--state", default=None, help="Two-letter state of legal residence")
@click.option("--czte", is_flag=True, help="Combat zone tax exclusion is active")
@click.option("--year", default=None, help="Tax rules year (default: settings 'tax_year')")
@click.option("--format", "output_format", type=click.Choice(["text", "json"]), default="text",
              help="Output format (default: text)")
def tax_estimate(income_cents, state_income_cents, filing_status, allowances, state, czte, year, output_format):
    """Estimate monthly withholding.

    \b
    Examples:
      pay-audit tax estimate --income 350000 --state VA
      pay-audit tax estimate --income 500000 --status married --czte
    """
    try:
        rules = load_tax_rules(year)
        estimate = estimate_tax_withholding(
            {
                "taxable_income_cents": income_cents,
                "state_taxable_income_cents": state_income_cents,
                "filing_status": filing_status,
                "allowances": allowances,
                "state": state,
                "czte": czte,
            },
            rules=rules,
        )
    except (MalformedInputError, TaxRulesNotFoundError) as e:
        raise click.ClickException(str(e))

    if output_format == "json":
        click.echo(estimate.model_dump_json(indent=2))
        return

    click.echo(f"Tax rules:   {rules.year}")
    click.echo(f"Federal:     ${estimate.federal_tax_cents / 100:,.2f}/month")
    click.echo(f"State:       ${estimate.state_tax_cents / 100:,.2f}/month")
    click.echo(f"Method:      {estimate.method}")
    click.echo(f"Confidence:  {estimate.confidence}")


@tax.command("rules")
@click.option("--year", default=None, help="Tax year (default: settings 'tax_year')")
def tax_rules(year):
    """Show the tax-rules file used for a year."""
    try:
        rules = load_tax_rules(year)
        path = find_tax_rules_file(rules.year if year is None else year)
    except (MalformedInputError, TaxRulesNotFoundError) as e:
        raise click.ClickException(str(e))

    click.echo(f"Year:            {rules.year}")
    click.echo(f"File:            {path}")
    click.echo(f"States on file:  {len(rules.states.rates)}")
    click.echo(f"No-tax states:   {', '.join(rules.states.no_income_tax)}")
