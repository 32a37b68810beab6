"""Rich renderer for pay audit results.

Transforms SDK JSON output (model_dump of an AuditResult or
MaskedAuditResult) into formatted Rich tables.
"""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


SEVERITY_STYLE = {
    "red": "bold red",
    "yellow": "yellow",
    "green": "green",
}

CONFIDENCE_STYLE = {
    "high": "green",
    "medium": "yellow",
    "low": "red",
}


def render_audit(console: Console, data: dict) -> None:
    """Render an audit result as Rich tables.

    Args:
        console: Rich Console instance
        data: Dumped AuditResult or MaskedAuditResult
    """
    confidence = data.get("confidence", "low")
    style = CONFIDENCE_STYLE.get(confidence, "dim")
    console.print(f"Confidence: [{style}]{confidence}[/{style}]")

    _render_flags(console, data.get("flags", []), data.get("hidden_flag_count", 0))
    _render_totals(console, data.get("totals", {}))

    waterfall = data.get("waterfall")
    if waterfall:
        _render_waterfall(console, waterfall)

    if data.get("masked") and not waterfall:
        console.print(Panel(
            "[dim]Exact totals, waterfall and math proof are available on the premium tier.[/dim]",
            border_style="dim",
        ))


def _render_flags(console: Console, flags: list, hidden: int) -> None:
    """Render findings table."""
    table = Table(title="Findings", box=box.ROUNDED)
    table.add_column("Severity", min_width=8)
    table.add_column("Code", style="bold", no_wrap=True)
    table.add_column("Message")
    table.add_column("Delta", justify="right")

    for flag in flags:
        severity = flag.get("severity", "")
        sev_style = SEVERITY_STYLE.get(severity, "")
        table.add_row(
            f"[{sev_style}]{severity.upper()}[/{sev_style}]" if sev_style else severity,
            flag.get("flag_code", ""),
            flag.get("message", ""),
            _fmt(flag.get("delta_cents"), signed=True),
        )

    console.print(table)
    if hidden:
        console.print(f"[dim]{hidden} more finding(s) hidden on this tier.[/dim]")


def _render_totals(console: Console, totals: dict) -> None:
    """Render totals panel."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("key", style="dim")
    table.add_column("value", justify="right")

    labels = [
        ("total_allowances", "Allowances"),
        ("total_taxes", "Taxes"),
        ("total_deductions", "Deductions"),
        ("total_allotments", "Allotments"),
        ("total_debts", "Debts"),
        ("total_adjustments", "Adjustments"),
        ("computed_net", "Computed net"),
        ("actual_net", "Reported net"),
        ("variance", "Variance"),
    ]
    for key, label in labels:
        table.add_row(label, _fmt(totals.get(key), signed=(key == "variance")))

    if "variance_bucket" in totals:
        table.add_row("Variance bucket", totals["variance_bucket"])

    console.print(Panel(table, title="Totals", border_style="dim"))


def _render_waterfall(console: Console, rows: list) -> None:
    """Render gross-to-net waterfall."""
    table = Table(title="Gross to Net", box=box.SIMPLE)
    table.add_column("", style="bold", min_width=15)
    table.add_column("Amount", justify="right", min_width=12)
    table.add_column("Running", justify="right", min_width=12)

    for row in rows:
        kind = row.get("kind")
        cents = row.get("amount_cents") or 0
        if kind == "total":
            sign = "="
        elif (kind == "add") == (cents >= 0):
            sign = "+"
        else:
            sign = "-"
        amount = f"{sign} {_fmt(abs(cents))}"
        running = _fmt(row.get("running_total_cents"))
        if kind == "total":
            table.add_row(f"[bold]{row.get('label')}[/bold]", amount, f"[bold]{running}[/bold]")
        else:
            table.add_row(row.get("label"), amount, running)

    console.print(table)


def _fmt(cents: int | None, signed: bool = False) -> str:
    """Format cents as a currency amount."""
    if cents is None:
        return "-"
    text = f"${abs(cents) / 100:,.2f}"
    if cents < 0:
        return f"-{text}"
    return f"+{text}" if signed and cents > 0 else text
