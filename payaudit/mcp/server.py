"""Pay Audit MCP Server - FastMCP implementation for pay audit tools."""

import logging
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from payaudit.sdk import (
    MalformedInputError,
    TaxRulesNotFoundError,
    audit_for_policy,
    get_audit_policy,
    validate_and_normalize_code,
)

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("pay-audit")


# --- Tools ---

@mcp.tool()
async def audit_pay_statement(
    lines: list[dict] = Field(description="Line items: [{code, amount_cents, section}] with integer cents"),
    net_pay_cents: int | None = Field(default=None, description="Reported net pay in cents"),
    expected: dict | None = Field(default=None, description="Reference amounts (base_pay_cents, bah_cents, ...)"),
    filer: dict | None = Field(default=None, description="Filer metadata: filing_status, allowances, state, czte"),
) -> dict[str, Any]:
    """Audit a military pay statement (LES). Returns findings, totals and confidence.

    The result is masked for the server's configured default_tier (free when
    unset). Callers cannot choose a tier.
    """
    request = {"lines": lines, "net_pay_cents": net_pay_cents, "expected": expected, "filer": filer}
    try:
        # Every response is masked; the full result never leaves the server
        result = audit_for_policy(request, get_audit_policy())
        return result.model_dump()
    except (MalformedInputError, TaxRulesNotFoundError) as e:
        logger.warning(f"audit_pay_statement rejected request: {e}")
        return {"error": str(e)}


@mcp.tool()
async def normalize_codes(
    codes: list[str] = Field(description="Raw line code text as printed on the statement"),
) -> dict[str, Any]:
    """Map raw LES line code text to canonical codes. Unrecognized text maps to OTHER."""
    results = []
    for raw in codes:
        normalized = validate_and_normalize_code(raw)
        results.append({
            "raw": raw,
            "code": normalized.code,
            "recognized": normalized.is_known,
        })
    return {"codes": results, "count": len(results)}


# --- Server Entry Point ---

def run_server():
    """Run the MCP server in stdio mode."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run_server()
