"""Tests for the MCP server tools.

Tools are plain async functions under the FastMCP decorator, so they are
called directly with every argument passed explicitly.
"""

import asyncio
import inspect

import pytest

pytest.importorskip("mcp")

from payaudit.mcp.server import audit_pay_statement, normalize_codes  # noqa: E402
from payaudit.sdk.config import set_setting  # noqa: E402


LINES = [
    {"code": "BASEPAY", "amount_cents": 350000, "section": "ALLOWANCE"},
    {"code": "BAH", "amount_cents": 150000, "section": "ALLOWANCE"},
    {"code": "FITW", "amount_cents": 25417, "section": "TAX"},
    {"code": "FICA", "amount_cents": 21700, "section": "TAX"},
    {"code": "MEDICARE", "amount_cents": 5075, "section": "TAX"},
]


def audit(**overrides):
    kwargs = dict(lines=LINES, net_pay_cents=447808, expected={"bah_cents": 180000}, filer=None)
    kwargs.update(overrides)
    return asyncio.run(audit_pay_statement(**kwargs))


class TestAuditPayStatement:

    def test_defaults_to_free_tier(self):
        result = audit()

        assert result["masked"] is True
        assert result["flags"][0]["flag_code"] == "BAH_MISMATCH"
        assert result["totals"]["computed_net"] is None
        assert result["totals"]["variance_bucket"] == "0-5"
        assert result["waterfall"] is None
        assert result["math_proof"] is None
        assert all(f["delta_cents"] is None for f in result["flags"])

    def test_server_default_tier(self):
        set_setting("default_tier", "premium")

        result = audit()

        assert result["masked"] is False
        assert result["totals"]["computed_net"] == 447808
        assert result["math_proof"]

    def test_caller_cannot_pick_tier(self):
        assert "tier" not in inspect.signature(audit_pay_statement).parameters

        with pytest.raises(TypeError):
            audit(tier="staff")

    def test_unknown_default_tier_masks(self):
        set_setting("default_tier", "gold")

        result = audit()

        assert result["masked"] is True
        assert result["totals"]["computed_net"] is None

    def test_full_result_not_returned(self):
        result = audit()

        assert "bases" not in result
        assert "tax_estimate" not in result

    def test_malformed_request(self):
        result = audit(lines=[{"code": "BAH", "amount_cents": 1.5, "section": "ALLOWANCE"}])

        assert "error" in result
        assert "Invalid audit request" in result["error"]


class TestNormalizeCodes:

    def test_mixed(self):
        result = asyncio.run(normalize_codes(codes=["SOC SEC", "Whatever"]))

        assert result["count"] == 2
        assert result["codes"] == [
            {"raw": "SOC SEC", "code": "FICA", "recognized": True},
            {"raw": "Whatever", "code": "OTHER", "recognized": False},
        ]
