"""Tests for subscription tier masking."""

import pytest

from payaudit.sdk.audit import audit_for_policy
from payaudit.sdk.config import set_setting
from payaudit.sdk.paywall import (
    DEFAULT_TIER_POLICIES,
    apply_audit_masking,
    build_variance_waterfall,
    get_audit_policy,
    rank_flags,
    redact_flag,
    variance_bucket,
)
from payaudit.sdk.schemas import AuditPolicy, AuditResult, AuditTotals, PayFlag


# === FIXTURES ===

def make_flag(severity, flag_code, delta=None):
    return PayFlag(severity=severity, flag_code=flag_code, message=flag_code, delta_cents=delta)


@pytest.fixture
def totals():
    return AuditTotals(
        total_allowances=576066,
        total_deductions=20600,
        total_taxes=52192,
        computed_net=503274,
        actual_net=500000,
        variance=-3274,
    )


@pytest.fixture
def full_result(totals):
    flags = [
        make_flag("green", "BASEPAY_CORRECT", 0),
        make_flag("yellow", "TSP_PARTIAL_OR_DIFF", -200),
        make_flag("red", "BAH_MISMATCH", -30000),
        make_flag("yellow", "FICA_PCT_OUT_OF_RANGE", -7700),
        make_flag("red", "NET_MATH_MISMATCH", -3274),
        make_flag("green", "CZTE_INFO"),
    ]
    return AuditResult(
        flags=flags,
        totals=totals,
        waterfall=build_variance_waterfall(totals),
        math_proof="proof",
        confidence="medium",
    )


FREE = AuditPolicy(show_exact_variance=False, max_visible_flags=3)
PREMIUM = AuditPolicy(show_exact_variance=True, max_visible_flags=None)


# === BUCKETS ===

class TestVarianceBucket:

    @pytest.mark.parametrize("cents,bucket", [
        (0, "0-5"),
        (500, "0-5"),
        (-500, "0-5"),
        (501, "5-50"),
        (5000, "5-50"),
        (-5001, ">50"),
        (10000, ">50"),
        (10001, ">100"),
        (None, "0-5"),
    ])
    def test_boundaries(self, cents, bucket):
        assert variance_bucket(cents) == bucket


# === RANKING ===

class TestRankFlags:

    def test_severity_then_delta(self, full_result):
        ranked = [f.flag_code for f in rank_flags(full_result.flags)]

        assert ranked == [
            "BAH_MISMATCH",
            "NET_MATH_MISMATCH",
            "FICA_PCT_OUT_OF_RANGE",
            "TSP_PARTIAL_OR_DIFF",
            "BASEPAY_CORRECT",
            "CZTE_INFO",
        ]

    def test_stable_for_ties(self):
        flags = [make_flag("yellow", "A", 100), make_flag("yellow", "B", -100)]

        assert [f.flag_code for f in rank_flags(flags)] == ["A", "B"]


# === MASKING ===

class TestApplyAuditMasking:

    def test_free_tier_truncates(self, full_result):
        masked = apply_audit_masking(full_result, FREE)

        assert [f.flag_code for f in masked.flags] == [
            "BAH_MISMATCH", "NET_MATH_MISMATCH", "FICA_PCT_OUT_OF_RANGE",
        ]
        assert masked.hidden_flag_count == 3
        assert masked.masked is True

    def test_free_tier_hides_exact_numbers(self, full_result):
        masked = apply_audit_masking(full_result, FREE)

        assert masked.totals.actual_net == 500000
        assert masked.totals.variance_bucket == "5-50"
        assert masked.totals.variance is None
        assert masked.totals.computed_net is None
        assert masked.totals.total_allowances is None
        assert masked.waterfall is None
        assert masked.math_proof is None
        assert masked.confidence == "medium"

    def test_full_access_passes_through(self, full_result):
        masked = apply_audit_masking(full_result, PREMIUM)

        assert masked.flags == full_result.flags
        assert masked.hidden_flag_count == 0
        assert masked.totals.variance == -3274
        assert masked.totals.variance_bucket == "5-50"
        assert masked.waterfall == full_result.waterfall
        assert masked.math_proof == "proof"
        assert masked.masked is False

    def test_exact_variance_with_flag_cap(self, full_result):
        policy = AuditPolicy(show_exact_variance=True, max_visible_flags=1)

        masked = apply_audit_masking(full_result, policy)

        assert [f.flag_code for f in masked.flags] == ["BAH_MISMATCH"]
        assert masked.totals.variance == -3274
        assert masked.waterfall is not None
        assert masked.masked is True

    def test_zero_flag_cap(self, full_result):
        masked = apply_audit_masking(full_result, AuditPolicy(show_exact_variance=False, max_visible_flags=0))

        assert masked.flags == []
        assert masked.hidden_flag_count == 6

    @pytest.mark.parametrize("n_flags", [0, 1, 3, 7])
    @pytest.mark.parametrize("cap", [0, 2, 3, 10])
    def test_visible_plus_hidden_is_total(self, totals, n_flags, cap):
        result = AuditResult(
            flags=[make_flag("yellow", f"F{i}", i) for i in range(n_flags)],
            totals=totals, waterfall=[], math_proof="", confidence="high",
        )

        masked = apply_audit_masking(result, AuditPolicy(show_exact_variance=False, max_visible_flags=cap))

        assert len(masked.flags) == min(n_flags, cap)
        assert len(masked.flags) + masked.hidden_flag_count == n_flags

    def test_does_not_modify_input(self, full_result):
        before = full_result.model_dump()

        apply_audit_masking(full_result, FREE)

        assert full_result.model_dump() == before

    def test_masked_result_never_serializes_exact_amounts(self, full_result):
        payload = apply_audit_masking(full_result, FREE).model_dump_json()

        assert "503274" not in payload
        assert "3274" not in payload
        assert "30000" not in payload
        assert "Computed net" not in payload

    def test_free_tier_redacts_flags(self, full_result):
        masked = apply_audit_masking(full_result, FREE)

        assert [f.severity for f in masked.flags] == ["red", "red", "yellow"]
        assert all(f.delta_cents is None for f in masked.flags)
        assert masked.flags[0].message == (
            "Action needed (difference over $100). Exact amounts are not shown on this tier."
        )
        assert masked.flags[1].message.startswith("Action needed (difference $5 to $50)")

    def test_exact_tier_keeps_flag_amounts(self, full_result):
        policy = AuditPolicy(show_exact_variance=True, max_visible_flags=3)

        masked = apply_audit_masking(full_result, policy)

        assert [f.delta_cents for f in masked.flags] == [-30000, -3274, -7700]


class TestRedactFlag:

    def test_keeps_code_severity_and_suggestion(self):
        flag = PayFlag(
            severity="yellow", flag_code="TSP_PARTIAL_OR_DIFF",
            message="TSP received $170.00, expected $175.00 (difference -$5.00).",
            delta_cents=-500, suggestion="Check your TSP election.",
        )

        redacted = redact_flag(flag)

        assert redacted.flag_code == "TSP_PARTIAL_OR_DIFF"
        assert redacted.severity == "yellow"
        assert redacted.suggestion == "Check your TSP election."
        assert redacted.delta_cents is None
        assert redacted.message.startswith("Review suggested (difference up to $5)")
        assert flag.delta_cents == -500

    def test_no_delta(self):
        flag = PayFlag(
            severity="green", flag_code="CZTE_INFO",
            message="Combat zone tax exclusion detected (federal tax $0.00).",
        )

        assert redact_flag(flag).message == "Verified. Exact amounts are not shown on this tier."

    def test_unknown_code_message_kept(self):
        flag = PayFlag(
            severity="yellow", flag_code="UNKNOWN_CODE",
            message="Unrecognized line code 'MYSTERY' was treated as OTHER.",
        )

        assert redact_flag(flag) == flag


# === END TO END ===

class TestAuditForPolicy:

    @pytest.fixture
    def unbalanced(self):
        """Net pay reported $250.00 short of what the lines add up to."""
        return {
            "lines": [
                {"code": "BASEPAY", "amount_cents": 350000, "section": "ALLOWANCE"},
                {"code": "FITW", "amount_cents": 25000, "section": "TAX"},
            ],
            "net_pay_cents": 300000,
        }

    def test_free_tier_hides_net_variance(self, unbalanced):
        masked = audit_for_policy(unbalanced, FREE)
        flag = next(f for f in masked.flags if f.flag_code == "NET_MATH_MISMATCH")

        assert flag.severity == "red"
        assert flag.delta_cents is None
        assert "over $100" in flag.message
        assert masked.totals.actual_net == 300000
        assert masked.totals.variance_bucket == ">100"

        payload = masked.model_dump_json()
        assert "25000" not in payload
        assert "3,250.00" not in payload
        assert "250.00" not in payload

    def test_premium_tier_shows_net_variance(self, unbalanced):
        result = audit_for_policy(unbalanced, PREMIUM)
        flag = next(f for f in result.flags if f.flag_code == "NET_MATH_MISMATCH")

        assert flag.delta_cents == -25000
        assert "$3,250.00" in flag.message


# === WATERFALL ===

class TestWaterfall:

    def test_rows(self, totals):
        rows = build_variance_waterfall(totals)

        assert [r.label for r in rows] == [
            "Allowances", "Taxes", "Deductions", "Allotments", "Debts", "Adjustments",
            "Computed net", "Variance", "Reported net",
        ]
        assert rows[5].running_total_cents == 503274
        assert rows[-2].amount_cents == -3274
        assert rows[-1].running_total_cents == 500000

    def test_no_reported_net(self):
        rows = build_variance_waterfall(AuditTotals(total_allowances=1000, computed_net=1000))

        assert rows[-1].label == "Computed net"


# === POLICY RESOLUTION ===

class TestGetAuditPolicy:

    def test_default_is_free(self):
        assert get_audit_policy() == DEFAULT_TIER_POLICIES["free"]

    def test_premium(self):
        assert get_audit_policy("premium").is_full_access

    def test_unknown_tier_is_free(self):
        assert get_audit_policy("platinum") == DEFAULT_TIER_POLICIES["free"]

    def test_default_tier_setting(self):
        set_setting("default_tier", "staff")

        assert get_audit_policy().is_full_access

    def test_tier_policy_override(self):
        set_setting("tier_policies", {"free": {"show_exact_variance": False, "max_visible_flags": 5}})

        assert get_audit_policy("free").max_visible_flags == 5
