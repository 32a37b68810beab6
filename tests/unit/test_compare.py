"""Tests for the comparison and flagging engine."""

import pytest
from pydantic import ValidationError

from payaudit.sdk.compare import (
    NET_TOLERANCE_CENTS,
    AuditThresholds,
    build_rules,
    check_net_math,
    compare_detailed,
    compute_totals,
    format_cents,
    format_delta,
    load_audit_thresholds,
    merge_thresholds,
)
from payaudit.sdk.config import set_setting
from payaudit.sdk.schemas import ExpectedAmounts, LineItem, TaxableBases, TaxEstimate


# === HELPERS ===

def line(code, cents, section="ALLOWANCE"):
    return LineItem(code=code, amount_cents=cents, section=section)


def compare(expected=None, lines=(), net=None, bases=None, estimate=None, thresholds=None):
    return compare_detailed(
        ExpectedAmounts(**(expected or {})),
        bases or TaxableBases(),
        list(lines),
        net,
        estimate=estimate,
        thresholds=thresholds or AuditThresholds(),
    )


def flag_codes(result):
    return [f.flag_code for f in result.flags]


def find_flag(result, flag_code):
    return next(f for f in result.flags if f.flag_code == flag_code)


# === EXPECTED LINES ===

class TestExpectedLines:

    def test_exact_match_is_green(self):
        result = compare({"base_pay_cents": 350000}, [line("BASEPAY", 350000)])

        flag = find_flag(result, "BASEPAY_CORRECT")
        assert flag.severity == "green"
        assert flag.delta_cents == 0

    def test_within_tolerance_is_green(self):
        result = compare({"bah_cents": 180000}, [line("BAH", 180500)])

        assert find_flag(result, "BAH_CORRECT").delta_cents == 500

    def test_small_difference_is_yellow(self):
        result = compare({"bah_cents": 180000}, [line("BAH", 175000)])

        flag = find_flag(result, "BAH_PARTIAL_OR_DIFF")
        assert flag.severity == "yellow"
        assert flag.delta_cents == -5000
        assert flag.suggestion
        assert flag.ref_url

    def test_material_difference_is_red(self):
        result = compare({"bah_cents": 180000}, [line("BAH", 150000)])

        flag = find_flag(result, "BAH_MISMATCH")
        assert flag.severity == "red"
        assert flag.delta_cents == -30000
        assert "-$300.00" in flag.message

    def test_base_pay_over_ten_dollars_is_red(self):
        result = compare({"base_pay_cents": 350000}, [line("BASEPAY", 348999)])

        assert find_flag(result, "BASEPAY_MISMATCH").severity == "red"

    def test_missing_entitlement_is_red(self):
        result = compare({"bah_cents": 180000}, [line("BASEPAY", 350000)])

        flag = find_flag(result, "BAH_MISSING")
        assert flag.severity == "red"
        assert flag.delta_cents == -180000

    def test_missing_deduction_is_yellow(self):
        result = compare({"tsp_cents": 17500}, [line("BASEPAY", 350000)])

        assert find_flag(result, "TSP_MISSING").severity == "yellow"

    def test_unknown_expected_amount_skipped(self):
        result = compare({}, [line("BASEPAY", 350000), line("BAH", 1)])

        assert flag_codes(result) == []

    def test_zero_expected_amount_skipped(self):
        result = compare({"bah_cents": 0}, [])

        assert flag_codes(result) == []

    def test_special_pay_rule(self):
        expected = {"specials": [{"code": "SDAP", "cents": 45000}]}

        assert "SDAP_CORRECT" in flag_codes(compare(expected, [line("SDAP", 45000)]))
        assert find_flag(compare(expected, []), "SDAP_MISSING").severity == "red"

    def test_duplicate_lines_summed(self):
        result = compare({"base_pay_cents": 350000}, [line("BASEPAY", 175000), line("BASEPAY", 175000)])

        assert "BASEPAY_CORRECT" in flag_codes(result)


class TestColaUnexpected:

    def test_cola_paid_when_none_expected(self):
        result = compare({"cola_cents": 0}, [line("COLA", 12000)])

        flag = find_flag(result, "COLA_UNEXPECTED")
        assert flag.severity == "yellow"
        assert flag.delta_cents == 12000

    def test_unknown_cola_not_flagged(self):
        result = compare({}, [line("COLA", 12000)])

        assert "COLA_UNEXPECTED" not in flag_codes(result)


# === PAYROLL TAX RATES ===

class TestPayrollTaxRates:

    BASES = TaxableBases(fed=350000, state=350000, oasdi=350000, medicare=350000)

    def test_statutory_rates_green(self):
        result = compare(
            lines=[line("FITW", 25417, "TAX"), line("FICA", 21700, "TAX"), line("MEDICARE", 5075, "TAX")],
            bases=self.BASES,
        )

        assert flag_codes(result) == ["FICA_PCT_CORRECT", "MEDICARE_PCT_CORRECT"]

    def test_fica_out_of_range(self):
        result = compare(lines=[line("FICA", 14000, "TAX")], bases=self.BASES)

        flag = find_flag(result, "FICA_PCT_OUT_OF_RANGE")
        assert flag.severity == "yellow"
        assert flag.delta_cents == -7700
        assert "4.00%" in flag.message

    def test_medicare_out_of_range(self):
        result = compare(lines=[line("MEDICARE", 6000, "TAX")], bases=self.BASES)

        assert find_flag(result, "MEDICARE_PCT_OUT_OF_RANGE").delta_cents == 6000 - 5075

    def test_no_base_no_check(self):
        result = compare(lines=[line("FICA", 21700, "TAX")])

        assert not any(code.startswith("FICA_PCT") for code in flag_codes(result))

    def test_no_tax_line_no_check(self):
        result = compare(lines=[line("BASEPAY", 350000)], bases=self.BASES)

        assert flag_codes(result) == []


# === WITHHOLDING ===

class TestWithholding:

    def estimate(self, federal=25417, state=0, confidence="high"):
        return TaxEstimate(
            federal_tax_cents=federal, state_tax_cents=state,
            method="estimated", confidence=confidence,
        )

    def test_close_to_estimate_no_flag(self):
        result = compare(lines=[line("FITW", 28000, "TAX")], estimate=self.estimate())

        assert flag_codes(result) == []

    def test_federal_variance(self):
        result = compare(lines=[line("FITW", 15000, "TAX")], estimate=self.estimate())

        flag = find_flag(result, "FEDERAL_TAX_VARIANCE")
        assert flag.severity == "yellow"
        assert flag.delta_cents == 15000 - 25417
        assert "under-withheld" in flag.message

    def test_state_variance(self):
        result = compare(
            lines=[line("FITW", 25417, "TAX")],
            estimate=self.estimate(state=20125),
        )

        assert find_flag(result, "STATE_TAX_VARIANCE").delta_cents == -20125

    def test_low_confidence_estimate_ignored(self):
        result = compare(lines=[line("FITW", 0, "TAX")], estimate=self.estimate(confidence="low"))

        assert "FEDERAL_TAX_VARIANCE" not in flag_codes(result)

    def test_no_estimate_no_check(self):
        result = compare(lines=[line("FITW", 99999, "TAX")])

        assert flag_codes(result) == []


class TestCzte:

    def test_detected(self):
        result = compare(lines=[line("FICA", 21700, "TAX"), line("MEDICARE", 5075, "TAX")])

        flag = find_flag(result, "CZTE_INFO")
        assert flag.severity == "green"

    def test_small_federal_tax_still_czte(self):
        result = compare(lines=[line("FITW", 999, "TAX"), line("MEDICARE", 5075, "TAX")])

        assert "CZTE_INFO" in flag_codes(result)

    def test_normal_federal_tax(self):
        result = compare(lines=[line("FITW", 1000, "TAX"), line("FICA", 21700, "TAX")])

        assert "CZTE_INFO" not in flag_codes(result)

    def test_no_payroll_taxes(self):
        result = compare(lines=[line("BASEPAY", 350000)])

        assert "CZTE_INFO" not in flag_codes(result)


# === NET MATH ===

class TestNetMath:

    LINES = [
        line("BASEPAY", 350000),
        line("BAH", 180000),
        line("FITW", 25000, "TAX"),
        line("TSP", 17500, "DEDUCTION"),
        line("ALLOT", 10000, "ALLOTMENT"),
        line("DEBT", 5000, "DEBT"),
        line("ADJ", 2500, "ADJUSTMENT"),
    ]

    def test_computed_net(self):
        totals = compute_totals(self.LINES, None)

        assert totals.computed_net == 350000 + 180000 - 25000 - 17500 - 10000 - 5000 + 2500
        assert totals.actual_net is None
        assert totals.variance is None

    def test_variance_sign(self):
        totals = compute_totals(self.LINES, 475100)

        assert totals.variance == 100

    @pytest.mark.parametrize("net,flag_code", [
        (475000, "NET_MATH_VERIFIED"),
        (475100, "NET_MATH_VERIFIED"),
        (474900, "NET_MATH_VERIFIED"),
        (475101, "NET_MATH_MISMATCH"),
        (474899, "NET_MATH_MISMATCH"),
    ])
    def test_tolerance_boundary(self, net, flag_code):
        result = compare(lines=self.LINES, net=net)

        assert flag_code in flag_codes(result)

    @pytest.mark.parametrize("net,flag_code", [
        (475100, "NET_MATH_VERIFIED"),
        (475101, "NET_MATH_MISMATCH"),
    ])
    def test_tolerance_fixed_under_settings(self, net, flag_code):
        set_setting("thresholds", {"tax_variance_cents": 0, "lines": {"BAH": {"tolerance_cents": 0}}})

        result = compare_detailed(ExpectedAmounts(), TaxableBases(), self.LINES, net)

        assert flag_code in flag_codes(result)
        assert NET_TOLERANCE_CENTS == 100

    def test_mismatch_is_red(self):
        result = compare(lines=self.LINES, net=480000)

        flag = find_flag(result, "NET_MATH_MISMATCH")
        assert flag.severity == "red"
        assert flag.delta_cents == 5000

    def test_no_reported_net_skipped(self):
        result = compare(lines=self.LINES)

        assert not any(code.startswith("NET_MATH") for code in flag_codes(result))

    def test_math_proof(self):
        result = compare(lines=self.LINES, net=475000)

        assert "$5,300.00" in result.math_proof
        assert "$4,750.00" in result.math_proof
        assert "OK" in result.math_proof

    def test_waterfall_ends_at_reported_net(self):
        result = compare(lines=self.LINES, net=475100)

        labels = [row.label for row in result.waterfall]
        assert labels[-3:] == ["Computed net", "Variance", "Reported net"]
        assert result.waterfall[-1].running_total_cents == 475100


# === ENGINE ===

class TestEngine:

    def test_rule_order(self):
        names = [rule.__name__ for rule in build_rules(ExpectedAmounts(specials=[{"code": "HFP", "cents": 22500}]))]

        assert names[:6] == [
            "check_basepay", "check_bah", "check_bas", "check_cola",
            "check_cola_unexpected", "check_hfp",
        ]
        assert names[-1] == "check_net_math"

    def test_injected_rules(self):
        result = compare_detailed(
            ExpectedAmounts(bah_cents=180000), TaxableBases(), [], 0,
            thresholds=AuditThresholds(), rules=[check_net_math],
        )

        assert flag_codes(result) == ["NET_MATH_VERIFIED"]

    def test_deterministic(self):
        args = dict(expected={"bah_cents": 180000}, lines=[line("BAH", 150000)], net=150000)

        assert compare(**args).flags == compare(**args).flags


class TestThresholds:

    def test_partial_override(self):
        thresholds = merge_thresholds({"tax_variance_cents": 0, "lines": {"BAH": {"tolerance_cents": 0}}})

        assert thresholds.tax_variance_cents == 0
        assert thresholds.for_line("BAH").tolerance_cents == 0
        assert thresholds.for_line("BAH").materiality_cents == 10000
        assert thresholds.for_line("BAS").tolerance_cents == 50

    def test_net_tolerance_not_overridable(self):
        with pytest.raises(ValidationError, match="net_tolerance_cents"):
            merge_thresholds({"net_tolerance_cents": 0})

    def test_special_pay_default(self):
        assert AuditThresholds().for_line("SDAP").materiality_cents == 10000

    def test_loaded_from_settings(self):
        set_setting("thresholds", {"tax_variance_cents": 1})

        assert load_audit_thresholds().tax_variance_cents == 1

    def test_tighter_tolerance_changes_severity(self):
        strict = merge_thresholds({"lines": {"BAH": {"tolerance_cents": 0}}})

        result = compare({"bah_cents": 180000}, [line("BAH", 180001)], thresholds=strict)

        assert "BAH_PARTIAL_OR_DIFF" in flag_codes(result)


def test_format_cents():
    assert format_cents(350000) == "$3,500.00"
    assert format_cents(-1250) == "-$12.50"
    assert format_delta(1250) == "+$12.50"
    assert format_delta(-1250) == "-$12.50"
