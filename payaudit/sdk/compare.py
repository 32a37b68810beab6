"""Comparison and flagging engine.

Checks a pay statement against expected amounts, statutory payroll tax
rates, withholding estimates and its own arithmetic. Each check is a small
pure rule taking an AuditContext and returning one PayFlag or None; the
engine runs them in order and collects the flags.

Severity:
    red    - action required (material mismatch, missing entitlement, bad net math)
    yellow - advisory (small variance, payroll tax rate off, estimate variance)
    green  - verified correct

All deltas are actual - expected, so a negative delta means underpaid
(or under-withheld).
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .config import get_setting
from .paywall import build_variance_waterfall
from .schemas import (
    AuditTotals,
    ExpectedAmounts,
    LineItem,
    PayFlag,
    TaxableBases,
    TaxEstimate,
    WaterfallRow,
)

logger = logging.getLogger(__name__)

# Net pay must reconcile to the line items within one dollar. Not configurable.
NET_TOLERANCE_CENTS = 100


# =============================================================================
# Thresholds
# =============================================================================


class LineThreshold(BaseModel):
    """Tolerance policy for one expected line amount (cents)."""

    model_config = ConfigDict(extra="forbid")

    tolerance_cents: int = Field(..., ge=0, description="|delta| at or below this is correct")
    materiality_cents: int = Field(..., ge=0, description="|delta| above this is a red mismatch")
    missing_severity: str = Field(default="red", pattern="^(red|yellow)$")


class RateBand(BaseModel):
    """Statutory payroll tax rate and the acceptable effective-rate band."""

    model_config = ConfigDict(extra="forbid")

    rate: float = Field(..., gt=0, lt=1)
    low: float = Field(..., gt=0, lt=1)
    high: float = Field(..., gt=0, lt=1)


def _default_line_thresholds() -> Dict[str, LineThreshold]:
    return {
        "BASEPAY": LineThreshold(tolerance_cents=1000, materiality_cents=1000),
        "BAH": LineThreshold(tolerance_cents=500, materiality_cents=10000),
        "BAS": LineThreshold(tolerance_cents=50, materiality_cents=10000),
        "COLA": LineThreshold(tolerance_cents=500, materiality_cents=10000, missing_severity="yellow"),
        "TSP": LineThreshold(tolerance_cents=100, materiality_cents=5000, missing_severity="yellow"),
        "SGLI": LineThreshold(tolerance_cents=100, materiality_cents=2000, missing_severity="yellow"),
        "DENTAL": LineThreshold(tolerance_cents=500, materiality_cents=5000, missing_severity="yellow"),
    }


class AuditThresholds(BaseModel):
    """Every policy cutoff the engine uses. Overridable via settings.json."""

    model_config = ConfigDict(extra="forbid")

    lines: Dict[str, LineThreshold] = Field(default_factory=_default_line_thresholds)
    special_pay: LineThreshold = Field(
        default_factory=lambda: LineThreshold(tolerance_cents=500, materiality_cents=10000),
    )
    fica: RateBand = Field(default_factory=lambda: RateBand(rate=0.062, low=0.061, high=0.063))
    medicare: RateBand = Field(default_factory=lambda: RateBand(rate=0.0145, low=0.014, high=0.015))
    tax_variance_cents: int = Field(default=5000, ge=0)
    czte_fed_threshold_cents: int = Field(default=1000, ge=0)

    def for_line(self, code: str) -> LineThreshold:
        return self.lines.get(code, self.special_pay)


def _deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def merge_thresholds(overrides: dict) -> AuditThresholds:
    """Default thresholds with a partial override applied on top."""
    if not overrides:
        return AuditThresholds()
    return AuditThresholds.model_validate(_deep_merge(AuditThresholds().model_dump(), overrides))


def load_audit_thresholds() -> AuditThresholds:
    """Default thresholds with settings.json "thresholds" merged on top."""
    return merge_thresholds(get_setting("thresholds") or {})


# =============================================================================
# Context and result
# =============================================================================


@dataclass
class AuditContext:
    """Everything a rule may inspect. Built once per comparison."""

    expected: ExpectedAmounts
    bases: TaxableBases
    amounts: Dict[str, int]
    totals: AuditTotals
    thresholds: AuditThresholds
    estimate: Optional[TaxEstimate] = None

    def actual(self, code: str) -> int:
        return self.amounts.get(code, 0)

    def has(self, code: str) -> bool:
        return self.amounts.get(code, 0) > 0


@dataclass
class ComparisonResult:
    """Output of compare_detailed()."""

    flags: List[PayFlag]
    totals: AuditTotals
    waterfall: List[WaterfallRow] = field(default_factory=list)
    math_proof: str = ""


Rule = Callable[[AuditContext], Optional[PayFlag]]


def format_cents(cents: int) -> str:
    """Format cents as dollars, e.g. 350000 -> '$3,500.00'."""
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) / 100:,.2f}"


def format_delta(cents: int) -> str:
    """Signed dollar delta, e.g. -1250 -> '-$12.50'."""
    return f"+{format_cents(cents)}" if cents >= 0 else format_cents(cents)


# =============================================================================
# Expected line rules
# =============================================================================


REF_URLS = {
    "BASEPAY": "https://www.dfas.mil/MilitaryMembers/payentitlements/Pay-Tables/",
    "BAH": "https://www.travel.dod.mil/Allowances/Basic-Allowance-for-Housing/",
    "BAS": "https://www.dfas.mil/MilitaryMembers/payentitlements/Pay-Tables/BAS/",
    "COLA": "https://www.travel.dod.mil/Allowances/Overseas-Cost-of-Living-Allowance/",
    "TSP": "https://www.tsp.gov",
    "SGLI": "https://www.benefits.va.gov/insurance/sgli.asp",
    "FICA": "https://www.irs.gov/taxtopics/tc751",
    "MEDICARE": "https://www.irs.gov/taxtopics/tc751",
    "FITW": "https://www.irs.gov/individuals/tax-withholding-estimator",
    "CZTE": "https://www.irs.gov/publications/p3",
}

SUGGESTIONS = {
    "BASEPAY": "Verify your rank and years of service in DJMS. A recent promotion may not be reflected yet.",
    "BAH": "Verify your duty station (MHA) and dependent status in DEERS/DJMS. A PCS month can prorate BAH.",
    "BAS": "BAS rates are standard for officer and enlisted. Verify your rank category is correct.",
    "COLA": "COLA rates change periodically. Verify your duty location still qualifies.",
    "TSP": "Verify your TSP election percentage in myPay. Changes can take 1-2 pay periods to apply.",
    "SGLI": "Verify your SGLI coverage amount in myPay. Premiums adjust the period after a change.",
    "DENTAL": "Dental premiums vary by plan and family size. Verify your TRICARE Dental enrollment.",
}


def _expected_for(expected: ExpectedAmounts, code: str) -> Optional[int]:
    field_by_code = {
        "BASEPAY": expected.base_pay_cents,
        "BAH": expected.bah_cents,
        "BAS": expected.bas_cents,
        "COLA": expected.cola_cents,
        "TSP": expected.tsp_cents,
        "SGLI": expected.sgli_cents,
        "DENTAL": expected.dental_cents,
    }
    if code in field_by_code:
        return field_by_code[code]
    for special in expected.specials:
        if special.code == code:
            return special.cents
    return None


def expected_line_rule(code: str) -> Rule:
    """Build the tolerance rule comparing one line code to its expected amount."""

    def rule(ctx: AuditContext) -> Optional[PayFlag]:
        expected = _expected_for(ctx.expected, code)
        if not expected:
            return None

        policy = ctx.thresholds.for_line(code)
        suggestion = SUGGESTIONS.get(code, f"Verify your {code} entitlement and rate with your finance office.")
        ref_url = REF_URLS.get(code)

        if not ctx.has(code):
            return PayFlag(
                severity=policy.missing_severity,
                flag_code=f"{code}_MISSING",
                message=f"{code} not found on statement. Expected {format_cents(expected)}.",
                delta_cents=-expected,
                suggestion=suggestion,
                ref_url=ref_url,
            )

        actual = ctx.actual(code)
        delta = actual - expected
        if abs(delta) <= policy.tolerance_cents:
            return PayFlag(
                severity="green",
                flag_code=f"{code}_CORRECT",
                message=f"{code} verified: {format_cents(actual)}.",
                delta_cents=delta,
            )

        message = (
            f"{code} received {format_cents(actual)}, expected {format_cents(expected)}. "
            f"Delta: {format_delta(delta)}."
        )
        if abs(delta) <= policy.materiality_cents:
            return PayFlag(
                severity="yellow", flag_code=f"{code}_PARTIAL_OR_DIFF", message=message,
                delta_cents=delta, suggestion=suggestion, ref_url=ref_url,
            )
        return PayFlag(
            severity="red", flag_code=f"{code}_MISMATCH", message=message,
            delta_cents=delta, suggestion=suggestion, ref_url=ref_url,
        )

    rule.__name__ = f"check_{code.lower()}"
    return rule


def check_cola_unexpected(ctx: AuditContext) -> Optional[PayFlag]:
    """COLA paid where the reference says the location gets none."""
    if ctx.expected.cola_cents != 0 or not ctx.has("COLA"):
        return None
    actual = ctx.actual("COLA")
    return PayFlag(
        severity="yellow",
        flag_code="COLA_UNEXPECTED",
        message=f"COLA of {format_cents(actual)} received but none expected for this location.",
        delta_cents=actual,
        suggestion=(
            "Verify your duty station code in DJMS. If the location does not qualify, "
            "notify finance to avoid a future debt."
        ),
        ref_url=REF_URLS["COLA"],
    )


# =============================================================================
# Payroll tax rate rules
# =============================================================================


def _rate_rule(code: str, label: str, base_attr: str, band_attr: str) -> Rule:

    def rule(ctx: AuditContext) -> Optional[PayFlag]:
        base = getattr(ctx.bases, base_attr)
        actual = ctx.actual(code)
        if base <= 0 or actual <= 0:
            return None

        band = getattr(ctx.thresholds, band_attr)
        effective = Decimal(actual) / Decimal(base)
        pct = f"{effective * 100:.2f}%"
        statutory = f"{band.rate * 100:g}%"

        if Decimal(str(band.low)) <= effective <= Decimal(str(band.high)):
            return PayFlag(
                severity="green",
                flag_code=f"{code}_PCT_CORRECT",
                message=f"{label} verified: {format_cents(actual)} is {pct} of taxable pay (statutory {statutory}).",
            )

        expected = int((Decimal(base) * Decimal(str(band.rate))).to_integral_value(rounding=ROUND_HALF_UP))
        return PayFlag(
            severity="yellow",
            flag_code=f"{code}_PCT_OUT_OF_RANGE",
            message=f"{label} is {pct} of taxable pay, expected about {statutory}.",
            delta_cents=actual - expected,
            suggestion=(
                f"{label} should be {statutory} of {label}-taxable pay (BAH and BAS are excluded). "
                "Annual wage caps or retroactive adjustments can move the effective rate."
            ),
            ref_url=REF_URLS[code],
        )

    rule.__name__ = f"check_{code.lower()}_rate"
    return rule


check_fica_rate = _rate_rule("FICA", "Social Security", "oasdi", "fica")
check_medicare_rate = _rate_rule("MEDICARE", "Medicare", "medicare", "medicare")


# =============================================================================
# Withholding estimate rules
# =============================================================================


def _withholding_rule(code: str, label: str, flag_code: str, estimate_attr: str) -> Rule:

    def rule(ctx: AuditContext) -> Optional[PayFlag]:
        if ctx.estimate is None or ctx.estimate.confidence == "low":
            return None
        estimated = getattr(ctx.estimate, estimate_attr)
        actual = ctx.actual(code)
        delta = actual - estimated
        if abs(delta) <= ctx.thresholds.tax_variance_cents:
            return None
        direction = "under-withheld" if delta < 0 else "over-withheld"
        return PayFlag(
            severity="yellow",
            flag_code=flag_code,
            message=(
                f"{label} withheld {format_cents(actual)}, estimated {format_cents(estimated)}: "
                f"{direction} by {format_cents(abs(delta))}."
            ),
            delta_cents=delta,
            suggestion=(
                "This is a rough estimate. Withholding depends on your W-4 and year-to-date "
                "earnings; verify with the IRS withholding estimator before acting."
            ),
            ref_url=REF_URLS["FITW"],
        )

    rule.__name__ = f"check_{code.lower()}_variance"
    return rule


check_federal_withholding = _withholding_rule("FITW", "Federal tax", "FEDERAL_TAX_VARIANCE", "federal_tax_cents")
check_state_withholding = _withholding_rule("SITW", "State tax", "STATE_TAX_VARIANCE", "state_tax_cents")


def check_czte(ctx: AuditContext) -> Optional[PayFlag]:
    """Near-zero federal tax with payroll taxes still withheld looks like CZTE."""
    federal = ctx.actual("FITW")
    if federal >= ctx.thresholds.czte_fed_threshold_cents:
        return None
    if not (ctx.has("FICA") or ctx.has("MEDICARE")):
        return None
    return PayFlag(
        severity="green",
        flag_code="CZTE_INFO",
        message=f"Combat zone tax exclusion detected (federal tax {format_cents(federal)}).",
        suggestion=(
            "Federal income tax is excluded while Social Security and Medicare still apply. "
            "This is expected in a designated combat zone."
        ),
        ref_url=REF_URLS["CZTE"],
    )


# =============================================================================
# Net math
# =============================================================================


def check_net_math(ctx: AuditContext) -> Optional[PayFlag]:
    """Reported net pay must reconcile to the line items within the tolerance."""
    totals = ctx.totals
    if totals.actual_net is None:
        return None

    delta = totals.variance
    if abs(delta) <= NET_TOLERANCE_CENTS:
        return PayFlag(
            severity="green",
            flag_code="NET_MATH_VERIFIED",
            message=f"Net pay math verified: {format_cents(totals.actual_net)}.",
            delta_cents=delta,
        )
    return PayFlag(
        severity="red",
        flag_code="NET_MATH_MISMATCH",
        message=(
            f"Net pay does not balance: computed {format_cents(totals.computed_net)}, "
            f"reported {format_cents(totals.actual_net)} (difference {format_delta(delta)})."
        ),
        delta_cents=delta,
        suggestion=(
            "Check every line for entry errors. "
            "Net = Allowances - Taxes - Deductions - Allotments - Debts + Adjustments."
        ),
    )


# =============================================================================
# Engine
# =============================================================================


ALLOWANCE_RULE_CODES = ("BASEPAY", "BAH", "BAS", "COLA")
DEDUCTION_RULE_CODES = ("TSP", "SGLI", "DENTAL")


def build_rules(expected: ExpectedAmounts) -> List[Rule]:
    """Ordered rule list for one comparison.

    Expected special pays each get their own tolerance rule, so the list
    depends on the expected amounts.
    """
    rules: List[Rule] = [expected_line_rule(code) for code in ALLOWANCE_RULE_CODES]
    rules.append(check_cola_unexpected)
    seen = set(ALLOWANCE_RULE_CODES)
    for special in expected.specials:
        if special.code not in seen:
            seen.add(special.code)
            rules.append(expected_line_rule(special.code))
    rules.extend(expected_line_rule(code) for code in DEDUCTION_RULE_CODES)
    rules.extend([
        check_fica_rate,
        check_medicare_rate,
        check_federal_withholding,
        check_state_withholding,
        check_czte,
        check_net_math,
    ])
    return rules


def sum_by_code(lines: Iterable[LineItem]) -> Dict[str, int]:
    amounts: Dict[str, int] = {}
    for line in lines:
        amounts[line.code] = amounts.get(line.code, 0) + line.amount_cents
    return amounts


def compute_totals(lines: Iterable[LineItem], net_pay_cents: Optional[int]) -> AuditTotals:
    """Section sums and net pay reconciliation."""
    by_section = {
        "ALLOWANCE": 0, "DEDUCTION": 0, "TAX": 0,
        "ALLOTMENT": 0, "DEBT": 0, "ADJUSTMENT": 0,
    }
    for line in lines:
        by_section[line.section] += line.amount_cents

    computed = (
        by_section["ALLOWANCE"]
        - by_section["TAX"]
        - by_section["DEDUCTION"]
        - by_section["ALLOTMENT"]
        - by_section["DEBT"]
        + by_section["ADJUSTMENT"]
    )
    return AuditTotals(
        total_allowances=by_section["ALLOWANCE"],
        total_deductions=by_section["DEDUCTION"],
        total_taxes=by_section["TAX"],
        total_allotments=by_section["ALLOTMENT"],
        total_debts=by_section["DEBT"],
        total_adjustments=by_section["ADJUSTMENT"],
        computed_net=computed,
        actual_net=net_pay_cents,
        variance=None if net_pay_cents is None else net_pay_cents - computed,
    )


def build_math_proof(totals: AuditTotals) -> str:
    """Plain-text gross-to-net proof."""
    rows: List[Tuple[str, int]] = [
        ("Allowances:", totals.total_allowances),
        ("- Taxes:", totals.total_taxes),
        ("- Deductions:", totals.total_deductions),
        ("- Allotments:", totals.total_allotments),
        ("- Debts:", totals.total_debts),
        ("+ Adjustments:", totals.total_adjustments),
    ]
    lines = [f"{label:<15}{format_cents(amount):>14}" for label, amount in rows]
    lines.append("=" * 29)
    lines.append(f"{'= Net Pay:':<15}{format_cents(totals.computed_net):>14}")
    if totals.actual_net is None:
        lines.append("  (net pay not reported)")
    else:
        status = "OK" if abs(totals.variance) <= NET_TOLERANCE_CENTS else "MISMATCH"
        lines.append(f"{'Reported:':<15}{format_cents(totals.actual_net):>14}  {status}")
    return "\n".join(lines)


def compare_detailed(
    expected: Optional[ExpectedAmounts],
    taxable_bases: TaxableBases,
    actual_lines: List[LineItem],
    net_pay_cents: Optional[int],
    *,
    estimate: Optional[TaxEstimate] = None,
    thresholds: Optional[AuditThresholds] = None,
    rules: Optional[List[Rule]] = None,
) -> ComparisonResult:
    """Run every rule against a statement.

    Args:
        expected: Reference amounts (None when nothing is known)
        taxable_bases: Bases computed from actual_lines
        actual_lines: Normalized line items
        net_pay_cents: Reported net pay (None if not reported)
        estimate: Withholding estimate, enables the variance rules
        thresholds: Policy cutoffs (default: load_audit_thresholds())
        rules: Override the rule list (default: build_rules(expected))

    Returns:
        ComparisonResult with flags in rule order
    """
    expected = expected or ExpectedAmounts()
    thresholds = thresholds or load_audit_thresholds()
    totals = compute_totals(actual_lines, net_pay_cents)

    ctx = AuditContext(
        expected=expected,
        bases=taxable_bases,
        amounts=sum_by_code(actual_lines),
        totals=totals,
        thresholds=thresholds,
        estimate=estimate,
    )

    flags: List[PayFlag] = []
    for rule in rules if rules is not None else build_rules(expected):
        flag = rule(ctx)
        if flag is not None:
            logger.debug(f"{rule.__name__}: {flag.severity} {flag.flag_code}")
            flags.append(flag)

    return ComparisonResult(
        flags=flags,
        totals=totals,
        waterfall=build_variance_waterfall(totals),
        math_proof=build_math_proof(totals),
    )
