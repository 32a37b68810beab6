"""Federal and state income tax withholding estimates.

Estimates are deliberately rough: annualize the monthly taxable figure,
apply the standard deduction and marginal brackets for the filing status,
back out W-4 allowances, and divide by twelve. Every estimate carries a
confidence level so downstream rules can ignore guesses they should not
trust.

Combat zone tax exclusion (CZTE) zeroes federal income tax only; state
treatment varies and is still estimated.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..schemas import Confidence, FilingStatus, MalformedInputError, TaxEstimate, min_confidence
from .rules import load_tax_rules
from .schemas import StateRate, TaxRules

logger = logging.getLogger(__name__)

MONTHS = 12
CENTS_PER_DOLLAR = 100

# Returns the rate for an upper-case state code, or None if unknown
StateRateLookup = Callable[[str], Optional[StateRate]]


class TaxEstimateParams(BaseModel):
    """Inputs for a monthly withholding estimate."""

    model_config = ConfigDict(extra="forbid")

    taxable_income_cents: int = Field(..., ge=0, strict=True, description="Monthly federal taxable income")
    state_taxable_income_cents: Optional[int] = Field(
        default=None, ge=0, strict=True,
        description="Monthly state taxable income (defaults to the federal figure)",
    )
    filing_status: FilingStatus = "single"
    allowances: int = Field(default=0, ge=0, strict=True)
    state: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{2}$")
    czte: bool = False


def _round_cents(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _annual_bracket_tax(taxable_cents: Decimal, rules: TaxRules, filing_status: str) -> Decimal:
    """Apply marginal brackets to annual taxable income (cents)."""
    tax = Decimal(0)
    lower = Decimal(0)
    for bracket in rules.for_status(filing_status).tax_brackets:
        rate = Decimal(str(bracket.rate))
        if bracket.up_to is not None:
            upper = Decimal(str(bracket.up_to)) * CENTS_PER_DOLLAR
            if taxable_cents > lower:
                tax += (min(taxable_cents, upper) - lower) * rate
            lower = upper
        else:
            floor = Decimal(str(bracket.over)) * CENTS_PER_DOLLAR
            if taxable_cents > floor:
                tax += (taxable_cents - floor) * rate
    return tax


def estimate_federal_tax(
    monthly_taxable_cents: int,
    rules: TaxRules,
    filing_status: str = "single",
    allowances: int = 0,
    czte: bool = False,
) -> Tuple[int, Confidence]:
    """Estimate monthly federal income tax withholding.

    Returns:
        Tuple of (monthly_cents, confidence)
    """
    if czte:
        return 0, "high"

    annual = Decimal(monthly_taxable_cents * MONTHS)
    deduction = Decimal(str(rules.for_status(filing_status).standard_deduction)) * CENTS_PER_DOLLAR
    taxable = max(Decimal(0), annual - deduction)

    annual_tax = _annual_bracket_tax(taxable, rules, filing_status)
    annual_tax -= Decimal(allowances) * Decimal(str(rules.allowance_credit)) * CENTS_PER_DOLLAR
    annual_tax = max(Decimal(0), annual_tax)

    monthly = _round_cents(annual_tax / MONTHS)

    if allowances == 0 and filing_status in ("single", "married"):
        confidence = "high"
    elif allowances <= 2:
        confidence = "medium"
    else:
        confidence = "low"

    logger.debug(
        f"Federal estimate: {monthly} cents/month "
        f"({filing_status}, {allowances} allowances, {confidence})"
    )
    return monthly, confidence


def _flat_rate_tax(monthly_cents: int, rate_percent: float) -> int:
    annual = _round_cents(Decimal(monthly_cents * MONTHS) * Decimal(str(rate_percent)) / 100)
    return _round_cents(Decimal(annual) / MONTHS)


def _table_lookup(rules: TaxRules) -> StateRateLookup:
    return lambda state_code: rules.states.rates.get(state_code)


def estimate_state_tax(
    monthly_taxable_cents: int,
    state: Optional[str],
    rules: TaxRules,
    state_rate_lookup: Optional[StateRateLookup] = None,
) -> Tuple[int, Confidence, bool]:
    """Estimate monthly state income tax withholding.

    A missing or failing rate lookup is not an error: the conservative
    fallback rate is applied at low confidence.

    Returns:
        Tuple of (monthly_cents, confidence, used_fallback_rate)
    """
    if not state:
        return 0, "low", False

    state_code = state.upper()
    if state_code in rules.states.no_income_tax:
        return 0, "high", False

    lookup = state_rate_lookup or _table_lookup(rules)
    try:
        rate = lookup(state_code)
    except Exception as e:
        logger.warning(f"State rate lookup failed for {state_code}: {e}")
        rate = None

    if rate is not None:
        confidence = "medium" if rate.has_brackets else "high"
        return _flat_rate_tax(monthly_taxable_cents, rate.rate_percent), confidence, False

    fallback = rules.states.fallback_rate_percent
    logger.warning(f"No tax rate for state {state_code}, using fallback {fallback}%")
    return _flat_rate_tax(monthly_taxable_cents, fallback), "low", True


def estimate_tax_withholding(
    params: Union[TaxEstimateParams, dict],
    rules: Optional[TaxRules] = None,
    state_rate_lookup: Optional[StateRateLookup] = None,
) -> TaxEstimate:
    """Estimate federal and state withholding for one month.

    Args:
        params: TaxEstimateParams or an equivalent dict
        rules: Tax rules (default: load_tax_rules() for the configured year)
        state_rate_lookup: Optional callable overriding the rules' state table

    Returns:
        TaxEstimate with overall confidence = least certain of the two parts

    Raises:
        MalformedInputError: If params are missing or malformed
    """
    if not isinstance(params, TaxEstimateParams):
        try:
            params = TaxEstimateParams.model_validate(params)
        except ValidationError as e:
            raise MalformedInputError(f"Invalid tax estimate parameters: {e}") from e

    if rules is None:
        rules = load_tax_rules()

    federal_cents, federal_confidence = estimate_federal_tax(
        params.taxable_income_cents,
        rules,
        filing_status=params.filing_status,
        allowances=params.allowances,
        czte=params.czte,
    )

    state_income = params.state_taxable_income_cents
    if state_income is None:
        state_income = params.taxable_income_cents
    state_cents, state_confidence, used_fallback = estimate_state_tax(
        state_income, params.state, rules, state_rate_lookup,
    )

    if params.czte:
        method = "zero_czte"
    elif used_fallback:
        method = "fallback"
    else:
        method = "estimated"

    return TaxEstimate(
        federal_tax_cents=federal_cents,
        state_tax_cents=state_cents,
        method=method,
        confidence=min_confidence(federal_confidence, state_confidence),
    )
