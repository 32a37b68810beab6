"""taxes - Income tax withholding estimates.

Scope:
- Federal withholding estimate (standard deduction + marginal brackets)
- State withholding estimate (no-tax, flat, graduated approximation, fallback)
- Year-specific rules loaded from tax-rules/{year}.yaml

Constraints:
- Pure calculation - rules and state rate lookup are injected
- Missing reference data degrades confidence, never raises

Usage:
    from payaudit.sdk.taxes import estimate_tax_withholding, load_tax_rules

    rules = load_tax_rules("2025")
    est = estimate_tax_withholding({"taxable_income_cents": 350000, "state": "VA"}, rules)
"""

from .schemas import TaxRules, StateRate
from .rules import (
    DEFAULT_TAX_YEAR,
    TaxRulesNotFoundError,
    find_tax_rules_file,
    load_tax_rules,
)
from .estimator import (
    StateRateLookup,
    TaxEstimateParams,
    estimate_federal_tax,
    estimate_state_tax,
    estimate_tax_withholding,
)

__all__ = [
    # Rules
    "TaxRules",
    "StateRate",
    "DEFAULT_TAX_YEAR",
    "TaxRulesNotFoundError",
    "find_tax_rules_file",
    "load_tax_rules",
    # Estimator
    "StateRateLookup",
    "TaxEstimateParams",
    "estimate_federal_tax",
    "estimate_state_tax",
    "estimate_tax_withholding",
]
