"""Audit pipeline: one pay statement in, one AuditResult out.

    normalize codes -> taxable bases -> withholding estimate -> compare

Every call recomputes from scratch; there is no state carried between
audits. Reference tables (registry, tax rules, thresholds) are injected or
loaded from their cached defaults.
"""

import logging
from typing import List, Optional, Tuple, Union

from .bases import compute_taxable_bases
from .codes import CodeRegistry, load_default_registry, validate_and_normalize_code
from .compare import AuditThresholds, compare_detailed, load_audit_thresholds
from .paywall import apply_audit_masking
from .schemas import (
    AuditPolicy,
    AuditRequest,
    AuditResult,
    ExpectedAmounts,
    ExpectedSpecialPay,
    LineItem,
    MaskedAuditResult,
    PayFlag,
    TaxableBases,
    TaxEstimate,
    min_confidence,
    parse_audit_request,
)
from .taxes import TaxEstimateParams, TaxRules, estimate_tax_withholding, load_tax_rules
from .taxes.estimator import StateRateLookup

logger = logging.getLogger(__name__)


def normalize_lines(
    lines: List[LineItem],
    registry: Optional[CodeRegistry] = None,
) -> Tuple[List[LineItem], List[PayFlag]]:
    """Canonicalize line codes, coercing unknown codes to OTHER.

    Returns:
        Tuple of (normalized lines, UNKNOWN_CODE warning flags)
    """
    registry = registry if registry is not None else load_default_registry()
    normalized = []
    warnings = []
    for line in lines:
        result = validate_and_normalize_code(line.code, registry=registry)
        normalized.append(line.model_copy(update={"code": result.code}))
        if result.warning is not None:
            warnings.append(result.warning)
    return normalized, warnings


def _normalize_expected(expected: Optional[ExpectedAmounts], registry: CodeRegistry) -> Optional[ExpectedAmounts]:
    if expected is None or not expected.specials:
        return expected
    specials = [
        ExpectedSpecialPay(code=registry.normalize(s.code), cents=s.cents)
        for s in expected.specials
    ]
    return expected.model_copy(update={"specials": specials})


def _assess_confidence(
    request: AuditRequest,
    lines: List[LineItem],
    estimate: Optional[TaxEstimate],
    unknown_count: int,
) -> str:
    """Overall confidence: start from the estimate, degrade on missing data."""
    confidence = estimate.confidence if estimate is not None else "high"

    if request.net_pay_cents is None:
        logger.debug("Net pay not reported, confidence at most medium")
        confidence = min_confidence(confidence, "medium")
    if not any(line.section == "TAX" for line in lines):
        logger.debug("No tax lines, confidence at most medium")
        confidence = min_confidence(confidence, "medium")
    if unknown_count:
        confidence = min_confidence(confidence, "medium")

    has_bah = any(line.code == "BAH" and line.amount_cents > 0 for line in lines)
    bah_expected = request.expected is not None and request.expected.bah_cents is not None
    if has_bah and not bah_expected:
        logger.warning("BAH present with no reference rate, confidence low")
        confidence = "low"

    return confidence


def run_audit(
    request: Union[AuditRequest, dict],
    *,
    registry: Optional[CodeRegistry] = None,
    rules: Optional[TaxRules] = None,
    thresholds: Optional[AuditThresholds] = None,
    state_rate_lookup: Optional[StateRateLookup] = None,
) -> AuditResult:
    """Audit one pay statement.

    Args:
        request: AuditRequest or an equivalent dict
        registry: Line code registry (default: packaged registry)
        rules: Tax rules (default: configured tax year); only loaded when
            the request carries filer metadata
        thresholds: Audit thresholds (default: settings.json merged on defaults)
        state_rate_lookup: Optional state rate source for the estimator

    Returns:
        Full, unmasked AuditResult

    Raises:
        MalformedInputError: If a dict request does not match the schema
    """
    if not isinstance(request, AuditRequest):
        request = parse_audit_request(request)

    registry = registry if registry is not None else load_default_registry()
    thresholds = thresholds or load_audit_thresholds()

    lines, warnings = normalize_lines(request.lines, registry=registry)
    expected = _normalize_expected(request.expected, registry)
    bases = compute_taxable_bases(lines, registry=registry)

    estimate = None
    if request.filer is not None:
        filer = request.filer
        estimate = estimate_tax_withholding(
            TaxEstimateParams(
                taxable_income_cents=bases.fed,
                state_taxable_income_cents=bases.state,
                filing_status=filer.filing_status,
                allowances=filer.allowances,
                state=filer.state,
                czte=filer.czte,
            ),
            rules=rules if rules is not None else load_tax_rules(),
            state_rate_lookup=state_rate_lookup,
        )

    comparison = compare_detailed(
        expected,
        bases,
        lines,
        request.net_pay_cents,
        estimate=estimate,
        thresholds=thresholds,
    )

    confidence = _assess_confidence(request, lines, estimate, len(warnings))
    logger.debug(
        f"Audit complete: {len(comparison.flags) + len(warnings)} flags, "
        f"confidence {confidence}"
    )

    return AuditResult(
        flags=comparison.flags + warnings,
        totals=comparison.totals,
        waterfall=comparison.waterfall,
        math_proof=comparison.math_proof,
        confidence=confidence,
        bases=bases,
        tax_estimate=estimate,
    )


def audit_for_policy(
    request: Union[AuditRequest, dict],
    policy: AuditPolicy,
    **kwargs,
) -> MaskedAuditResult:
    """Run an audit and return only the tier-masked projection."""
    return apply_audit_masking(run_audit(request, **kwargs), policy)


def audit_bases(lines: List[LineItem], registry: Optional[CodeRegistry] = None) -> TaxableBases:
    """Taxable bases for raw (not yet normalized) line items."""
    normalized, _ = normalize_lines(lines, registry=registry)
    return compute_taxable_bases(normalized, registry=registry)
