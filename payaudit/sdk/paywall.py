"""Subscription tier masking for audit results.

Restricted tiers see a ranked subset of flags and a coarse variance bucket
instead of exact totals. The waterfall and math proof are dropped entirely
for them: a partial reconciliation is enough to rebuild the exact numbers.
Flags are redacted the same way, since a flag delta or message carrying a
dollar amount gives the exact variance back.

Masking is a pure projection of an AuditResult; every response path that
can reach a restricted tier must go through apply_audit_masking().
"""

import logging
from typing import Dict, List, Optional

from .config import get_setting
from .schemas import (
    AuditPolicy,
    AuditResult,
    AuditTotals,
    MaskedAuditResult,
    MaskedTotals,
    PayFlag,
    VarianceBucket,
    WaterfallRow,
)

logger = logging.getLogger(__name__)

SEVERITY_RANK = {"red": 0, "yellow": 1, "green": 2}

SEVERITY_HEADLINES = {"red": "Action needed", "yellow": "Review suggested", "green": "Verified"}

BUCKET_RANGES = {"0-5": "up to $5", "5-50": "$5 to $50", ">50": "$50 to $100", ">100": "over $100"}

# Flags whose message never carries an amount
AMOUNT_FREE_FLAGS = frozenset({"UNKNOWN_CODE"})

DEFAULT_TIER = "free"
DEFAULT_TIER_POLICIES: Dict[str, AuditPolicy] = {
    "free": AuditPolicy(show_exact_variance=False, max_visible_flags=3),
    "premium": AuditPolicy(show_exact_variance=True, max_visible_flags=None),
    "staff": AuditPolicy(show_exact_variance=True, max_visible_flags=None),
}


def variance_bucket(variance_cents: Optional[int]) -> VarianceBucket:
    """Coarse bucket for a variance, on absolute cents.

    0-5: <= $5, 5-50: <= $50, >50: <= $100, >100: above $100.
    An unknown variance (net pay not reported) buckets as 0-5.
    """
    amount = abs(variance_cents or 0)
    if amount <= 500:
        return "0-5"
    if amount <= 5000:
        return "5-50"
    if amount <= 10000:
        return ">50"
    return ">100"


def build_variance_waterfall(totals: AuditTotals) -> List[WaterfallRow]:
    """Reconcile gross allowances down to computed (and reported) net pay."""
    steps = [
        ("Allowances", "add", totals.total_allowances),
        ("Taxes", "subtract", totals.total_taxes),
        ("Deductions", "subtract", totals.total_deductions),
        ("Allotments", "subtract", totals.total_allotments),
        ("Debts", "subtract", totals.total_debts),
        ("Adjustments", "add", totals.total_adjustments),
    ]

    rows = []
    running = 0
    for label, kind, amount in steps:
        running = running + amount if kind == "add" else running - amount
        rows.append(WaterfallRow(label=label, kind=kind, amount_cents=amount, running_total_cents=running))

    rows.append(WaterfallRow(
        label="Computed net", kind="total",
        amount_cents=totals.computed_net, running_total_cents=totals.computed_net,
    ))

    if totals.actual_net is not None:
        rows.append(WaterfallRow(
            label="Variance", kind="add",
            amount_cents=totals.variance, running_total_cents=totals.actual_net,
        ))
        rows.append(WaterfallRow(
            label="Reported net", kind="total",
            amount_cents=totals.actual_net, running_total_cents=totals.actual_net,
        ))
    return rows


def rank_flags(flags: List[PayFlag]) -> List[PayFlag]:
    """Red before yellow before green; larger |delta| first within a severity.

    Stable, so equal flags keep rule order.
    """
    return sorted(
        flags,
        key=lambda f: (SEVERITY_RANK[f.severity], -abs(f.delta_cents or 0)),
    )


def redact_flag(flag: PayFlag) -> PayFlag:
    """Strip exact amounts from a flag, keeping its code and severity.

    The delta is replaced by its variance bucket in the message.
    """
    if flag.flag_code in AMOUNT_FREE_FLAGS:
        return flag.model_copy(update={"delta_cents": None})

    headline = SEVERITY_HEADLINES[flag.severity]
    if flag.delta_cents is None:
        message = f"{headline}. Exact amounts are not shown on this tier."
    else:
        spread = BUCKET_RANGES[variance_bucket(flag.delta_cents)]
        message = f"{headline} (difference {spread}). Exact amounts are not shown on this tier."
    return flag.model_copy(update={"delta_cents": None, "message": message})


def apply_audit_masking(full_result: AuditResult, policy: AuditPolicy) -> MaskedAuditResult:
    """Project an audit result through a tier policy.

    Args:
        full_result: Unmasked audit output
        policy: Resolved tier policy

    Returns:
        MaskedAuditResult safe to return to the tier's client
    """
    totals = full_result.totals
    bucket = variance_bucket(totals.variance)

    if policy.is_full_access:
        return MaskedAuditResult(
            flags=list(full_result.flags),
            hidden_flag_count=0,
            totals=MaskedTotals(**totals.model_dump(), variance_bucket=bucket),
            waterfall=list(full_result.waterfall),
            math_proof=full_result.math_proof,
            confidence=full_result.confidence,
            masked=False,
        )

    ranked = rank_flags(full_result.flags)
    if policy.max_visible_flags is not None:
        visible = ranked[:policy.max_visible_flags]
    else:
        visible = ranked
    hidden = len(ranked) - len(visible)

    if policy.show_exact_variance:
        masked_totals = MaskedTotals(**totals.model_dump(), variance_bucket=bucket)
        waterfall = list(full_result.waterfall)
        math_proof = full_result.math_proof
    else:
        visible = [redact_flag(f) for f in visible]
        masked_totals = MaskedTotals(actual_net=totals.actual_net, variance_bucket=bucket)
        waterfall = None
        math_proof = None

    logger.debug(f"Masked audit: {len(visible)} visible, {hidden} hidden, exact={policy.show_exact_variance}")
    return MaskedAuditResult(
        flags=visible,
        hidden_flag_count=hidden,
        totals=masked_totals,
        waterfall=waterfall,
        math_proof=math_proof,
        confidence=full_result.confidence,
        masked=True,
    )


def get_tier_policies() -> Dict[str, AuditPolicy]:
    """Default tier policies merged with settings.json "tier_policies"."""
    policies = dict(DEFAULT_TIER_POLICIES)
    for tier, override in (get_setting("tier_policies") or {}).items():
        policies[tier] = AuditPolicy.model_validate(override)
    return policies


def get_audit_policy(tier: Optional[str] = None) -> AuditPolicy:
    """Resolve a tier name to its masking policy.

    Unknown tiers get the default (most restrictive) tier's policy.
    """
    if tier is None:
        tier = get_setting("default_tier", DEFAULT_TIER)
    policies = get_tier_policies()
    if tier not in policies:
        logger.warning(f"Unknown tier '{tier}', using '{DEFAULT_TIER}' policy")
        return policies[DEFAULT_TIER]
    return policies[tier]
