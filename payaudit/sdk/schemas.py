"""Pydantic schemas for pay-audit data validation.

All schemas use extra='forbid' to reject unknown fields, ensuring
typos in request files cause clear errors rather than silent ignoring.

Money is always an integer count of cents. Cents fields are strict ints:
floats, numeric strings and bools are rejected, because dollar-level
floating point would corrupt the cent-exact net pay check.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


Section = Literal["ALLOWANCE", "DEDUCTION", "TAX", "ALLOTMENT", "DEBT", "ADJUSTMENT"]
SECTIONS: tuple = ("ALLOWANCE", "DEDUCTION", "TAX", "ALLOTMENT", "DEBT", "ADJUSTMENT")

Severity = Literal["red", "yellow", "green"]
Confidence = Literal["high", "medium", "low"]
FilingStatus = Literal["single", "married", "head_of_household"]

# Lower rank = less certain. Used to take the minimum of two confidences.
CONFIDENCE_RANK = {"low": 0, "medium": 1, "high": 2}


def min_confidence(*levels: str) -> str:
    """Return the least certain of the given confidence levels."""
    return min(levels, key=lambda level: CONFIDENCE_RANK[level])


def cents_field(default=..., **kwargs):
    """Field helper for strict integer cents."""
    return Field(default, strict=True, **kwargs)


# =============================================================================
# Line items and code definitions
# =============================================================================


class LineItem(BaseModel):
    """One row of a pay statement. Immutable once audited."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str = Field(..., min_length=1, description="Canonical or raw line code")
    amount_cents: int = cents_field(..., ge=0, description="Amount in cents (sign implied by section)")
    section: Section


class Taxability(BaseModel):
    """Which taxable bases a line code contributes to."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fed: bool = False
    state: bool = False
    oasdi: bool = False
    medicare: bool = False


class LineCodeDefinition(BaseModel):
    """Registry entry for a canonical line code."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    code: str
    section: Optional[Section] = Field(
        default=None,
        description="Section the code belongs to (None for the catch-all OTHER code)",
    )
    description: str
    taxability: Taxability = Field(default_factory=Taxability)
    aliases: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_tax_lines_not_taxable(self) -> "LineCodeDefinition":
        """A withholding line is not itself taxable income."""
        t = self.taxability
        if self.section == "TAX" and (t.fed or t.state or t.oasdi or t.medicare):
            raise ValueError(f"TAX code {self.code} must not be marked taxable")
        return self


# =============================================================================
# Derived values
# =============================================================================


class TaxableBases(BaseModel):
    """Taxable income totals, one per tax program. Recomputed every audit."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    fed: int = cents_field(0)
    state: int = cents_field(0)
    oasdi: int = cents_field(0)
    medicare: int = cents_field(0)

    def __add__(self, other: "TaxableBases") -> "TaxableBases":
        return TaxableBases(
            fed=self.fed + other.fed,
            state=self.state + other.state,
            oasdi=self.oasdi + other.oasdi,
            medicare=self.medicare + other.medicare,
        )

    @classmethod
    def zero(cls) -> "TaxableBases":
        return cls()


class TaxEstimate(BaseModel):
    """Estimated monthly income tax withholding."""

    model_config = ConfigDict(extra="forbid")

    federal_tax_cents: int = cents_field(..., ge=0)
    state_tax_cents: int = cents_field(..., ge=0)
    method: Literal["estimated", "zero_czte", "fallback"]
    confidence: Confidence


class PayFlag(BaseModel):
    """A single audit finding."""

    model_config = ConfigDict(extra="forbid")

    severity: Severity
    flag_code: str
    message: str
    delta_cents: Optional[int] = Field(
        default=None, strict=True,
        description="actual - expected; negative means underpaid/underwithheld",
    )
    suggestion: Optional[str] = None
    ref_url: Optional[str] = None


class AuditTotals(BaseModel):
    """Category sums and net pay reconciliation for one audit."""

    model_config = ConfigDict(extra="forbid")

    total_allowances: int = cents_field(0)
    total_deductions: int = cents_field(0)
    total_taxes: int = cents_field(0)
    total_allotments: int = cents_field(0)
    total_debts: int = cents_field(0)
    total_adjustments: int = cents_field(0)
    computed_net: int = cents_field(0)
    actual_net: Optional[int] = cents_field(None, description="Reported net pay (None if not reported)")
    variance: Optional[int] = cents_field(None, description="actual_net - computed_net")


class WaterfallRow(BaseModel):
    """One step of the gross-to-net reconciliation."""

    model_config = ConfigDict(extra="forbid")

    label: str
    kind: Literal["add", "subtract", "total"]
    amount_cents: int = cents_field(...)
    running_total_cents: int = cents_field(...)


class AuditResult(BaseModel):
    """Full, unmasked audit output. Never sent to restricted tiers."""

    model_config = ConfigDict(extra="forbid")

    flags: List[PayFlag]
    totals: AuditTotals
    waterfall: List[WaterfallRow]
    math_proof: str
    confidence: Confidence
    bases: TaxableBases = Field(default_factory=TaxableBases)
    tax_estimate: Optional[TaxEstimate] = None


# =============================================================================
# Paywall
# =============================================================================


class AuditPolicy(BaseModel):
    """Resolved subscription policy for one response."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    show_exact_variance: bool = Field(..., description="Expose exact totals, waterfall, proof")
    max_visible_flags: Optional[int] = Field(
        default=None, ge=0, description="Flag cap (None = unlimited)",
    )

    @property
    def is_full_access(self) -> bool:
        return self.show_exact_variance and self.max_visible_flags is None


VarianceBucket = Literal["0-5", "5-50", ">50", ">100"]


class MaskedTotals(BaseModel):
    """AuditTotals with exact values optionally nulled."""

    model_config = ConfigDict(extra="forbid")

    total_allowances: Optional[int] = None
    total_deductions: Optional[int] = None
    total_taxes: Optional[int] = None
    total_allotments: Optional[int] = None
    total_debts: Optional[int] = None
    total_adjustments: Optional[int] = None
    computed_net: Optional[int] = None
    actual_net: Optional[int] = None
    variance: Optional[int] = None
    variance_bucket: VarianceBucket


class MaskedAuditResult(BaseModel):
    """Tier-filtered projection of an AuditResult. Derived per response."""

    model_config = ConfigDict(extra="forbid")

    flags: List[PayFlag]
    hidden_flag_count: int = 0
    totals: MaskedTotals
    waterfall: Optional[List[WaterfallRow]] = None
    math_proof: Optional[str] = None
    confidence: Confidence
    masked: bool = False


# =============================================================================
# Inputs from collaborators
# =============================================================================


class ExpectedSpecialPay(BaseModel):
    """Expected amount for a special or incentive pay."""

    model_config = ConfigDict(extra="forbid")

    code: str
    cents: int = cents_field(..., ge=0)


class ExpectedAmounts(BaseModel):
    """Officially-sourced expected amounts. Any field may be unknown (None)."""

    model_config = ConfigDict(extra="forbid")

    base_pay_cents: Optional[int] = cents_field(None, ge=0)
    bah_cents: Optional[int] = cents_field(None, ge=0)
    bas_cents: Optional[int] = cents_field(None, ge=0)
    cola_cents: Optional[int] = cents_field(None, ge=0)
    specials: List[ExpectedSpecialPay] = Field(default_factory=list)
    tsp_cents: Optional[int] = cents_field(None, ge=0)
    sgli_cents: Optional[int] = cents_field(None, ge=0)
    dental_cents: Optional[int] = cents_field(None, ge=0)


class FilerProfile(BaseModel):
    """Filer metadata from the user profile."""

    model_config = ConfigDict(extra="forbid")

    filing_status: FilingStatus = "single"
    allowances: int = Field(default=0, ge=0, strict=True)
    state: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{2}$")
    czte: bool = Field(default=False, description="Combat zone tax exclusion active")


class AuditRequest(BaseModel):
    """Everything needed to audit one pay statement."""

    model_config = ConfigDict(extra="forbid")

    lines: List[LineItem]
    net_pay_cents: Optional[int] = cents_field(None, ge=0)
    expected: Optional[ExpectedAmounts] = None
    filer: Optional[FilerProfile] = None


class MalformedInputError(ValueError):
    """Raised when an upstream collaborator violates the input contract.

    Non-numeric amounts, fractional cents, or invalid filer fields.
    Data-quality problems (unknown codes, missing reference rates) never
    raise; they surface as flags and reduced confidence instead.
    """
    pass


def parse_audit_request(data: dict) -> AuditRequest:
    """Validate a raw request dict, wrapping pydantic errors.

    Raises:
        MalformedInputError: If the request does not match the schema
    """
    try:
        return AuditRequest.model_validate(data)
    except ValidationError as e:
        raise MalformedInputError(f"Invalid audit request: {e}") from e
