"""Pydantic schemas for tax rules validation.

These schemas validate the tax-rules/*.yaml files and provide typed access
to standard deductions, marginal brackets and state rates.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TaxBracket(BaseModel):
    """Single tax bracket entry."""
    model_config = ConfigDict(extra="forbid")

    up_to: Optional[float] = Field(default=None, description="Upper bound (None if 'over' bracket)")
    over: Optional[float] = Field(default=None, description="Lower bound for top bracket")
    rate: float = Field(..., ge=0, le=1, description="Tax rate as decimal")

    @model_validator(mode="after")
    def check_one_bound(self) -> "TaxBracket":
        if (self.up_to is None) == (self.over is None):
            raise ValueError("Bracket needs exactly one of 'up_to' or 'over'")
        return self


class FilingStatusRules(BaseModel):
    """Tax rules for a filing status (single, married, head of household)."""
    model_config = ConfigDict(extra="forbid")

    standard_deduction: float = Field(..., ge=0)
    tax_brackets: List[TaxBracket] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_bracket_order(self) -> "FilingStatusRules":
        bounds = [b.up_to for b in self.tax_brackets[:-1]]
        if any(b is None for b in bounds):
            raise ValueError("Only the last bracket may use 'over'")
        if bounds != sorted(bounds):
            raise ValueError("Brackets must be in ascending order")
        if self.tax_brackets[-1].over is None:
            raise ValueError("Last bracket must be an 'over' bracket")
        return self


class StateRate(BaseModel):
    """Income tax rate for one state."""
    model_config = ConfigDict(extra="forbid")

    rate_percent: float = Field(..., ge=0, le=100)
    has_brackets: bool = Field(
        default=False,
        description="Graduated state; rate_percent is a mid-range approximation",
    )


class StateTaxRules(BaseModel):
    """State income tax reference table."""
    model_config = ConfigDict(extra="forbid")

    no_income_tax: List[str] = Field(default_factory=list)
    fallback_rate_percent: float = Field(default=5.0, ge=0, le=100)
    rates: Dict[str, StateRate] = Field(default_factory=dict)

    @field_validator("no_income_tax")
    @classmethod
    def upper_codes(cls, v: List[str]) -> List[str]:
        return [code.upper() for code in v]

    @field_validator("rates")
    @classmethod
    def upper_rate_keys(cls, v: Dict[str, StateRate]) -> Dict[str, StateRate]:
        return {code.upper(): rate for code, rate in v.items()}


class TaxRules(BaseModel):
    """Complete withholding estimate rules for a year."""
    model_config = ConfigDict(extra="ignore")  # Allow unknown fields for forward compat

    year: int
    single: FilingStatusRules
    married: FilingStatusRules
    head_of_household: FilingStatusRules
    allowance_credit: float = Field(..., ge=0, description="Annual reduction per W-4 allowance")
    states: StateTaxRules = Field(default_factory=StateTaxRules)

    def for_status(self, filing_status: str) -> FilingStatusRules:
        """Rules for a filing status (single when unrecognized)."""
        by_status = {
            "single": self.single,
            "married": self.married,
            "head_of_household": self.head_of_household,
        }
        return by_status.get(filing_status, self.single)
