"""Pay Audit SDK - Core functionality for auditing military pay statements."""

from .config import (
    get_config_dir,
    get_settings_path,
    get_user_tax_rules_dir,
    load_settings,
    save_settings,
    get_setting,
    set_setting,
    unset_setting,
    get_profile_path,
    load_profile,
    save_profile,
    ProfileNotFoundError,
)

from .schemas import (
    SECTIONS,
    LineItem,
    Taxability,
    LineCodeDefinition,
    TaxableBases,
    TaxEstimate,
    PayFlag,
    AuditTotals,
    WaterfallRow,
    AuditResult,
    AuditPolicy,
    MaskedTotals,
    MaskedAuditResult,
    ExpectedAmounts,
    ExpectedSpecialPay,
    FilerProfile,
    AuditRequest,
    MalformedInputError,
    parse_audit_request,
    min_confidence,
)

from .codes import (
    CodeRegistry,
    NormalizedCode,
    UnknownLineCodeError,
    load_default_registry,
    get_line_code_definition,
    is_valid_line_code,
    normalize_line_code,
    validate_and_normalize_code,
    get_codes_for_section,
    get_description,
)

from .bases import compute_taxable_bases

from .taxes import (
    TaxRules,
    TaxRulesNotFoundError,
    TaxEstimateParams,
    load_tax_rules,
    estimate_tax_withholding,
)

from .compare import (
    AuditThresholds,
    ComparisonResult,
    compare_detailed,
    load_audit_thresholds,
    merge_thresholds,
)

from .paywall import (
    apply_audit_masking,
    build_variance_waterfall,
    get_audit_policy,
    variance_bucket,
)

from .audit import (
    run_audit,
    audit_for_policy,
    audit_bases,
    normalize_lines,
)

__all__ = [
    # Config
    "get_config_dir",
    "get_settings_path",
    "get_user_tax_rules_dir",
    "load_settings",
    "save_settings",
    "get_setting",
    "set_setting",
    "unset_setting",
    "get_profile_path",
    "load_profile",
    "save_profile",
    "ProfileNotFoundError",
    # Schemas
    "SECTIONS",
    "LineItem",
    "Taxability",
    "LineCodeDefinition",
    "TaxableBases",
    "TaxEstimate",
    "PayFlag",
    "AuditTotals",
    "WaterfallRow",
    "AuditResult",
    "AuditPolicy",
    "MaskedTotals",
    "MaskedAuditResult",
    "ExpectedAmounts",
    "ExpectedSpecialPay",
    "FilerProfile",
    "AuditRequest",
    "MalformedInputError",
    "parse_audit_request",
    "min_confidence",
    # Codes
    "CodeRegistry",
    "NormalizedCode",
    "UnknownLineCodeError",
    "load_default_registry",
    "get_line_code_definition",
    "is_valid_line_code",
    "normalize_line_code",
    "validate_and_normalize_code",
    "get_codes_for_section",
    "get_description",
    # Bases
    "compute_taxable_bases",
    # Taxes
    "TaxRules",
    "TaxRulesNotFoundError",
    "TaxEstimateParams",
    "load_tax_rules",
    "estimate_tax_withholding",
    # Compare
    "AuditThresholds",
    "ComparisonResult",
    "compare_detailed",
    "load_audit_thresholds",
    "merge_thresholds",
    # Paywall
    "apply_audit_masking",
    "build_variance_waterfall",
    "get_audit_policy",
    "variance_bucket",
    # Audit
    "run_audit",
    "audit_for_policy",
    "audit_bases",
    "normalize_lines",
]
