"""Taxable base calculation.

Each tax program (federal income, state income, Social Security, Medicare)
has its own notion of taxable pay. A line contributes its amount to every
base whose taxability flag is set for its code; only ALLOWANCE lines count.

    BASEPAY  -> all four bases
    BAH/BAS  -> none
    HFP      -> OASDI and Medicare only (combat pay)
"""

import logging
from typing import Iterable, Optional

from .codes import CodeRegistry, load_default_registry
from .schemas import LineItem, TaxableBases

logger = logging.getLogger(__name__)


def compute_taxable_bases(
    lines: Iterable[LineItem],
    registry: Optional[CodeRegistry] = None,
) -> TaxableBases:
    """Sum allowance lines into the four taxable bases.

    Args:
        lines: Line items (codes should already be normalized)
        registry: Code registry to use (default: packaged registry)

    Returns:
        TaxableBases in integer cents
    """
    registry = registry if registry is not None else load_default_registry()

    fed = state = oasdi = medicare = 0
    for line in lines:
        if line.section != "ALLOWANCE":
            continue

        if line.code not in registry:
            logger.debug(f"Code {line.code} not in registry, using OTHER taxability")
        taxability = registry.get_or_other(line.code).taxability

        if taxability.fed:
            fed += line.amount_cents
        if taxability.state:
            state += line.amount_cents
        if taxability.oasdi:
            oasdi += line.amount_cents
        if taxability.medicare:
            medicare += line.amount_cents

    return TaxableBases(fed=fed, state=state, oasdi=oasdi, medicare=medicare)
