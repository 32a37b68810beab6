"""Tax rules loading.

Rules live in tax-rules/YYYY.yaml. The user config directory is searched
before the packaged tables, so a new year's numbers can be dropped in
without a release. When the requested year has no file, the newest year
not after it is used.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import ValidationError

from ..config import get_setting, get_user_tax_rules_dir
from ..schemas import MalformedInputError
from .schemas import TaxRules

logger = logging.getLogger(__name__)

DEFAULT_TAX_YEAR = "2025"
PACKAGED_TAX_RULES_DIR = Path(__file__).parent.parent.parent / "data" / "tax-rules"


class TaxRulesNotFoundError(FileNotFoundError):
    """Raised when no tax-rules file exists for the year or any prior year."""
    pass


def _get_tax_rules_dirs() -> List[Path]:
    """Directories to search, highest precedence first."""
    return [get_user_tax_rules_dir(), PACKAGED_TAX_RULES_DIR]


def _get_available_years(rules_dir: Path) -> List[int]:
    """Sorted list of available tax rule years (descending)."""
    if not rules_dir.is_dir():
        return []
    years = [int(p.stem) for p in rules_dir.glob("*.yaml") if p.stem.isdigit()]
    return sorted(years, reverse=True)


def find_tax_rules_file(year: Union[str, int]) -> Path:
    """Locate the rules file for a year, falling back to prior years.

    Raises:
        TaxRulesNotFoundError: If no directory has a file for year or earlier
    """
    target_year = int(year)
    dirs = _get_tax_rules_dirs()

    for rules_dir in dirs:
        exact = rules_dir / f"{target_year}.yaml"
        if exact.exists():
            return exact

    for rules_dir in dirs:
        candidates = [y for y in _get_available_years(rules_dir) if y <= target_year]
        if candidates:
            path = rules_dir / f"{candidates[0]}.yaml"
            logger.warning(f"No tax rules for {target_year}, using {candidates[0]} from {rules_dir}")
            return path

    raise TaxRulesNotFoundError(
        f"Tax rules file not found for year {target_year} or earlier. "
        f"Searched: {', '.join(str(d) for d in dirs)}"
    )


@lru_cache(maxsize=8)
def _load_rules_file(path: Path) -> TaxRules:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    try:
        return TaxRules.model_validate(data)
    except ValidationError as e:
        raise MalformedInputError(f"Invalid tax rules file {path}: {e}") from e


def load_tax_rules(year: Optional[Union[str, int]] = None) -> TaxRules:
    """Load validated tax rules for a year.

    Args:
        year: Tax year (default: settings.json "tax_year", else 2025)

    Raises:
        TaxRulesNotFoundError: If no rules exist for the year or any prior year
        MalformedInputError: If the rules file fails validation
    """
    if year is None:
        year = get_setting("tax_year", DEFAULT_TAX_YEAR)
    path = find_tax_rules_file(year)
    logger.debug(f"Loading tax rules from {path}")
    return _load_rules_file(path)
