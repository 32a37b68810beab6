"""LES line code registry.

Canonical mapping of line codes to section, description, taxability and the
aliases seen on real statements. Loaded from data/line_codes.yaml and
validated with pydantic; a malformed table fails at load time, never at
audit time.

Unknown codes are a data-quality problem, not an error: everywhere except
get_line_code_definition() they are coerced to OTHER with a yellow
UNKNOWN_CODE flag so the audit still runs to completion.

Usage:
    from payaudit.sdk.codes import normalize_line_code, get_line_code_definition

    normalize_line_code("bah w/dep")          # -> "BAH"
    get_line_code_definition("HFP").taxability.oasdi  # -> True
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .schemas import LineCodeDefinition, PayFlag, Section

logger = logging.getLogger(__name__)

OTHER_CODE = "OTHER"
DEFAULT_REGISTRY_PATH = Path(__file__).parent.parent / "data" / "line_codes.yaml"


class UnknownLineCodeError(KeyError):
    """Raised when a code is looked up that the registry does not define."""
    pass


@dataclass
class NormalizedCode:
    """Result of validating a raw code against the registry."""

    code: str
    warning: Optional[PayFlag] = None

    @property
    def is_known(self) -> bool:
        return self.warning is None


def _match_key(text: str) -> str:
    """Case-fold and collapse whitespace; '_' counts as a space."""
    return re.sub(r"\s+", " ", text.replace("_", " ")).strip().upper()


class CodeRegistry:
    """Read-only lookup over a set of line code definitions."""

    def __init__(self, definitions: List[LineCodeDefinition], version: Optional[str] = None):
        self.version = version
        self._definitions: Dict[str, LineCodeDefinition] = {}
        self._index: Dict[str, str] = {}

        for definition in definitions:
            if definition.code in self._definitions:
                raise ValueError(f"Duplicate line code: {definition.code}")
            self._definitions[definition.code] = definition

        # Canonical codes win over aliases on collision
        for definition in definitions:
            for alias in definition.aliases:
                self._add_key(_match_key(alias), definition.code)
        for definition in definitions:
            self._index[_match_key(definition.code)] = definition.code

        if OTHER_CODE not in self._definitions:
            raise ValueError(f"Registry must define the catch-all {OTHER_CODE} code")

    def _add_key(self, key: str, code: str) -> None:
        existing = self._index.get(key)
        if existing and existing != code:
            raise ValueError(f"Alias '{key}' maps to both {existing} and {code}")
        self._index[key] = code

    @classmethod
    def from_dict(cls, data: dict) -> "CodeRegistry":
        """Build a registry from the parsed line_codes.yaml structure."""
        definitions = [
            LineCodeDefinition.model_validate({"code": code, **(entry or {})})
            for code, entry in (data.get("codes") or {}).items()
        ]
        return cls(definitions, version=str(data.get("version")) if data.get("version") else None)

    @classmethod
    def from_yaml(cls, path: Path) -> "CodeRegistry":
        """Load and validate a registry file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        registry = cls.from_dict(data)
        logger.debug(f"Loaded {len(registry)} line codes from {path}")
        return registry

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, code: str) -> bool:
        return code in self._definitions

    @property
    def codes(self) -> List[str]:
        return list(self._definitions)

    def get(self, code: str) -> LineCodeDefinition:
        """Return the definition for a canonical code.

        Raises:
            UnknownLineCodeError: If the code is not defined
        """
        try:
            return self._definitions[code]
        except KeyError:
            raise UnknownLineCodeError(code) from None

    def get_or_other(self, code: str) -> LineCodeDefinition:
        """Return the definition for a code, or OTHER when it is unknown."""
        return self._definitions.get(code) or self._definitions[OTHER_CODE]

    def normalize(self, raw_text: str) -> str:
        """Map raw statement text to a canonical code (raw text if no match)."""
        return self._index.get(_match_key(raw_text), raw_text)

    def for_section(self, section: Section) -> List[LineCodeDefinition]:
        return [d for d in self._definitions.values() if d.section == section]


@lru_cache(maxsize=1)
def load_default_registry() -> CodeRegistry:
    """Load the packaged registry (cached; the table is read-only)."""
    return CodeRegistry.from_yaml(DEFAULT_REGISTRY_PATH)


def _resolve(registry: Optional[CodeRegistry]) -> CodeRegistry:
    return registry if registry is not None else load_default_registry()


def get_line_code_definition(code: str, registry: Optional[CodeRegistry] = None) -> LineCodeDefinition:
    """Get the registry entry for a canonical code.

    Raises:
        UnknownLineCodeError: If the code is not in the registry
    """
    return _resolve(registry).get(code)


def is_valid_line_code(code: str, registry: Optional[CodeRegistry] = None) -> bool:
    """True if code is a canonical code in the registry."""
    return code in _resolve(registry)


def normalize_line_code(raw_text: str, registry: Optional[CodeRegistry] = None) -> str:
    """Map raw statement text to its canonical code.

    Matching is case-insensitive against canonical codes and aliases, with
    whitespace collapsed and '_' treated as a space. Text that matches
    nothing is returned unchanged.

    Examples:
        >>> normalize_line_code("SOC SEC")
        'FICA'
        >>> normalize_line_code("BAH W/O DEP")
        'BAH'
    """
    return _resolve(registry).normalize(raw_text)


def validate_and_normalize_code(code: str, registry: Optional[CodeRegistry] = None) -> NormalizedCode:
    """Normalize a code, coercing anything unrecognized to OTHER.

    Returns:
        NormalizedCode with the canonical code, plus a yellow UNKNOWN_CODE
        warning flag (quoting the raw text) when the code was not recognized
    """
    reg = _resolve(registry)
    canonical = reg.normalize(code)
    if canonical in reg and canonical != OTHER_CODE:
        return NormalizedCode(code=canonical)

    logger.warning(f"Unknown line code '{code}', treating as {OTHER_CODE}")
    warning = PayFlag(
        severity="yellow",
        flag_code="UNKNOWN_CODE",
        message=f"Unrecognized line code '{code}' was treated as {OTHER_CODE}.",
        suggestion=(
            "Check the spelling against your LES. Unrecognized items are still "
            "included in net pay math but are excluded from all taxable bases."
        ),
    )
    return NormalizedCode(code=OTHER_CODE, warning=warning)


def get_codes_for_section(section: Section, registry: Optional[CodeRegistry] = None) -> List[str]:
    """List canonical codes belonging to a section."""
    return [d.code for d in _resolve(registry).for_section(section)]


def get_description(code: str, registry: Optional[CodeRegistry] = None) -> str:
    """Human-readable description for a code (the code itself if unknown)."""
    reg = _resolve(registry)
    if code in reg:
        return reg.get(code).description
    return code
