"""
Vendor category classification.

Maps the free-text legacy vendor LookupCode (e.g. "OFFICE-SHOP SUPPLIES",
"part's", "Hyd.Parts") onto a fixed set of canonical category codes.

Design Decisions:
    1. Match on a normalized form (uppercase, no quotes, punctuation -> space)
    2. Each canonical code also matches its own normalized form
    3. The synonym table must stay conflict-free (no synonym in two categories)
    4. Descriptions come from an optional JSON file, else derive from the code
    5. The org-type decision stays with the caller (see is_financial())

Description file format (either shape is accepted):
    {"BANKING": "Banking & Finance", "GSE": "Ground Support Equipment"}
    {"categories": [{"code": "BANKING", "description": "Banking & Finance"}]}
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

UNCLASSIFIED = "UNCLASSIFIED"
UNCLASSIFIED_DESCRIPTION = "Unclassified"

# Categories whose vendors are banks/card issuers rather than businesses
FINANCIAL_CATEGORIES = frozenset({"BANKING", "CREDIT_CARDS"})

QUOTE_PATTERN = re.compile(r"[\"'`]")
NON_ALNUM_PATTERN = re.compile(r"[^A-Z0-9]+")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Canonical code -> synonyms. Order matters only if a synonym is duplicated,
# which test_vendor_categories guards against.
CATEGORY_SYNONYMS: List[Tuple[str, Tuple[str, ...]]] = [
    ("WRECKER", ("WRECKER",)),
    ("TOWING", ("TOWING", "TOW")),
    ("OFFICE_SUPPLIES", ("OFFICE SUPPLIES", "OFFICE")),
    ("SHOP_SUPPLIES", ("OFFICE-SHOP SUPPLIES", "OFFICE SHOP SUPPLIES", "SUPPLIES", "SHOP")),
    ("PARTS", ("PART", "PARTS", "PART'S", "PARTS'S", "PARTS'")),
    ("BUS_PARTS", ("BUS PARTS",)),
    ("TIRES", ("TIRES", "TIRE", "TIRE'S", "TIRES'")),
    ("LIGHTING", ("LIGHTS", "LIGHTING")),
    ("HYDRAULIC_PARTS", ("HYD.PARTS", "HYD PARTS", "HYDRAULIC PARTS", "HYDRAULIC")),
    ("ALTERNATOR_STARTER", ("ALTERNATOR", "STARTER", "ALTERNATOR STARTER", "ALTERNATOR/STARTER")),
    ("VEHICLE_BODY", ("BODY", "VEHICLE BODY")),
    ("WINDSHIELD_GLASS", ("WINDSHIELD", "GLASS", "WINDSHIELD GLASS")),
    ("GAS_FUEL", ("GAS", "FUEL", "GAS FUEL", "GAS/FUEL")),
    ("MEALS", ("MEALS", "MEAL")),
    ("ENTERTAINMENT", ("ENTERTAINMENT",)),
    ("BANKING", ("BANK", "BANKING")),
    ("CREDIT_CARDS", ("CREDIT CARDS", "CREDIT CARD")),
    ("TAXES", ("TAXES", "TAX")),
    ("UTILITIES", ("UTILITIES", "UTILITY")),
    ("PHONE", ("PHONE", "TELEPHONE")),
    ("RENT", ("RENT",)),
    ("MEDICAL", ("MEDICAL",)),
    ("OIL", ("OIL",)),
    ("METAL", ("METAL",)),
    ("PAINT", ("PAINT",)),
    ("TOOLS", ("TOOLS", "TOOL")),
    ("COMPUTERS_IT", ("COMPUTER", "COMPUTERS", "COMPUTERS IT", "IT")),
    ("GSE", ("GSE",)),
    ("SERVICES", ("SERVICES", "SERVICE")),
    ("FREIGHT", ("FREIGHT",)),
    ("SHIPPING", ("SHIPPING",)),
    ("FLOWERS", ("FLOWERS",)),
    ("CHARITY", ("CHARITY",)),
    ("CLOTHING", ("CLOTHING",)),
]


@dataclass(frozen=True)
class VendorCategory:
    """Result of classifying a legacy vendor code."""

    code: str
    description: str
    legacy_normalized: str = ""

    @property
    def is_financial(self) -> bool:
        return is_financial(self.code)


def normalize_vendor_code(raw: Optional[str]) -> str:
    """
    Normalize a legacy vendor code for synonym matching.

    Examples:
        >>> normalize_vendor_code("office/shop supplies")
        'OFFICE SHOP SUPPLIES'
        >>> normalize_vendor_code("Part's")
        'PARTS'
        >>> normalize_vendor_code("  hyd.parts ")
        'HYD PARTS'
    """
    if not raw:
        return ""

    normalized = QUOTE_PATTERN.sub("", raw.strip().upper())
    normalized = NON_ALNUM_PATTERN.sub(" ", normalized)
    normalized = WHITESPACE_PATTERN.sub(" ", normalized)
    return normalized.strip()


def _build_synonym_index() -> Dict[str, str]:
    """Map every normalized synonym to its canonical code (first wins)."""
    index: Dict[str, str] = {}
    for code, synonyms in CATEGORY_SYNONYMS:
        for synonym in (code, *synonyms):
            index.setdefault(normalize_vendor_code(synonym), code)
    return index


def find_synonym_conflicts() -> List[Tuple[str, str, str]]:
    """
    Find normalized synonyms claimed by more than one category.

    Returns:
        List of (normalized synonym, first code, second code) tuples.
    """
    owner: Dict[str, str] = {}
    conflicts: List[Tuple[str, str, str]] = []
    for code, synonyms in CATEGORY_SYNONYMS:
        for synonym in {normalize_vendor_code(s) for s in (code, *synonyms)}:
            if synonym in owner and owner[synonym] != code:
                conflicts.append((synonym, owner[synonym], code))
            owner.setdefault(synonym, code)
    return conflicts


def is_financial(code: str) -> bool:
    """True if vendors in this category are financial organizations."""
    return code in FINANCIAL_CATEGORIES


def describe_code(code: str) -> str:
    """
    Derive a description from a canonical code.

    Examples:
        >>> describe_code("SHOP_SUPPLIES")
        'Shop Supplies'
    """
    return code.replace("_", " ").title()


def load_descriptions(path: Optional[Path]) -> Dict[str, str]:
    """
    Load category descriptions from a JSON file.

    A missing or unreadable file degrades to an empty mapping; it never
    fails classification.

    Args:
        path: Path to the JSON document, or None.

    Returns:
        Mapping of canonical code to description.
    """
    if path is None:
        return {}

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Vendor category descriptions unavailable ({path}): {e}")
        return {}

    entries: Mapping = {}
    if isinstance(data, dict) and isinstance(data.get("categories"), list):
        entries = {
            item.get("code"): item.get("description")
            for item in data["categories"]
            if isinstance(item, dict)
        }
    elif isinstance(data, dict):
        entries = data
    else:
        logger.warning(f"Vendor category descriptions in {path} have an unexpected shape")

    descriptions = {
        str(code).strip().upper(): str(description).strip()
        for code, description in entries.items()
        if code and isinstance(description, str) and description.strip()
    }
    logger.info(f"Loaded {len(descriptions)} vendor category descriptions from {path}")
    return descriptions


class VendorCategoryClassifier:
    """Classify legacy vendor codes into canonical categories."""

    def __init__(self, descriptions: Optional[Mapping[str, str]] = None):
        self.descriptions = dict(descriptions or {})
        self._index = _build_synonym_index()

    @classmethod
    def from_file(cls, path: Optional[Path]) -> "VendorCategoryClassifier":
        return cls(load_descriptions(path))

    def describe(self, code: str) -> str:
        if code == UNCLASSIFIED:
            return UNCLASSIFIED_DESCRIPTION
        return self.descriptions.get(code) or describe_code(code)

    def classify(self, legacy_code: Optional[str]) -> VendorCategory:
        """
        Classify a legacy vendor code.

        Args:
            legacy_code: Free-text LookupCode from the legacy vendor table.

        Returns:
            VendorCategory with the canonical code and its description.
        """
        normalized = normalize_vendor_code(legacy_code)
        code = self._index.get(normalized, UNCLASSIFIED) if normalized else UNCLASSIFIED
        return VendorCategory(
            code=code,
            description=self.describe(code),
            legacy_normalized=normalized,
        )
