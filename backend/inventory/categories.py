"""
Category Standardizer — the only function that assigns a category.

Priority:
  1. Matched catalog product → its category / sub_category
  2. Series rule table (code prefix or whole-word name token), first hit wins
  3. Default category ("General")

Categories are never stored on ledger rows. Every read path calls
``standardize`` again, so one product identity cannot end up under two
categories depending on which feed recorded it.
"""

import re
from dataclasses import dataclass
from typing import NamedTuple

from inventory.catalog import CatalogEntry
from inventory.parsing import base_name, extract_code

DEFAULT_CATEGORY = "General"
DEFAULT_SUB_CATEGORY = "General"

_WORD = re.compile(r"[A-Z0-9]+")


class CategoryAssignment(NamedTuple):
    category: str
    sub_category: str


@dataclass(frozen=True)
class SeriesRule:
    category: str
    code_prefixes: tuple[str, ...] = ()
    name_tokens: tuple[str, ...] = ()

    def matches(self, code: str, name: str) -> bool:
        if code and any(code.startswith(prefix) for prefix in self.code_prefixes):
            return True
        # Tokens match whole words only: "VEST" must not hit "HARVEST"
        words = f" {' '.join(_WORD.findall(name.upper()))} "
        return any(f" {token} " in words for token in self.name_tokens)


# Ordered: earlier rules win (a "SOLACE VEST" is SOLACE, not COLOR_VEST)
SERIES_RULES: tuple[SeriesRule, ...] = (
    SeriesRule("SOLACE", code_prefixes=("SBE", "SB"), name_tokens=("SOLACE",)),
    SeriesRule("BRITNY", code_prefixes=("BB",), name_tokens=("BRITNY",)),
    SeriesRule("COLOR_VEST", code_prefixes=("CV",), name_tokens=("COLOR VEST", "VEST")),
    SeriesRule("SHORTS", code_prefixes=("SW",), name_tokens=("SHORTS",)),
    SeriesRule("BW_SERIES", code_prefixes=("BWS", "BW")),
)


def standardize(
    raw_description: str,
    matched_product: CatalogEntry | None = None,
    *,
    default_category: str = DEFAULT_CATEGORY,
    default_sub_category: str = DEFAULT_SUB_CATEGORY,
) -> CategoryAssignment:
    """Return the canonical (category, sub_category) for a product identity."""
    if matched_product is not None:
        return CategoryAssignment(
            category=(matched_product.category or "").strip() or default_category,
            sub_category=(matched_product.sub_category or "").strip() or default_sub_category,
        )

    code = extract_code(raw_description) or ""
    name = base_name(raw_description).upper()
    for rule in SERIES_RULES:
        if rule.matches(code, name):
            return CategoryAssignment(category=rule.category, sub_category=default_sub_category)

    return CategoryAssignment(category=default_category, sub_category=default_sub_category)
