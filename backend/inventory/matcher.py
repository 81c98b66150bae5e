"""
Product Identity Resolver — raw description → canonical catalog product.

Stages (first hit wins):
  1. exact  — catalog name equals the description minus its [CODE] prefix
  2. code   — the [CODE] token appears inside a catalog name
  3. fuzzy  — trigram similarity of the names with color/size stripped,
              best candidate accepted at >= threshold (0.7)
  4. none   — no catalog product; grouping falls back to the normalized key

The resolver is a pure function of (description, catalog snapshot). The
snapshot is iterated in its frozen order and ties keep the earlier
candidate, so repeated calls always return the same product and tier.
"""

import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from inventory.catalog import CatalogEntry, snapshot
from inventory.parsing import NormalizedKey, base_name, extract_code, normalized_key, strip_code

DEFAULT_FUZZY_THRESHOLD = 0.7

_WORD = re.compile(r"[a-z0-9]+")


class MatchTier(str, Enum):
    EXACT = "exact"
    CODE = "code"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    normalized_key: NormalizedKey
    tier: MatchTier
    product: CatalogEntry | None = None
    score: float = 0.0

    @property
    def matched_product_id(self) -> uuid.UUID | None:
        return self.product.product_id if self.product else None

    @property
    def is_matched(self) -> bool:
        return self.product is not None


def _trigrams(text: str) -> set[str]:
    grams: set[str] = set()
    for word in _WORD.findall(text.lower()):
        padded = f"  {word} "
        grams.update(padded[i : i + 3] for i in range(len(padded) - 2))
    return grams


def trigram_similarity(left: str, right: str) -> float:
    """Shared trigrams over all trigrams, computed the way pg_trgm does."""
    a, b = _trigrams(left), _trigrams(right)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def match_product(
    description: str,
    catalog: Sequence[CatalogEntry],
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> MatchResult:
    """Resolve ``description`` against an agency's catalog snapshot."""
    key = normalized_key(description)
    candidates = snapshot(catalog)
    if not candidates:
        return MatchResult(normalized_key=key, tier=MatchTier.NONE)

    wanted = strip_code(description).casefold()
    for entry in candidates:
        if " ".join(entry.name.split()).casefold() == wanted:
            return MatchResult(normalized_key=key, tier=MatchTier.EXACT, product=entry, score=1.0)

    code = extract_code(description)
    if code:
        needle = code.casefold()
        for entry in candidates:
            if needle in entry.name.casefold():
                return MatchResult(normalized_key=key, tier=MatchTier.CODE, product=entry, score=1.0)

    target = base_name(description)
    best: CatalogEntry | None = None
    best_score = 0.0
    for entry in candidates:
        score = trigram_similarity(target, base_name(entry.name))
        if score > best_score:
            best, best_score = entry, score

    if best is not None and best_score >= threshold:
        return MatchResult(normalized_key=key, tier=MatchTier.FUZZY, product=best, score=round(best_score, 4))
    return MatchResult(normalized_key=key, tier=MatchTier.NONE, score=round(best_score, 4))
