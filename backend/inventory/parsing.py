"""
Product Description Parsing — one place for every description regex.

External feeds describe apparel as loosely structured strings:

    "[SB42] SOLACE-BLACK 42"     code SB42, base SOLACE, color BLACK, size 42
    "BRITNY-WHITE XL"            no code,   base BRITNY, color WHITE, size XL
    "COLOR VEST M"               no code,   base COLOR VEST, size M

All functions here are pure; the matcher, the category standardizer and the
sync pipeline call them instead of carrying their own patterns.
"""

import re
from typing import NamedTuple

DEFAULT_VARIANT = "Default"

SIZE_TOKENS = ("XS", "S", "M", "L", "XL", "XXL", "XXXL", "2XL", "3XL", "4XL")
_SIZE_ALT = r"(?:\d+|" + "|".join(sorted(SIZE_TOKENS, key=len, reverse=True)) + r")"

_CODE_TOKEN = re.compile(r"\[([^\]]+)\]")
_CODE_PREFIX = re.compile(r"^\s*\[[^\]]*\]\s*")
_COLOR_AND_SIZE_SUFFIX = re.compile(r"-([A-Z]+)\s+(" + _SIZE_ALT + r")$", re.IGNORECASE)
_SIZE_SUFFIX = re.compile(r"\s+(" + _SIZE_ALT + r")$", re.IGNORECASE)
_COLOR_SUFFIX = re.compile(r"-([A-Z]+)$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


class NormalizedKey(NamedTuple):
    """Grouping identity for a description that has no catalog match."""

    base_name: str
    color: str
    size: str


def _clean(text: str | None) -> str:
    return _WHITESPACE.sub(" ", (text or "").strip())


def extract_code(description: str | None) -> str | None:
    """Return the bracketed product code (``"[SB42] ..."`` -> ``"SB42"``), if any."""
    match = _CODE_TOKEN.search(description or "")
    if not match:
        return None
    code = match.group(1).strip().upper()
    return code or None


def strip_code(description: str | None) -> str:
    """Drop a leading bracketed code and normalize whitespace."""
    return _clean(_CODE_PREFIX.sub("", description or ""))


def _split_variant(description: str | None) -> tuple[str, str | None, str | None]:
    name = strip_code(description)
    color = size = None

    match = _COLOR_AND_SIZE_SUFFIX.search(name)
    if match:
        color, size = match.group(1), match.group(2)
        name = name[: match.start()]
    else:
        match = _SIZE_SUFFIX.search(name)
        if match:
            size = match.group(1)
            name = name[: match.start()]
        match = _COLOR_SUFFIX.search(name)
        if match:
            color = match.group(1)
            name = name[: match.start()]

    return name.strip(" -"), color, size


def extract_color(description: str | None) -> str | None:
    """Trailing ``-COLOR`` token, upper-cased."""
    return (_split_variant(description)[1] or "").upper() or None


def extract_size(description: str | None) -> str | None:
    """Trailing size token (digits or a letter size), upper-cased."""
    return (_split_variant(description)[2] or "").upper() or None


def base_name(description: str | None) -> str:
    """Description with code, color and size removed."""
    name = _split_variant(description)[0]
    return name or strip_code(description)


def normalized_key(description: str | None) -> NormalizedKey:
    """Upper-cased ``(base_name, color, size)``; missing parts become ``Default``."""
    name, color, size = _split_variant(description)
    return NormalizedKey(
        base_name=(name or strip_code(description)).upper(),
        color=color.upper() if color else DEFAULT_VARIANT,
        size=size.upper() if size else DEFAULT_VARIANT,
    )
