"""Address clean-up applied before cache lookups and provider queries."""

from __future__ import annotations

import re

from ...config import settings

STREET_SUFFIXES: dict[str, str] = {
    "st": "Street",
    "ave": "Avenue",
    "av": "Avenue",
    "rd": "Road",
    "blvd": "Boulevard",
    "dr": "Drive",
    "cres": "Crescent",
    "crt": "Court",
    "ct": "Court",
    "pl": "Place",
    "ln": "Lane",
    "hwy": "Highway",
    "pkwy": "Parkway",
    "sq": "Square",
    "terr": "Terrace",
    "ter": "Terrace",
    "cir": "Circle",
}

DIRECTIONS: dict[str, str] = {"e": "East", "w": "West", "n": "North", "s": "South"}

# A suffix only counts when it ends the street part, so "St Clair Ave" keeps its "St".
_SUFFIX_PATTERN = re.compile(
    r"\b(" + "|".join(sorted(STREET_SUFFIXES, key=len, reverse=True)) + r")\.?"
    r"(?=\s*(?:,|$|\b(?:[ewns]|east|west|north|south)\b\.?\s*(?:,|$)))",
    re.IGNORECASE,
)
_DIRECTION_PATTERN = re.compile(
    r"\b(" + "|".join(v for v in STREET_SUFFIXES.values()) + r")\s+([ewns])\.?(?=\s*(?:,|$))",
    re.IGNORECASE,
)


def clean_address(address: str) -> str:
    """Collapse whitespace and stray commas."""
    cleaned = re.sub(r"\s+", " ", address.strip())
    cleaned = re.sub(r"\s*,\s*", ", ", cleaned)
    cleaned = re.sub(r"(?:,\s*){2,}", ", ", cleaned)
    return cleaned.strip(", ").strip()


def expand_abbreviations(address: str) -> str:
    expanded = _SUFFIX_PATTERN.sub(lambda m: STREET_SUFFIXES[m.group(1).lower()], address)
    return _DIRECTION_PATTERN.sub(lambda m: f"{m.group(1)} {DIRECTIONS[m.group(2).lower()]}", expanded)


def has_region(address: str, qualifier: str) -> bool:
    """True when any comma-separated part of ``qualifier`` already appears in ``address``.

    Short parts such as province codes must match case-sensitively so that a
    word like "on" in a street name is not mistaken for "ON".
    """
    for part in (p.strip() for p in qualifier.split(",")):
        if not part:
            continue
        flags = 0 if len(part) <= 3 else re.IGNORECASE
        if re.search(rf"\b{re.escape(part)}\b", address, flags):
            return True
    return False


def normalize_address(address: str, region_qualifier: str | None = None) -> str:
    qualifier = settings.geocode_region_qualifier if region_qualifier is None else region_qualifier
    normalized = expand_abbreviations(clean_address(address))
    if normalized and qualifier and not has_region(normalized, qualifier):
        normalized = f"{normalized}, {qualifier}"
    return normalized
