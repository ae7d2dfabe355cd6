"""
UOM Configuration - Single Source of Truth

This module defines ALL unit-of-measure tables used by the engine.
Every other file that needs unit information MUST import from here.

Three domains, each normalized to one canonical base:
- volume: ml
- weight: g
- count:  each (no scaling; every count unit is one item)

Conversion is only valid inside a domain. "oz" is a fluid ounce; weight
ounces are not supported because bar recipes measure spirits by volume.

The tables are immutable mappings built once at import time.
"""
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional


class UnitCategory(str, Enum):
    """Domain a unit belongs to"""
    VOLUME = "volume"
    WEIGHT = "weight"
    COUNT = "count"
    UNKNOWN = "unknown"


# =============================================================================
# VOLUME UNITS -> ml
# =============================================================================

ML_PER_UNIT: Mapping[str, Decimal] = MappingProxyType({
    "ml": Decimal("1"),
    "milliliter": Decimal("1"),
    "millilitre": Decimal("1"),
    "cl": Decimal("10"),
    "centiliter": Decimal("10"),
    "l": Decimal("1000"),
    "liter": Decimal("1000"),
    "litre": Decimal("1000"),
    "oz": Decimal("29.5735"),
    "fl oz": Decimal("29.5735"),
    "floz": Decimal("29.5735"),
    "ounce": Decimal("29.5735"),
    "cup": Decimal("236.588"),
    "tbsp": Decimal("14.787"),
    "tablespoon": Decimal("14.787"),
    "tsp": Decimal("4.929"),
    "teaspoon": Decimal("4.929"),
    "dash": Decimal("0.92"),
    "barspoon": Decimal("5"),
    "pint": Decimal("473.176"),
    "quart": Decimal("946.353"),
    "gallon": Decimal("3785.41"),
})

# =============================================================================
# WEIGHT UNITS -> g
# =============================================================================

G_PER_UNIT: Mapping[str, Decimal] = MappingProxyType({
    "g": Decimal("1"),
    "gram": Decimal("1"),
    "kg": Decimal("1000"),
    "kilogram": Decimal("1000"),
    "lb": Decimal("453.592"),
    "pound": Decimal("453.592"),
})

# =============================================================================
# COUNT UNITS (passthrough)
# =============================================================================

COUNT_UNITS = frozenset({
    "each",
    "ea",
    "piece",
    "pc",
    "pcs",
    "unit",
    "slice",
    "sprig",
    "leaf",
    "wedge",
    "wheel",
    "twist",
})

# Irregular plurals the suffix rules below do not cover
IRREGULAR_PLURALS: Mapping[str, str] = MappingProxyType({
    "leaves": "leaf",
})


# =============================================================================
# LOOKUP
# =============================================================================

def normalize_unit(unit: Optional[str]) -> str:
    """Lowercase, trim, collapse inner whitespace and drop a trailing period."""
    if not unit:
        return ""
    normalized = " ".join(unit.strip().lower().split())
    return normalized.rstrip(".")


def _singular_candidates(unit: str):
    """Yield the unit itself then plausible singular spellings."""
    yield unit
    if unit in IRREGULAR_PLURALS:
        yield IRREGULAR_PLURALS[unit]
    if unit.endswith("es"):
        yield unit[:-2]
    if unit.endswith("s"):
        yield unit[:-1]


def canonical_unit(unit: Optional[str]) -> Optional[str]:
    """
    Resolve a free-text unit to its table key.

    Case-insensitive and singular/plural aware ("Ounces" -> "ounce",
    "leaves" -> "leaf"). Returns None when the unit is not in any table.
    """
    normalized = normalize_unit(unit)
    if not normalized:
        return None
    for candidate in _singular_candidates(normalized):
        if candidate in ML_PER_UNIT or candidate in G_PER_UNIT or candidate in COUNT_UNITS:
            return candidate
    return None


def get_unit_category(unit: Optional[str]) -> UnitCategory:
    """Classify a unit into its domain."""
    key = canonical_unit(unit)
    if key is None:
        return UnitCategory.UNKNOWN
    if key in ML_PER_UNIT:
        return UnitCategory.VOLUME
    if key in G_PER_UNIT:
        return UnitCategory.WEIGHT
    return UnitCategory.COUNT


def get_base_factor(unit: Optional[str]) -> Optional[Decimal]:
    """
    Factor converting one ``unit`` into its domain's canonical base.

    Returns None for unknown units.
    """
    key = canonical_unit(unit)
    if key is None:
        return None
    if key in ML_PER_UNIT:
        return ML_PER_UNIT[key]
    if key in G_PER_UNIT:
        return G_PER_UNIT[key]
    return Decimal("1")
