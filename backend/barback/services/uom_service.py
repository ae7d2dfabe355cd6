"""
Unit of Measure (UOM) Service

Provides conversion functions between compatible units of measure,
purchase-unit scaling, free-text quantity parsing and display formatting.

All arithmetic is done in Decimal at full precision. Rounding only happens
in round_quantity() (persistence) and format_quantity() (display), so
nested prep-recipe scaling does not compound rounding error.
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Optional, Tuple, Union

from barback.core.settings import get_settings
from barback.core.uom_config import (
    UnitCategory,
    get_base_factor,
    get_unit_category,
    normalize_unit,
)
from barback.exceptions import IncompatibleUnitsError

Number = Union[Decimal, int, float, str]

# Leading numeric literal followed by an optional unit token
_QUANTITY_PATTERN = re.compile(r"^(\d+(?:\.\d*)?|\.\d+)\s*(.*)$")


def to_decimal(value: Number) -> Decimal:
    """Coerce to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def unit_category(unit: Optional[str]) -> UnitCategory:
    """
    Classify a unit as volume, weight, count or unknown.

    Case-insensitive and singular/plural aware.
    """
    return get_unit_category(unit)


def convert_quantity(quantity: Number, from_unit: Optional[str], to_unit: Optional[str]) -> Decimal:
    """
    Convert a quantity from one unit to another within a single domain.

    Args:
        quantity: The quantity to convert
        from_unit: Source unit (e.g., 'oz')
        to_unit: Target unit (e.g., 'ml')

    Returns:
        Converted quantity

    Raises:
        IncompatibleUnitsError: If either unit is unknown or the units belong
            to different domains (volume vs weight vs count)

    Example:
        >>> convert_quantity(Decimal("2"), "oz", "ml")
        Decimal('59.1470')
    """
    qty = to_decimal(quantity)

    # Same unit is always an identity, even for units outside the tables
    if normalize_unit(from_unit) == normalize_unit(to_unit):
        return qty

    from_category = get_unit_category(from_unit)
    to_category = get_unit_category(to_unit)

    if from_category == UnitCategory.UNKNOWN:
        raise IncompatibleUnitsError(from_unit, to_unit, reason=f"unknown unit {from_unit!r}")
    if to_category == UnitCategory.UNKNOWN:
        raise IncompatibleUnitsError(from_unit, to_unit, reason=f"unknown unit {to_unit!r}")
    if from_category != to_category:
        raise IncompatibleUnitsError(
            from_unit,
            to_unit,
            reason=f"{from_category.value} cannot be converted to {to_category.value}",
        )

    # from_unit -> canonical base -> to_unit
    return qty * get_base_factor(from_unit) / get_base_factor(to_unit)


def convert_quantity_safe(
    quantity: Number,
    from_unit: Optional[str],
    to_unit: Optional[str],
) -> Tuple[Decimal, bool]:
    """
    Convert a quantity, returning the original if conversion fails.

    Returns:
        Tuple of (converted_quantity, was_successful)
        - was_successful=True: Conversion succeeded or units already match
        - was_successful=False: Units unknown or incompatible; quantity unchanged
    """
    try:
        return convert_quantity(quantity, from_unit, to_unit), True
    except IncompatibleUnitsError:
        return to_decimal(quantity), False


def units_compatible(unit1: Optional[str], unit2: Optional[str]) -> bool:
    """Check if two units can be converted into each other."""
    return convert_quantity_safe(Decimal("1"), unit1, unit2)[1]


# ============================================================================
# Purchase units
# ============================================================================

def purchase_to_base(purchase_qty: Number, units_per_purchase: Number) -> Decimal:
    """
    Convert a purchase-unit quantity to base units.

    Example: 2 bottles at 750 ml per bottle -> 1500 ml
    """
    return to_decimal(purchase_qty) * to_decimal(units_per_purchase)


def base_to_purchase(base_qty: Number, units_per_purchase: Optional[Number]) -> Decimal:
    """
    Convert a base-unit quantity to purchase units.

    Example: 1500 ml at 750 ml per bottle -> 2 bottles

    A missing or non-positive ``units_per_purchase`` is not a conversion:
    the base quantity is returned unchanged so callers can still display
    something. Callers that need a real purchase-unit figure must check the
    multiplier themselves.
    """
    qty = to_decimal(base_qty)
    if units_per_purchase is None:
        return qty
    factor = to_decimal(units_per_purchase)
    if factor <= 0:
        return qty
    return qty / factor


# ============================================================================
# Free-text parsing
# ============================================================================

class ParsedQuantity(NamedTuple):
    """Quantity in the ingredient's base unit plus the text it came from."""
    quantity: Decimal
    raw: str


def _matches_purchase_unit(unit_str: str, purchase_unit: str) -> bool:
    """Exact, plural or singular match against the purchase unit name."""
    pu = normalize_unit(purchase_unit)
    if not pu:
        return False
    candidates = {pu, pu + "s", pu + "es"}
    if pu.endswith("s"):
        candidates.add(pu[:-1])
    return unit_str in candidates


def parse_quantity_input(
    text: Optional[str],
    base_unit: str,
    purchase_unit: Optional[str] = None,
    purchase_unit_quantity: Optional[Number] = None,
) -> Optional[ParsedQuantity]:
    """
    Parse a user-entered quantity that may carry a unit.

    Resolution order for the unit token:
    1. No unit -> the number is already in base units
    2. Purchase unit (exact, plural or singular) -> scaled by purchase_unit_quantity
    3. Any unit convertible to base_unit -> converted
    4. Anything else -> the number is taken as base units

    Examples:
        "2 bottles" (ml, bottle, 750) -> 1500
        "1.5"                         -> 1.5
        "16 oz" (ml)                  -> 473.176

    Returns:
        ParsedQuantity, or None for empty or non-numeric input
    """
    if text is None:
        return None
    trimmed = text.strip()
    if not trimmed:
        return None

    match = _QUANTITY_PATTERN.match(trimmed)
    if not match:
        return None

    number = Decimal(match.group(1))
    unit_str = normalize_unit(match.group(2))

    if not unit_str:
        return ParsedQuantity(number, trimmed)

    if (
        purchase_unit
        and purchase_unit_quantity is not None
        and to_decimal(purchase_unit_quantity) > 0
        and _matches_purchase_unit(unit_str, purchase_unit)
    ):
        return ParsedQuantity(purchase_to_base(number, purchase_unit_quantity), trimmed)

    converted, ok = convert_quantity_safe(number, unit_str, base_unit)
    if ok:
        return ParsedQuantity(converted, trimmed)

    return ParsedQuantity(number, trimmed)


# ============================================================================
# Rounding & display
# ============================================================================

def round_quantity(quantity: Number, places: Optional[int] = None) -> Decimal:
    """
    Round to a fixed number of decimal places (half up).

    Defaults to QUANTITY_SCALE, the precision of persisted quantity columns.
    """
    if places is None:
        places = get_settings().QUANTITY_SCALE
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(quantity).quantize(exponent, rounding=ROUND_HALF_UP)


def _display_number(quantity: Number, places: int) -> str:
    """Fixed-point string without trailing zeros."""
    qty_str = format(round_quantity(quantity, places), "f")
    if "." in qty_str:
        qty_str = qty_str.rstrip("0").rstrip(".")
    if qty_str == "-0":
        qty_str = "0"
    return qty_str


def format_quantity(
    quantity: Number,
    base_unit: str,
    purchase_unit: Optional[str] = None,
    purchase_unit_quantity: Optional[Number] = None,
    places: Optional[int] = None,
) -> str:
    """
    Format a quantity with its unit for display.

    When a purchase unit is configured both are shown:
        format_quantity(1500, "ml", "bottle", 750) -> "2 bottle (1500 ml)"
    """
    if places is None:
        places = get_settings().DISPLAY_DECIMAL_PLACES

    base_str = f"{_display_number(quantity, places)} {base_unit}"
    if (
        purchase_unit
        and purchase_unit_quantity is not None
        and to_decimal(purchase_unit_quantity) > 0
    ):
        in_purchase = base_to_purchase(quantity, purchase_unit_quantity)
        return f"{_display_number(in_purchase, places)} {purchase_unit} ({base_str})"
    return base_str
