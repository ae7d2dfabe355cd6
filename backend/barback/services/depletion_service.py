"""
Depletion Aggregation Service

Turns sales volume into ingredient consumption:

    consumption(ingredient) = sum over sales rows of
        quantity_sold(row) * per_serving_usage(recipe(row), ingredient)

Sales rows are keyed by free-text menu item name. A row whose name does not
match a known on-menu recipe is recorded as an unmatched sale and otherwise
ignored; it never fails the aggregation.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from barback.logging_config import get_logger
from barback.models import SalesAggregate
from barback.services.bom_service import BOMExpander
from barback.services.recipe_graph import normalize_item_name

logger = get_logger(__name__)

UNKNOWN_ITEM = "unknown_item"
OFF_MENU = "off_menu"


@dataclass(frozen=True)
class SalesRow:
    """Snapshot of one SalesAggregate row"""
    menu_item_name: str
    quantity_sold: Decimal
    sold_at: datetime


@dataclass
class UnmatchedSale:
    """Sales volume that could not be attributed to an on-menu recipe"""
    menu_item_name: str
    reason: str
    quantity_sold: Decimal = Decimal("0")
    rows: int = 0


@dataclass
class DepletionResult:
    """Consumption per ingredient plus the sales that could not be attributed"""
    usage: Dict[int, Decimal] = field(default_factory=dict)
    unmatched: Dict[str, UnmatchedSale] = field(default_factory=dict)
    matched_rows: int = 0

    @property
    def unmatched_sales(self) -> int:
        """Distinct menu item names that matched no recipe"""
        return len(self.unmatched)


class DepletionAggregator:
    """Multiply per-serving usage by sales volume, summed across recipes."""

    def __init__(self, expander: BOMExpander, count_off_menu_sales: bool = False):
        self.expander = expander
        self.count_off_menu_sales = count_off_menu_sales

    def aggregate(
        self,
        rows: Iterable[SalesRow],
        since: Optional[Mapping[int, Optional[datetime]]] = None,
        as_of: Optional[datetime] = None,
    ) -> DepletionResult:
        """
        Aggregate ingredient consumption over a set of sales rows.

        Args:
            rows: Sales aggregates for the window
            since: Optional per-ingredient lower bound. When given, only
                ingredients present in the mapping are tracked, and a row
                depletes an ingredient only if ``sold_at`` is strictly after
                that ingredient's bound (None means no bound).
            as_of: Optional upper bound; rows with ``sold_at > as_of`` are ignored

        Returns:
            DepletionResult with usage keyed by ingredient id
        """
        result = DepletionResult()
        usage: Dict[int, Decimal] = defaultdict(Decimal)

        for row in rows:
            if as_of is not None and row.sold_at > as_of:
                continue

            recipe = self.expander.graph.recipe_by_name(row.menu_item_name)
            if recipe is None:
                self._record_unmatched(result, row, UNKNOWN_ITEM)
                continue
            if not recipe.on_menu and not self.count_off_menu_sales:
                self._record_unmatched(result, row, OFF_MENU)
                continue

            result.matched_rows += 1
            for ingredient_id, per_serving in self.expander.expand_recipe(recipe).items():
                if since is not None:
                    if ingredient_id not in since:
                        continue
                    lower_bound = since[ingredient_id]
                    if lower_bound is not None and row.sold_at <= lower_bound:
                        continue
                usage[ingredient_id] += row.quantity_sold * per_serving

        result.usage = dict(usage)

        if result.unmatched:
            logger.info(
                f"{result.unmatched_sales} sold item(s) did not match an on-menu recipe",
                extra={"unmatched_items": sorted(result.unmatched)},
            )
        return result

    @staticmethod
    def _record_unmatched(result: DepletionResult, row: SalesRow, reason: str) -> None:
        key = normalize_item_name(row.menu_item_name)
        entry = result.unmatched.get(key)
        if entry is None:
            entry = UnmatchedSale(menu_item_name=row.menu_item_name, reason=reason)
            result.unmatched[key] = entry
        entry.quantity_sold += row.quantity_sold
        entry.rows += 1


def load_sales_rows(
    db: Session,
    after: Optional[datetime],
    until: datetime,
) -> List[SalesRow]:
    """
    Load sales aggregates with ``after < sold_at <= until`` as snapshot rows.

    Args:
        db: Database session
        after: Exclusive lower bound, or None for no bound
        until: Inclusive upper bound

    Returns:
        List of SalesRow ordered by sold_at
    """
    query = db.query(SalesAggregate).filter(SalesAggregate.sold_at <= until)
    if after is not None:
        query = query.filter(SalesAggregate.sold_at > after)

    return [
        SalesRow(
            menu_item_name=row.menu_item_name,
            quantity_sold=Decimal(str(row.quantity_sold)),
            sold_at=row.sold_at,
        )
        for row in query.order_by(SalesAggregate.sold_at, SalesAggregate.id).all()
    ]
