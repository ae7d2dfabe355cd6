"""
Inventory Service

Boundary operations on ingredient stock:
- Manual counts (ground truth) and their history
- Inventory overview for the stock page

Every accepted count triggers a recalculation pass so expected quantities
and alerts reflect the new baseline straight away.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

import pydantic
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barback.core.clock import as_naive_utc, utcnow
from barback.core.settings import get_settings
from barback.exceptions import NotFoundError, PersistenceError, ValidationError
from barback.logging_config import get_logger
from barback.models import Ingredient, InventoryAlert, InventoryCount
from barback.schemas.inventory import (
    CountSubmission,
    InventoryItem,
    InventoryOverview,
    InventorySummary,
)
from barback.services.alert_service import classify_stock
from barback.services.bom_service import ingredients_used_by_on_menu_recipes
from barback.services.reconciliation_service import (
    InventoryRecalculator,
    RecalculationResult,
    RecalculationTrigger,
    recalculate_expected_inventory,
)
from barback.services.recipe_graph import load_recipe_graph
from barback.services.uom_service import format_quantity, parse_quantity_input, round_quantity

logger = get_logger(__name__)


class CountOutcome(NamedTuple):
    """Result of submitting a count"""
    count: InventoryCount
    baseline_updated: bool
    recalculation: RecalculationResult


def _validate_submission(submission: Union[CountSubmission, Mapping[str, Any]]) -> CountSubmission:
    if isinstance(submission, CountSubmission):
        return submission
    try:
        return CountSubmission.model_validate(submission)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(first.get("msg", "Invalid count"), field=field, details={"errors": str(e)}) from e


def _resolve_count_quantity(submission: CountSubmission, ingredient: Ingredient) -> Decimal:
    """Numeric quantity if given, otherwise parse the free-text quantity."""
    if submission.quantity is not None:
        return submission.quantity

    parsed = parse_quantity_input(
        submission.quantity_raw,
        ingredient.base_unit,
        ingredient.purchase_unit,
        ingredient.purchase_unit_quantity,
    )
    if parsed is None:
        raise ValidationError(
            "Could not read a quantity from the count",
            field="quantity_raw",
            value=submission.quantity_raw,
        )
    return parsed.quantity


def submit_count(
    db: Session,
    submission: Union[CountSubmission, Mapping[str, Any]],
    triggered_at: Optional[datetime] = None,
) -> CountOutcome:
    """
    Record a physical count and recalculate expected inventory.

    A count dated before the ingredient's current baseline is stored in
    history but does not replace the baseline. A count that does replace it
    clears the ingredient's reconciliation time, so the follow-up pass
    recomputes it even when triggered_at is older than the last pass.

    Args:
        db: Database session
        submission: CountSubmission or a plain dict with the same fields
        triggered_at: Trigger time for the recalculation pass (defaults to now)

    Returns:
        CountOutcome with the stored count and the pass diagnostic

    Raises:
        ValidationError: Malformed or negative quantity
        NotFoundError: Ingredient does not exist
        PersistenceError: The count or the pass could not be written
    """
    submission = _validate_submission(submission)
    settings = get_settings()

    with InventoryRecalculator.write_lock:
        ingredient = (
            db.query(Ingredient)
            .filter(Ingredient.id == submission.ingredient_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not ingredient:
            db.rollback()
            raise NotFoundError("Ingredient", submission.ingredient_id)

        try:
            quantity = round_quantity(_resolve_count_quantity(submission, ingredient))
        except ValidationError:
            db.rollback()
            raise
        counted_at = as_naive_utc(submission.counted_at) if submission.counted_at else utcnow()

        count = InventoryCount(
            ingredient_id=ingredient.id,
            quantity=quantity,
            quantity_raw=submission.quantity_raw
            or format_quantity(quantity, ingredient.base_unit, places=settings.QUANTITY_SCALE),
            note=submission.note,
            counted_at=counted_at,
        )
        db.add(count)

        # Compare-and-set: a newer baseline written meanwhile is never replaced
        try:
            updated = (
                db.query(Ingredient)
                .filter(
                    Ingredient.id == ingredient.id,
                    or_(Ingredient.last_counted_at.is_(None), Ingredient.last_counted_at <= counted_at),
                )
                .update(
                    {
                        Ingredient.last_counted_quantity: quantity,
                        Ingredient.last_counted_at: counted_at,
                        Ingredient.expected_as_of: None,
                    },
                    synchronize_session=False,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(
                "Failed to record inventory count",
                operation="submit_count",
                details={"ingredient_id": submission.ingredient_id},
            ) from e

        baseline_updated = updated == 1
        db.refresh(count)
        db.refresh(ingredient)
        if not baseline_updated:
            logger.info(
                f"Count for {ingredient.name} predates the current baseline, kept in history only",
                extra={
                    "ingredient_id": ingredient.id,
                    "counted_at": counted_at.isoformat(),
                    "last_counted_at": ingredient.last_counted_at.isoformat(),
                },
            )

        logger.info(
            f"Recorded count for {ingredient.name}: {quantity} {ingredient.base_unit}",
            extra={"ingredient_id": ingredient.id, "count_id": count.id},
        )

    result = recalculate_expected_inventory(
        db, trigger=RecalculationTrigger.MANUAL_COUNT, triggered_at=triggered_at
    )
    return CountOutcome(count=count, baseline_updated=baseline_updated, recalculation=result)


def get_count_history(db: Session, ingredient_id: int, limit: Optional[int] = None) -> List[InventoryCount]:
    """Counts for one ingredient, newest first."""
    if not db.query(Ingredient.id).filter(Ingredient.id == ingredient_id).first():
        raise NotFoundError("Ingredient", ingredient_id)

    limit = limit or get_settings().COUNT_HISTORY_LIMIT
    return (
        db.query(InventoryCount)
        .filter(InventoryCount.ingredient_id == ingredient_id)
        .order_by(InventoryCount.counted_at.desc(), InventoryCount.id.desc())
        .limit(limit)
        .all()
    )


def get_inventory_overview(db: Session) -> InventoryOverview:
    """
    Ingredients used by on-menu recipes, with open alert counts and a summary.

    Falls back to every ingredient when nothing is on the menu yet, so a
    freshly set up bar still sees its stock list.
    """
    graph = load_recipe_graph(db, default_base_unit=get_settings().DEFAULT_BASE_UNIT)

    query = db.query(Ingredient)
    if graph.on_menu_recipes():
        used_ids = ingredients_used_by_on_menu_recipes(graph)
        query = query.filter(Ingredient.id.in_(used_ids))
    ingredients = query.order_by(Ingredient.category, Ingredient.name).all()

    open_counts: Dict[int, int] = dict(
        db.query(InventoryAlert.ingredient_id, func.count(InventoryAlert.id))
        .filter(InventoryAlert.resolved.is_(False))
        .group_by(InventoryAlert.ingredient_id)
        .all()
    )

    items = []
    summary = InventorySummary()
    categories = set()
    for ing in ingredients:
        expected_display = None
        if ing.expected_quantity is not None:
            expected_display = format_quantity(
                ing.expected_quantity, ing.base_unit, ing.purchase_unit, ing.purchase_unit_quantity
            )
        items.append(
            InventoryItem(
                id=ing.id,
                name=ing.name,
                category=ing.category,
                base_unit=ing.base_unit,
                purchase_unit=ing.purchase_unit,
                purchase_unit_quantity=ing.purchase_unit_quantity,
                par_level=ing.par_level,
                last_counted_quantity=ing.last_counted_quantity,
                last_counted_at=ing.last_counted_at,
                expected_quantity=ing.expected_quantity,
                expected_as_of=ing.expected_as_of,
                expected_display=expected_display,
                open_alerts=open_counts.get(ing.id, 0),
            )
        )

        summary.total += 1
        if ing.last_counted_quantity is not None:
            summary.counted += 1
        if classify_stock(ing.expected_quantity, ing.par_level) is not None:
            summary.below_par += 1
        if ing.category:
            categories.add(ing.category)

    summary.categories = sorted(categories)
    return InventoryOverview(items=items, summary=summary)
