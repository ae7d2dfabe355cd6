"""
Expected Inventory Reconciliation Service

Single entry point for every recalculation trigger (manual count, sales
sync, stock-change webhook, manual request):

    expected_quantity = last_counted_quantity - depletion(last_counted_at, triggered_at]

1. Snapshot the recipe graph and expand every on-menu recipe
2. Lock ingredient rows and read each ingredient's count baseline
3. Aggregate sales since the earliest baseline, bounded per ingredient
4. Write expected_quantity and apply the alert transition for each ingredient
5. Commit everything, with the run record, as one transaction

Ingredients never counted keep expected_quantity = None. Negative expected
quantities are kept as-is (over-pour, waste or bad data are worth seeing).
A pass never overwrites an ingredient already written by a pass with a
later trigger time.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barback.core.clock import as_naive_utc, utcnow
from barback.core.settings import Settings, get_settings
from barback.exceptions import PersistenceError
from barback.logging_config import get_logger
from barback.models import Ingredient, RecalculationRun
from barback.services.alert_service import evaluate_alert
from barback.services.bom_service import (
    BOMExpander,
    expand_on_menu_recipes,
    summarize_diagnostics,
)
from barback.services.depletion_service import DepletionAggregator, load_sales_rows
from barback.services.recipe_graph import load_recipe_graph
from barback.services.uom_service import round_quantity, to_decimal

logger = get_logger(__name__)


class RecalculationTrigger(str, Enum):
    """Event that asked for a recalculation"""
    MANUAL_COUNT = "manual_count"
    SALES_SYNC = "sales_sync"
    STOCK_WEBHOOK = "stock_webhook"
    MANUAL = "manual"


class RecalculationStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IngredientReconciliation:
    """How one ingredient's expected quantity was derived"""
    ingredient_id: int
    name: str
    last_counted_quantity: Optional[Decimal]
    depletion: Decimal
    expected_quantity: Optional[Decimal]


@dataclass
class RecalculationResult:
    """Pass diagnostic"""
    trigger: str
    triggered_at: datetime
    run_id: Optional[int] = None
    ingredients_updated: int = 0
    alerts_created: int = 0
    alerts_resolved: int = 0
    unmatched_sales: int = 0
    cycles_detected: int = 0
    unit_errors: int = 0
    stale_skipped: int = 0
    ingredients: Dict[int, IngredientReconciliation] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "triggered_at": self.triggered_at.isoformat(),
            "ingredients_updated": self.ingredients_updated,
            "alerts_created": self.alerts_created,
            "alerts_resolved": self.alerts_resolved,
            "unmatched_sales": self.unmatched_sales,
            "cycles_detected": self.cycles_detected,
            "unit_errors": self.unit_errors,
            "stale_skipped": self.stale_skipped,
            "errors": list(self.errors),
        }


def compute_expected_quantity(
    last_counted_quantity: Optional[Decimal],
    depletion: Decimal,
) -> Optional[Decimal]:
    """
    Reconcile a count baseline with depletion since that count.

    Returns None when the ingredient has never been counted; there is no
    baseline to subtract from and full stock is never assumed.
    """
    if last_counted_quantity is None:
        return None
    return to_decimal(last_counted_quantity) - depletion


class InventoryRecalculator:
    """
    Single-writer command handler for expected inventory.

    Passes and count baseline writes are serialized inside the process by
    a class-level lock, and across processes by row locks on the
    ingredients table. Stale passes
    (trigger time older than what is already written) skip the ingredient
    instead of regressing it.
    """

    write_lock = threading.Lock()

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def recalculate(
        self,
        trigger: RecalculationTrigger = RecalculationTrigger.MANUAL,
        triggered_at: Optional[datetime] = None,
    ) -> RecalculationResult:
        """
        Run one recalculation pass and commit it.

        Args:
            trigger: What caused the pass
            triggered_at: Wall-clock time of the triggering event; sales up
                to and including this instant are counted

        Returns:
            RecalculationResult with the pass diagnostic

        Raises:
            PersistenceError: The store rejected the pass. Nothing from the
                pass is committed; a failed run record is written instead.

        Any other error rolls the pass back and propagates unchanged.
        """
        trigger = RecalculationTrigger(trigger)
        triggered_at = as_naive_utc(triggered_at) if triggered_at else utcnow()

        with self.write_lock:
            try:
                result = self._run_pass(trigger, triggered_at)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"Recalculation pass failed: {e}",
                    exc_info=True,
                    extra={"trigger": trigger.value, "triggered_at": triggered_at.isoformat()},
                )
                self._record_failed_run(trigger, triggered_at, str(e))
                raise PersistenceError(
                    "Recalculation pass rolled back",
                    operation="recalculate",
                    details={"trigger": trigger.value, "error": str(e)},
                ) from e
            except Exception:
                self.db.rollback()
                logger.error(
                    "Recalculation pass aborted",
                    exc_info=True,
                    extra={"trigger": trigger.value, "triggered_at": triggered_at.isoformat()},
                )
                raise

        logger.info(
            f"Recalculation completed: {result.ingredients_updated} ingredients updated, "
            f"{result.alerts_created} alerts created, {result.alerts_resolved} resolved",
            extra=result.to_dict(),
        )
        return result

    # ------------------------------------------------------------------

    def _run_pass(self, trigger: RecalculationTrigger, triggered_at: datetime) -> RecalculationResult:
        db = self.db
        run = RecalculationRun(
            trigger=trigger.value,
            triggered_at=triggered_at,
            started_at=utcnow(),
            status=RecalculationStatus.RUNNING.value,
        )
        db.add(run)
        db.flush()

        result = RecalculationResult(trigger=trigger.value, triggered_at=triggered_at, run_id=run.id)

        # Step 1: Snapshot and expand the recipe graph
        graph = load_recipe_graph(db, default_base_unit=self.settings.DEFAULT_BASE_UNIT)
        expander = BOMExpander(graph)
        expand_on_menu_recipes(expander)

        # Step 2: Lock ingredient rows (id order keeps lock acquisition deadlock-free)
        ingredients = (
            db.query(Ingredient)
            .order_by(Ingredient.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        baselines = {
            ing.id: ing.last_counted_at
            for ing in ingredients
            if ing.last_counted_quantity is not None and ing.last_counted_at is not None
        }

        # Step 3: Aggregate depletion since each ingredient's own count
        aggregator = DepletionAggregator(
            expander, count_off_menu_sales=self.settings.COUNT_OFF_MENU_SALES
        )
        if baselines:
            rows = load_sales_rows(db, after=min(baselines.values()), until=triggered_at)
            depletion = aggregator.aggregate(rows, since=baselines, as_of=triggered_at)
        else:
            depletion = aggregator.aggregate([])
        result.unmatched_sales = depletion.unmatched_sales

        # Step 4: Write expected quantity + alert transition per ingredient
        for ing in ingredients:
            if ing.expected_as_of is not None and ing.expected_as_of > triggered_at:
                result.stale_skipped += 1
                logger.debug(
                    f"Skipping {ing.name}: already reconciled as of {ing.expected_as_of}",
                    extra={"ingredient_id": ing.id},
                )
                continue

            used = depletion.usage.get(ing.id, Decimal("0"))
            baseline = ing.last_counted_quantity if ing.id in baselines else None
            try:
                expected = compute_expected_quantity(baseline, used)
                if expected is not None:
                    expected = round_quantity(expected, self.settings.QUANTITY_SCALE)
            except ArithmeticError as e:
                message = f"{ing.name}: could not compute expected quantity ({e})"
                result.errors.append(message)
                logger.warning(message, extra={"ingredient_id": ing.id})
                continue

            result.ingredients[ing.id] = IngredientReconciliation(
                ingredient_id=ing.id,
                name=ing.name,
                last_counted_quantity=baseline,
                depletion=used,
                expected_quantity=expected,
            )

            if expected is None:
                if ing.expected_quantity is not None:
                    ing.expected_quantity = None
                continue

            ing.expected_quantity = expected
            ing.expected_as_of = triggered_at
            result.ingredients_updated += 1

            outcome = evaluate_alert(db, ing, expected, now=triggered_at)
            result.alerts_created += len(outcome.opened)
            result.alerts_resolved += len(outcome.resolved)

        diagnostics = expander.diagnostics
        result.cycles_detected = diagnostics.cycles_detected
        result.unit_errors = diagnostics.unit_error_count
        result.errors.extend(summarize_diagnostics(diagnostics))

        # Step 5: Close out the run record
        run.ingredients_updated = result.ingredients_updated
        run.alerts_created = result.alerts_created
        run.alerts_resolved = result.alerts_resolved
        run.unmatched_sales = result.unmatched_sales
        run.cycles_detected = result.cycles_detected
        run.unit_errors = result.unit_errors
        run.stale_skipped = result.stale_skipped
        run.error_message = "\n".join(result.errors) or None
        run.status = RecalculationStatus.COMPLETED.value
        run.completed_at = utcnow()
        db.flush()

        return result

    def _record_failed_run(self, trigger: RecalculationTrigger, triggered_at: datetime, error: str) -> None:
        """Best-effort audit row for a rolled-back pass."""
        try:
            self.db.add(
                RecalculationRun(
                    trigger=trigger.value,
                    triggered_at=triggered_at,
                    started_at=utcnow(),
                    completed_at=utcnow(),
                    status=RecalculationStatus.FAILED.value,
                    error_message=error,
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not record failed recalculation run")


def recalculate_expected_inventory(
    db: Session,
    trigger: RecalculationTrigger = RecalculationTrigger.MANUAL,
    triggered_at: Optional[datetime] = None,
) -> RecalculationResult:
    """Convenience wrapper used by count submission, sales sync and webhooks."""
    return InventoryRecalculator(db).recalculate(trigger=trigger, triggered_at=triggered_at)


def list_recalculation_runs(db: Session, limit: int = 20) -> List[RecalculationRun]:
    """Most recent passes first."""
    return (
        db.query(RecalculationRun)
        .order_by(RecalculationRun.triggered_at.desc(), RecalculationRun.id.desc())
        .limit(limit)
        .all()
    )
