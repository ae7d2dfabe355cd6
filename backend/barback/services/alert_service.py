"""
Inventory Alert Service

Alert lifecycle per ingredient:

    no_alert -> open(low_stock | out_of_stock) -> resolved

- Open when par_level is set, expected <= par_level and no alert is open.
  out_of_stock if expected <= 0, otherwise low_stock.
- Resolve when expected > par_level (strictly). Opening on <= and closing
  on > keeps a value sitting exactly on par from flapping.
- When the open alert's type no longer matches (low -> out or out -> low)
  it is resolved and the matching one opened in the same step.
- Anything else is a no-op; a second open alert is never created.

Callers own the transaction: this module only adds and flushes.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from barback.core.clock import utcnow
from barback.logging_config import get_logger
from barback.models import Ingredient, InventoryAlert
from barback.services.uom_service import format_quantity

logger = get_logger(__name__)


class AlertType(str, Enum):
    """Kind of stock alert"""
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


@dataclass
class AlertOutcome:
    """What one evaluation changed"""
    opened: List[InventoryAlert] = field(default_factory=list)
    resolved: List[InventoryAlert] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.opened or self.resolved)


def classify_stock(expected: Optional[Decimal], par_level: Optional[Decimal]) -> Optional[AlertType]:
    """
    Alert type warranted by an expected quantity, or None if stock is fine.

    Unknown expected quantity or unset par level never warrants an alert.
    """
    if expected is None or par_level is None:
        return None
    if expected > par_level:
        return None
    if expected <= 0:
        return AlertType.OUT_OF_STOCK
    return AlertType.LOW_STOCK


def get_open_alert(db: Session, ingredient_id: int) -> Optional[InventoryAlert]:
    """The single unresolved alert for an ingredient, if any."""
    return (
        db.query(InventoryAlert)
        .filter(
            InventoryAlert.ingredient_id == ingredient_id,
            InventoryAlert.resolved.is_(False),
        )
        .order_by(InventoryAlert.created_at.desc(), InventoryAlert.id.desc())
        .first()
    )


def _alert_message(ingredient: Ingredient, alert_type: AlertType, expected: Decimal) -> str:
    state = "depleted" if alert_type == AlertType.OUT_OF_STOCK else "below par level"
    expected_str = format_quantity(
        expected,
        ingredient.base_unit,
        ingredient.purchase_unit,
        ingredient.purchase_unit_quantity,
    )
    par_str = format_quantity(ingredient.par_level, ingredient.base_unit)
    return f"{ingredient.name} expected inventory is {state} (expected: {expected_str}, par: {par_str})"


def _resolve(alert: InventoryAlert, now: datetime) -> None:
    alert.resolved = True
    alert.resolved_at = now


def evaluate_alert(
    db: Session,
    ingredient: Ingredient,
    expected: Optional[Decimal],
    now: Optional[datetime] = None,
) -> AlertOutcome:
    """
    Apply the alert state machine for one ingredient.

    Args:
        db: Database session (caller commits)
        ingredient: Ingredient being evaluated (par_level is read from it)
        expected: Freshly computed expected quantity
        now: Timestamp for created_at / resolved_at

    Returns:
        AlertOutcome listing alerts opened and resolved
    """
    now = now or utcnow()
    outcome = AlertOutcome()
    par_level = ingredient.par_level

    if expected is None or par_level is None:
        return outcome

    open_alert = get_open_alert(db, ingredient.id)
    wanted = classify_stock(expected, par_level)

    if wanted is None:
        if open_alert is not None:
            _resolve(open_alert, now)
            outcome.resolved.append(open_alert)
            logger.info(
                f"Resolved {open_alert.alert_type} alert for {ingredient.name}",
                extra={"ingredient_id": ingredient.id, "expected": str(expected)},
            )
        return outcome

    if open_alert is not None:
        if open_alert.alert_type == wanted.value:
            return outcome
        # Reclassify: close the old one before the partial unique index sees the new one
        _resolve(open_alert, now)
        outcome.resolved.append(open_alert)
        db.flush()

    alert = InventoryAlert(
        ingredient_id=ingredient.id,
        alert_type=wanted.value,
        threshold=par_level,
        expected_quantity=expected,
        message=_alert_message(ingredient, wanted, expected),
        resolved=False,
        created_at=now,
    )
    db.add(alert)
    db.flush()
    outcome.opened.append(alert)

    logger.info(
        f"Opened {wanted.value} alert for {ingredient.name}",
        extra={
            "ingredient_id": ingredient.id,
            "expected": str(expected),
            "par_level": str(par_level),
        },
    )
    return outcome


def list_open_alerts(db: Session) -> List[InventoryAlert]:
    """All unresolved alerts, newest first."""
    return (
        db.query(InventoryAlert)
        .filter(InventoryAlert.resolved.is_(False))
        .order_by(InventoryAlert.created_at.desc(), InventoryAlert.id.desc())
        .all()
    )
