"""
Sales Service

Ingests per-item sales aggregates from the POS sync and, by default,
triggers a recalculation pass for the new volume.
"""
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from barback.core.clock import as_naive_utc
from barback.exceptions import PersistenceError, ValidationError
from barback.logging_config import get_logger
from barback.models import SalesAggregate
from barback.schemas.inventory import SalesAggregateIn
from barback.services.reconciliation_service import (
    InventoryRecalculator,
    RecalculationResult,
    RecalculationTrigger,
    recalculate_expected_inventory,
)
from barback.services.uom_service import round_quantity

logger = get_logger(__name__)


def _validate_rows(rows: Iterable[Union[SalesAggregateIn, Mapping[str, Any]]]) -> List[SalesAggregateIn]:
    validated = []
    for index, row in enumerate(rows):
        if isinstance(row, SalesAggregateIn):
            validated.append(row)
            continue
        try:
            validated.append(SalesAggregateIn.model_validate(row))
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(
                f"Sales row {index}: {first.get('msg', 'invalid')}",
                field=field,
                details={"row": index},
            ) from e
    return validated


def record_sales(
    db: Session,
    rows: Iterable[Union[SalesAggregateIn, Mapping[str, Any]]],
    recalculate: bool = True,
    triggered_at: Optional[datetime] = None,
) -> Tuple[List[SalesAggregate], Optional[RecalculationResult]]:
    """
    Store sales aggregates, then optionally recalculate expected inventory.

    The whole batch is validated before anything is written; one bad row
    rejects the batch.

    Args:
        db: Database session
        rows: SalesAggregateIn objects or plain dicts
        recalculate: Run a sales_sync pass after storing
        triggered_at: Trigger time for that pass (defaults to now)

    Returns:
        (stored rows, pass diagnostic or None)

    Raises:
        ValidationError: A row is malformed
        PersistenceError: The batch could not be written
    """
    validated = _validate_rows(rows)

    stored = [
        SalesAggregate(
            menu_item_name=row.menu_item_name,
            quantity_sold=round_quantity(row.quantity_sold),
            sold_at=as_naive_utc(row.sold_at),
            source=row.source or "pos_sync",
        )
        for row in validated
    ]
    with InventoryRecalculator.write_lock:
        db.add_all(stored)
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(
                "Failed to record sales aggregates",
                operation="record_sales",
                details={"rows": len(stored)},
            ) from e

    logger.info(f"Recorded {len(stored)} sales aggregate row(s)", extra={"rows": len(stored)})

    result = None
    if recalculate:
        result = recalculate_expected_inventory(
            db, trigger=RecalculationTrigger.SALES_SYNC, triggered_at=triggered_at
        )
    return stored, result
