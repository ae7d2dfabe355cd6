"""
Integration Tests for count submission, sales ingestion and read-side queries
"""
import pytest
from datetime import timezone, timedelta
from decimal import Decimal

from barback.exceptions import NotFoundError, ValidationError
from barback.models import Ingredient, InventoryCount, SalesAggregate
from barback.schemas.inventory import CountSubmission, InventoryCountResponse
from barback.services.alert_service import evaluate_alert
from barback.services.inventory_service import (
    get_count_history,
    get_inventory_overview,
    submit_count,
)
from barback.services.sales_service import record_sales
from tests.factories import create_test_ingredient, create_test_prep_recipe, create_test_recipe


@pytest.fixture
def vodka(db_session):
    return create_test_ingredient(
        db_session, name="Vodka", base_unit="ml", purchase_unit="bottle",
        purchase_unit_quantity="750", par_level="500", category="Spirits",
    )


class TestSubmitCount:

    def test_numeric_count_sets_baseline(self, db_session, vodka, t0):
        outcome = submit_count(
            db_session, CountSubmission(ingredient_id=vodka.id, quantity=Decimal("1500"), counted_at=t0),
            triggered_at=t0,
        )

        db_session.refresh(vodka)
        assert outcome.count.quantity == Decimal("1500")
        assert vodka.last_counted_quantity == Decimal("1500")
        assert vodka.last_counted_at == t0
        assert vodka.expected_quantity == Decimal("1500")
        assert outcome.recalculation.trigger == "manual_count"

    def test_free_text_count(self, db_session, vodka, t0):
        outcome = submit_count(
            db_session,
            {"ingredient_id": vodka.id, "quantity_raw": "2 bottles", "note": "back bar", "counted_at": t0},
            triggered_at=t0,
        )
        assert outcome.count.quantity == Decimal("1500")
        assert outcome.count.quantity_raw == "2 bottles"
        assert outcome.count.note == "back bar"

    def test_numeric_quantity_wins_over_text(self, db_session, vodka, t0):
        outcome = submit_count(
            db_session,
            {"ingredient_id": vodka.id, "quantity": "700", "quantity_raw": "1 bottle", "counted_at": t0},
            triggered_at=t0,
        )
        assert outcome.count.quantity == Decimal("700")

    def test_timezone_aware_count_stored_as_utc(self, db_session, vodka, t0):
        local = t0.replace(tzinfo=timezone(timedelta(hours=-5)))
        outcome = submit_count(
            db_session, {"ingredient_id": vodka.id, "quantity": 10, "counted_at": local},
            triggered_at=t0 + timedelta(hours=6),
        )
        assert outcome.count.counted_at == t0 + timedelta(hours=5)

    def test_older_count_kept_in_history_only(self, db_session, vodka, hours):
        submit_count(db_session, {"ingredient_id": vodka.id, "quantity": 1500, "counted_at": hours(2)},
                     triggered_at=hours(2))
        outcome = submit_count(
            db_session, {"ingredient_id": vodka.id, "quantity": 200, "counted_at": hours(1)},
            triggered_at=hours(3),
        )

        db_session.refresh(vodka)
        assert outcome.baseline_updated is False
        assert vodka.last_counted_quantity == Decimal("1500")
        assert vodka.last_counted_at == hours(2)
        assert db_session.query(InventoryCount).count() == 2

    def test_numeric_count_records_entered_text(self, db_session, vodka, t0):
        outcome = submit_count(
            db_session, {"ingredient_id": vodka.id, "quantity": "1500", "counted_at": t0},
            triggered_at=t0,
        )
        assert outcome.count.quantity_raw == "1500 ml"

    def test_new_baseline_recomputed_with_older_trigger(self, db_session, vodka, hours):
        submit_count(db_session, {"ingredient_id": vodka.id, "quantity": 1500, "counted_at": hours(1)},
                     triggered_at=hours(4))
        outcome = submit_count(
            db_session, {"ingredient_id": vodka.id, "quantity": 800, "counted_at": hours(2)},
            triggered_at=hours(2),
        )

        db_session.refresh(vodka)
        assert outcome.baseline_updated is True
        assert outcome.recalculation.stale_skipped == 0
        assert vodka.expected_quantity == Decimal("800")
        assert vodka.expected_as_of == hours(2)

    def test_stale_session_cannot_regress_baseline(self, db_session, session_factory, vodka, hours):
        first = session_factory()
        second = session_factory()
        try:
            # first session already holds the ingredient from before the newer count
            assert first.get(Ingredient, vodka.id).last_counted_at is None

            submit_count(second, {"ingredient_id": vodka.id, "quantity": 900, "counted_at": hours(5)},
                         triggered_at=hours(5))
            outcome = submit_count(
                first, {"ingredient_id": vodka.id, "quantity": 1500, "counted_at": hours(3)},
                triggered_at=hours(6),
            )
        finally:
            first.close()
            second.close()

        db_session.refresh(vodka)
        assert outcome.baseline_updated is False
        assert vodka.last_counted_quantity == Decimal("900")
        assert vodka.last_counted_at == hours(5)
        assert vodka.expected_quantity == Decimal("900")

    def test_negative_count_rejected(self, db_session, vodka):
        with pytest.raises(ValidationError) as exc_info:
            submit_count(db_session, {"ingredient_id": vodka.id, "quantity": -1})
        assert exc_info.value.details["field"] == "quantity"
        assert db_session.query(InventoryCount).count() == 0

    def test_missing_quantity_rejected(self, db_session, vodka):
        with pytest.raises(ValidationError):
            submit_count(db_session, {"ingredient_id": vodka.id, "quantity_raw": "   "})

    def test_unparseable_text_rejected(self, db_session, vodka):
        with pytest.raises(ValidationError) as exc_info:
            submit_count(db_session, {"ingredient_id": vodka.id, "quantity_raw": "a few"})
        assert exc_info.value.details["field"] == "quantity_raw"

    def test_unknown_ingredient(self, db_session):
        with pytest.raises(NotFoundError) as exc_info:
            submit_count(db_session, {"ingredient_id": 999, "quantity": 1})
        assert exc_info.value.to_dict()["error"] == "NOT_FOUND"


class TestCountHistory:

    def test_newest_first_with_limit(self, db_session, vodka, hours):
        for n, qty in enumerate([1500, 1200, 900], start=1):
            submit_count(db_session, {"ingredient_id": vodka.id, "quantity": qty, "counted_at": hours(n)},
                         triggered_at=hours(n))

        history = get_count_history(db_session, vodka.id, limit=2)

        assert [c.quantity for c in history] == [Decimal("900"), Decimal("1200")]
        payload = InventoryCountResponse.model_validate(history[0])
        assert payload.counted_at == hours(3)

    def test_unknown_ingredient(self, db_session):
        with pytest.raises(NotFoundError):
            get_count_history(db_session, 42)


class TestRecordSales:

    def test_rows_stored_without_recalculation(self, db_session, vodka, t0):
        stored, result = record_sales(
            db_session,
            [{"menu_item_name": "  Vodka Soda ", "quantity_sold": "3", "sold_at": t0}],
            recalculate=False,
        )
        assert result is None
        assert stored[0].menu_item_name == "Vodka Soda"
        assert stored[0].source == "pos_sync"
        assert db_session.query(SalesAggregate).count() == 1

    def test_bad_row_rejects_batch(self, db_session, t0):
        with pytest.raises(ValidationError) as exc_info:
            record_sales(db_session, [
                {"menu_item_name": "Vodka Soda", "quantity_sold": 1, "sold_at": t0},
                {"menu_item_name": "Vodka Soda", "quantity_sold": -2, "sold_at": t0},
            ])
        assert exc_info.value.details["row"] == 1
        assert db_session.query(SalesAggregate).count() == 0


class TestInventoryOverview:

    def test_all_ingredients_when_nothing_on_menu(self, db_session, vodka):
        create_test_ingredient(db_session, name="Lime", base_unit="each", category="Produce")

        overview = get_inventory_overview(db_session)

        assert [item.name for item in overview.items] == ["Lime", "Vodka"]
        assert overview.summary.total == 2
        assert overview.summary.categories == ["Produce", "Spirits"]

    def test_only_ingredients_used_on_menu(self, db_session, vodka, t0):
        sugar = create_test_ingredient(db_session, name="Sugar", base_unit="g", category="Pantry")
        create_test_ingredient(db_session, name="Mezcal", category="Spirits")
        syrup = create_test_prep_recipe(db_session, "Simple Syrup", components=[(sugar, "1", "g")])
        create_test_recipe(db_session, "Vodka Soda", components=[(vodka, "45", "ml"), (syrup, "5", "ml")])

        submit_count(db_session, {"ingredient_id": vodka.id, "quantity": 300, "counted_at": t0},
                     triggered_at=t0)
        overview = get_inventory_overview(db_session)

        names = {item.name for item in overview.items}
        assert names == {"Vodka", "Sugar"}
        vodka_item = next(item for item in overview.items if item.name == "Vodka")
        assert vodka_item.open_alerts == 1
        assert vodka_item.expected_display == "0.4 bottle (300 ml)"
        assert overview.summary.counted == 1
        assert overview.summary.below_par == 1

    def test_resolved_alerts_not_counted(self, db_session, vodka, t0):
        submit_count(db_session, {"ingredient_id": vodka.id, "quantity": 100, "counted_at": t0},
                     triggered_at=t0)
        db_session.refresh(vodka)
        evaluate_alert(db_session, vodka, Decimal("2000"), now=t0)
        db_session.commit()

        [item] = get_inventory_overview(db_session).items
        assert item.open_alerts == 0
