"""
Unit Tests for the alert lifecycle
"""
import pytest
from datetime import datetime
from decimal import Decimal

from barback.models import InventoryAlert
from barback.schemas.inventory import InventoryAlertResponse
from barback.services.alert_service import (
    AlertType,
    classify_stock,
    evaluate_alert,
    get_open_alert,
    list_open_alerts,
)
from tests.factories import create_test_ingredient

NOW = datetime(2025, 3, 14, 18, 0, 0)


def _open_alerts(db, ingredient_id):
    return (
        db.query(InventoryAlert)
        .filter(InventoryAlert.ingredient_id == ingredient_id, InventoryAlert.resolved.is_(False))
        .all()
    )


@pytest.fixture
def vodka(db_session):
    return create_test_ingredient(
        db_session, name="Vodka", base_unit="ml", par_level="500",
        purchase_unit="bottle", purchase_unit_quantity="750",
    )


class TestClassifyStock:

    @pytest.mark.parametrize("expected,par,wanted", [
        ("600", "500", None),
        ("500", "500", AlertType.LOW_STOCK),
        ("375", "500", AlertType.LOW_STOCK),
        ("0", "500", AlertType.OUT_OF_STOCK),
        ("-12", "500", AlertType.OUT_OF_STOCK),
        ("0", "0", AlertType.OUT_OF_STOCK),
        (None, "500", None),
        ("10", None, None),
    ])
    def test_classification(self, expected, par, wanted):
        expected = None if expected is None else Decimal(expected)
        par = None if par is None else Decimal(par)
        assert classify_stock(expected, par) == wanted


class TestEvaluateAlert:

    def test_opens_low_stock_at_or_below_par(self, db_session, vodka):
        outcome = evaluate_alert(db_session, vodka, Decimal("375"), now=NOW)
        db_session.commit()

        assert len(outcome.opened) == 1
        alert = get_open_alert(db_session, vodka.id)
        assert alert.alert_type == "low_stock"
        assert alert.threshold == Decimal("500")
        assert alert.created_at == NOW
        assert "0.5 bottle (375 ml)" in alert.message

    def test_exactly_at_par_opens_once(self, db_session, vodka):
        first = evaluate_alert(db_session, vodka, Decimal("500"), now=NOW)
        second = evaluate_alert(db_session, vodka, Decimal("500"), now=NOW)
        db_session.commit()

        assert len(first.opened) == 1
        assert not second.changed
        assert len(_open_alerts(db_session, vodka.id)) == 1

    def test_resolves_strictly_above_par(self, db_session, vodka):
        evaluate_alert(db_session, vodka, Decimal("400"), now=NOW)
        outcome = evaluate_alert(db_session, vodka, Decimal("500.0001"), now=NOW)
        db_session.commit()

        assert len(outcome.resolved) == 1
        assert outcome.opened == []
        resolved = outcome.resolved[0]
        assert resolved.resolved is True
        assert resolved.resolved_at == NOW
        assert get_open_alert(db_session, vodka.id) is None

    def test_low_to_out_reclassifies(self, db_session, vodka):
        evaluate_alert(db_session, vodka, Decimal("375"), now=NOW)
        outcome = evaluate_alert(db_session, vodka, Decimal("0"), now=NOW)
        db_session.commit()

        assert [a.alert_type for a in outcome.resolved] == ["low_stock"]
        assert [a.alert_type for a in outcome.opened] == ["out_of_stock"]
        assert len(_open_alerts(db_session, vodka.id)) == 1

    def test_out_to_low_reclassifies(self, db_session, vodka):
        evaluate_alert(db_session, vodka, Decimal("-5"), now=NOW)
        outcome = evaluate_alert(db_session, vodka, Decimal("100"), now=NOW)
        db_session.commit()

        assert [a.alert_type for a in outcome.opened] == ["low_stock"]
        assert get_open_alert(db_session, vodka.id).alert_type == "low_stock"

    def test_no_par_level_is_noop(self, db_session):
        lime = create_test_ingredient(db_session, name="Lime", base_unit="each")
        outcome = evaluate_alert(db_session, lime, Decimal("-3"), now=NOW)
        assert not outcome.changed
        assert _open_alerts(db_session, lime.id) == []

    def test_unknown_expected_is_noop(self, db_session, vodka):
        evaluate_alert(db_session, vodka, Decimal("100"), now=NOW)
        outcome = evaluate_alert(db_session, vodka, None, now=NOW)
        assert not outcome.changed
        assert len(_open_alerts(db_session, vodka.id)) == 1

    def test_above_par_without_alert_is_noop(self, db_session, vodka):
        assert not evaluate_alert(db_session, vodka, Decimal("1500"), now=NOW).changed


class TestListOpenAlerts:

    def test_lists_only_unresolved(self, db_session, vodka):
        gin = create_test_ingredient(db_session, name="Gin", base_unit="ml", par_level="300")
        evaluate_alert(db_session, vodka, Decimal("100"), now=NOW)
        evaluate_alert(db_session, gin, Decimal("100"), now=NOW)
        evaluate_alert(db_session, gin, Decimal("900"), now=NOW)
        db_session.commit()

        alerts = list_open_alerts(db_session)

        assert [a.ingredient_id for a in alerts] == [vodka.id]
        payload = InventoryAlertResponse.model_validate(alerts[0])
        assert payload.alert_type == "low_stock"
        assert payload.resolved is False
