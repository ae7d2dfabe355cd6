"""
Integration Tests for concurrent writers

Each worker thread gets its own session on the shared in-memory engine.
Sessions are closed on the main thread once every worker has finished.
"""
import threading
from decimal import Decimal

import pytest

from barback.models import InventoryCount, RecalculationRun
from barback.services.inventory_service import submit_count
from barback.services.reconciliation_service import recalculate_expected_inventory
from barback.services.sales_service import record_sales
from tests.factories import create_test_ingredient, create_test_recipe, create_test_sale


def run_concurrently(session_factory, *jobs):
    """Run each job(db) on its own thread and session, started together."""
    sessions = [session_factory() for _ in jobs]
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)
    errors = []

    def worker(index, job):
        barrier.wait()
        try:
            results[index] = job(sessions[index])
        except Exception as e:  # surfaced on the main thread
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    for db in sessions:
        db.close()

    assert not errors, errors
    return results


@pytest.fixture
def vodka_bar(db_session, t0):
    vodka = create_test_ingredient(
        db_session, name="Vodka", par_level="500",
        last_counted_quantity="1500", last_counted_at=t0,
    )
    create_test_recipe(db_session, "Vodka Soda", components=[(vodka, "45", "ml")])
    return vodka


class TestConcurrentPasses:

    def test_later_trigger_wins_regardless_of_order(self, db_session, session_factory, vodka_bar, hours):
        create_test_sale(db_session, "Vodka Soda", 2, hours(1))
        create_test_sale(db_session, "Vodka Soda", 4, hours(3))

        late, early = run_concurrently(
            session_factory,
            lambda db: recalculate_expected_inventory(db, triggered_at=hours(4)),
            lambda db: recalculate_expected_inventory(db, triggered_at=hours(2)),
        )

        db_session.refresh(vodka_bar)
        assert vodka_bar.expected_quantity == Decimal("1230")
        assert vodka_bar.expected_as_of == hours(4)
        assert late.stale_skipped == 0
        assert early.stale_skipped in (0, 1)
        statuses = [r.status for r in db_session.query(RecalculationRun).all()]
        assert statuses == ["completed", "completed"]

    def test_sales_sync_alongside_webhook_pass(self, db_session, session_factory, vodka_bar, hours):
        run_concurrently(
            session_factory,
            lambda db: record_sales(
                db,
                [{"menu_item_name": "Vodka Soda", "quantity_sold": 25, "sold_at": hours(1)}],
                triggered_at=hours(3),
            ),
            lambda db: recalculate_expected_inventory(db, trigger="stock_webhook", triggered_at=hours(2)),
        )

        db_session.refresh(vodka_bar)
        assert vodka_bar.expected_as_of == hours(3)
        assert vodka_bar.expected_quantity == Decimal("375")


class TestConcurrentCounts:

    def test_newest_count_is_the_baseline(self, db_session, session_factory, vodka_bar, hours):
        newer, older = run_concurrently(
            session_factory,
            lambda db: submit_count(
                db, {"ingredient_id": vodka_bar.id, "quantity": 900, "counted_at": hours(5)},
                triggered_at=hours(5),
            ),
            lambda db: submit_count(
                db, {"ingredient_id": vodka_bar.id, "quantity": 1200, "counted_at": hours(3)},
                triggered_at=hours(4),
            ),
        )

        db_session.refresh(vodka_bar)
        assert newer.baseline_updated is True
        assert vodka_bar.last_counted_quantity == Decimal("900")
        assert vodka_bar.last_counted_at == hours(5)
        assert vodka_bar.expected_quantity == Decimal("900")
        assert db_session.query(InventoryCount).count() == 2
