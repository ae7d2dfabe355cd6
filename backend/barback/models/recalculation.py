"""
Recalculation run model - one row per engine pass
"""
from sqlalchemy import Column, Integer, String, DateTime, Text

from barback.core.clock import utcnow
from barback.db.base import Base


class RecalculationRun(Base):
    """Audit record of an expected-inventory pass and its diagnostic counters"""
    __tablename__ = "recalculation_runs"

    id = Column(Integer, primary_key=True, index=True)
    trigger = Column(String(30), nullable=False)  # manual_count, sales_sync, stock_webhook, manual
    triggered_at = Column(DateTime, nullable=False, index=True)
    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    status = Column(String(20), default="running", nullable=False)  # running, completed, failed

    # Diagnostic counters
    ingredients_updated = Column(Integer, default=0, nullable=False)
    alerts_created = Column(Integer, default=0, nullable=False)
    alerts_resolved = Column(Integer, default=0, nullable=False)
    unmatched_sales = Column(Integer, default=0, nullable=False)
    cycles_detected = Column(Integer, default=0, nullable=False)
    unit_errors = Column(Integer, default=0, nullable=False)
    stale_skipped = Column(Integer, default=0, nullable=False)

    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<RecalculationRun {self.id} {self.trigger}: {self.status}>"
