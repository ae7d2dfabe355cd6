"""
Sales aggregate model - per-item sales volume supplied by the POS sync
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Index

from barback.core.clock import utcnow
from barback.db.base import Base


class SalesAggregate(Base):
    """
    Quantity sold of one menu item, already aggregated upstream.

    ``sold_at`` is the instant the aggregate is attributed to (the end of its
    window). A row depletes an ingredient when
    ``last_counted_at < sold_at <= as_of``.
    """
    __tablename__ = "sales_aggregates"

    id = Column(Integer, primary_key=True, index=True)
    menu_item_name = Column(String(255), nullable=False)
    quantity_sold = Column(Numeric(18, 4), nullable=False)
    sold_at = Column(DateTime, nullable=False)
    source = Column(String(50), nullable=True)  # pos sync, backfill, manual
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_sales_aggregates_sold_at", "sold_at"),
        Index("ix_sales_aggregates_item_sold_at", "menu_item_name", "sold_at"),
    )

    def __repr__(self):
        return f"<SalesAggregate {self.menu_item_name} x{self.quantity_sold} @ {self.sold_at}>"
