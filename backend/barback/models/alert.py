"""
Inventory alert model
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Text, Index, text,
)
from sqlalchemy.orm import relationship

from barback.core.clock import utcnow
from barback.db.base import Base


class InventoryAlert(Base):
    """
    Low / out-of-stock alert for one ingredient.

    The partial unique index keeps at most one unresolved alert per
    ingredient at the store level.
    """
    __tablename__ = "inventory_alerts"

    id = Column(Integer, primary_key=True, index=True)
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    alert_type = Column(String(20), nullable=False)  # low_stock, out_of_stock
    threshold = Column(Numeric(18, 4), nullable=True)  # par level at the time of opening
    expected_quantity = Column(Numeric(18, 4), nullable=True)  # value that opened the alert
    message = Column(Text, nullable=True)
    resolved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    ingredient = relationship("Ingredient", back_populates="alerts")

    __table_args__ = (
        Index(
            "uq_inventory_alerts_open_per_ingredient",
            "ingredient_id",
            unique=True,
            postgresql_where=text("resolved = false"),
            sqlite_where=text("resolved = 0"),
        ),
    )

    def __repr__(self):
        state = "resolved" if self.resolved else "open"
        return f"<InventoryAlert {self.alert_type} ingredient={self.ingredient_id} ({state})>"
