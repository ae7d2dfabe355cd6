"""
Ingredient and inventory count models
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from barback.core.clock import utcnow
from barback.db.base import Base


class Ingredient(Base):
    """
    Raw ingredient tracked in inventory.

    Stock is tracked in ``base_unit`` (ml, g or each). ``last_counted_*`` is
    the ground truth written by physical counts; ``expected_quantity`` is
    derived by the recalculation engine and may be negative.
    """
    __tablename__ = "ingredients"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    category = Column(String(100), nullable=True)

    # Units
    base_unit = Column(String(20), default="each", nullable=False)
    purchase_unit = Column(String(50), nullable=True)  # bottle, case, bag...
    purchase_unit_quantity = Column(Numeric(18, 4), nullable=True)  # base units per purchase unit

    # Thresholds
    par_level = Column(Numeric(18, 4), nullable=True)

    # Ground truth (last physical count)
    last_counted_quantity = Column(Numeric(18, 4), nullable=True)
    last_counted_at = Column(DateTime, nullable=True)

    # Derived
    expected_quantity = Column(Numeric(18, 4), nullable=True)
    # Trigger time of the pass that last wrote expected_quantity
    expected_as_of = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    counts = relationship(
        "InventoryCount",
        back_populates="ingredient",
        order_by="InventoryCount.counted_at.desc()",
        cascade="all, delete-orphan",
    )
    alerts = relationship("InventoryAlert", back_populates="ingredient", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Ingredient {self.name}: expected={self.expected_quantity} {self.base_unit}>"


class InventoryCount(Base):
    """Historical physical count - matches inventory_counts table"""
    __tablename__ = "inventory_counts"

    id = Column(Integer, primary_key=True, index=True)
    ingredient_id = Column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity = Column(Numeric(18, 4), nullable=False)  # In the ingredient's base unit
    quantity_raw = Column(Text, nullable=True)  # What the counter typed, e.g. "2 bottles"
    note = Column(Text, nullable=True)
    counted_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    ingredient = relationship("Ingredient", back_populates="counts")

    def __repr__(self):
        return f"<InventoryCount ingredient={self.ingredient_id}: {self.quantity} @ {self.counted_at}>"
