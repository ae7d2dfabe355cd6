"""
Inventory Pydantic Schemas

Schemas for:
- Manual count submission
- Sales aggregate ingestion
- Count history, alerts and recalculation run views
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal


# ============================================================================
# Inputs
# ============================================================================

class CountSubmission(BaseModel):
    """
    Physical count of one ingredient.

    Either ``quantity`` (already in base units) or ``quantity_raw`` (free text
    such as "2 bottles") must be provided. When both are given the numeric
    quantity wins and the raw text is kept for history.
    """
    ingredient_id: int = Field(..., gt=0)
    quantity: Optional[Decimal] = Field(None, ge=0, description="Quantity in base units")
    quantity_raw: Optional[str] = Field(None, max_length=100, description="Free-text quantity")
    note: Optional[str] = Field(None, max_length=1000)
    counted_at: Optional[datetime] = Field(None, description="Defaults to now")

    @field_validator("quantity_raw", "note")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def require_quantity(self):
        if self.quantity is None and self.quantity_raw is None:
            raise ValueError("Either quantity or quantity_raw is required")
        return self


class SalesAggregateIn(BaseModel):
    """One aggregated sales line from the POS sync"""
    menu_item_name: str = Field(..., min_length=1, max_length=255)
    quantity_sold: Decimal = Field(..., ge=0)
    sold_at: datetime
    source: Optional[str] = Field(None, max_length=50)

    @field_validator("menu_item_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("menu_item_name cannot be blank")
        return v


# ============================================================================
# Outputs
# ============================================================================

class InventoryCountResponse(BaseModel):
    """Historical count row"""
    id: int
    ingredient_id: int
    quantity: Decimal
    quantity_raw: Optional[str] = None
    note: Optional[str] = None
    counted_at: datetime

    class Config:
        from_attributes = True


class InventoryAlertResponse(BaseModel):
    """Alert row"""
    id: int
    ingredient_id: int
    alert_type: str
    threshold: Optional[Decimal] = None
    expected_quantity: Optional[Decimal] = None
    message: Optional[str] = None
    resolved: bool
    created_at: datetime
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecalculationRunResponse(BaseModel):
    """Persisted pass diagnostic"""
    id: int
    trigger: str
    triggered_at: datetime
    status: str
    ingredients_updated: int = 0
    alerts_created: int = 0
    alerts_resolved: int = 0
    unmatched_sales: int = 0
    cycles_detected: int = 0
    unit_errors: int = 0
    stale_skipped: int = 0
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryItem(BaseModel):
    """One ingredient in the inventory overview"""
    id: int
    name: str
    category: Optional[str] = None
    base_unit: str
    purchase_unit: Optional[str] = None
    purchase_unit_quantity: Optional[Decimal] = None
    par_level: Optional[Decimal] = None
    last_counted_quantity: Optional[Decimal] = None
    last_counted_at: Optional[datetime] = None
    expected_quantity: Optional[Decimal] = None
    expected_as_of: Optional[datetime] = None
    expected_display: Optional[str] = None
    open_alerts: int = 0


class InventorySummary(BaseModel):
    total: int = 0
    counted: int = 0
    below_par: int = 0
    categories: List[str] = []


class InventoryOverview(BaseModel):
    """Inventory page payload"""
    items: List[InventoryItem]
    summary: InventorySummary

