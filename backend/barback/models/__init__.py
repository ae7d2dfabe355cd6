"""Database models"""
from barback.models.ingredient import Ingredient, InventoryCount
from barback.models.recipe import Recipe, PrepRecipe, RecipeComponent, PrepRecipeComponent
from barback.models.sales import SalesAggregate
from barback.models.alert import InventoryAlert
from barback.models.recalculation import RecalculationRun

__all__ = [
    # Inventory
    "Ingredient",
    "InventoryCount",
    "InventoryAlert",
    # Recipes
    "Recipe",
    "PrepRecipe",
    "RecipeComponent",
    "PrepRecipeComponent",
    # Sales
    "SalesAggregate",
    # Engine
    "RecalculationRun",
]
