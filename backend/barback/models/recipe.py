"""
Recipe models - sellable recipes, prep (sub-)recipes and their components

A component points at exactly one of an ingredient or a prep recipe. The
two target columns are mutually exclusive (CHECK constraint) and the
``reference`` property exposes them as a tagged variant so callers never
branch on nullable foreign keys.
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship, declared_attr

from barback.core.clock import utcnow
from barback.db.base import Base
from barback.services.recipe_graph import IngredientRef, PrepRecipeRef


class ComponentMixin:
    """Columns shared by recipe and prep recipe component lines."""

    id = Column(Integer, primary_key=True, index=True)
    sequence = Column(Integer, default=0, nullable=False)
    quantity = Column(Numeric(18, 6), nullable=False)
    unit = Column(String(20), nullable=True)  # Blank means the target's own unit

    @declared_attr
    def ingredient_id(cls):
        return Column(
            Integer, ForeignKey("ingredients.id", ondelete="RESTRICT"), nullable=True, index=True
        )

    @declared_attr
    def sub_recipe_id(cls):
        return Column(
            Integer, ForeignKey("prep_recipes.id", ondelete="RESTRICT"), nullable=True, index=True
        )

    @declared_attr
    def ingredient(cls):
        return relationship("Ingredient")

    @declared_attr
    def sub_recipe(cls):
        return relationship("PrepRecipe", foreign_keys=f"{cls.__name__}.sub_recipe_id")

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint(
                "(ingredient_id IS NULL) <> (sub_recipe_id IS NULL)",
                name=f"ck_{cls.__tablename__}_one_target",
            ),
        )

    @property
    def reference(self):
        """Tagged reference: IngredientRef or PrepRecipeRef."""
        if self.ingredient_id is not None:
            return IngredientRef(self.ingredient_id)
        return PrepRecipeRef(self.sub_recipe_id)


class Recipe(Base):
    """Sellable menu item - matches recipes table"""
    __tablename__ = "recipes"

    id = Column(Integer, primary_key=True, index=True)
    menu_item_name = Column(String(255), unique=True, nullable=False, index=True)
    on_menu = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    components = relationship(
        "RecipeComponent",
        back_populates="recipe",
        order_by="RecipeComponent.sequence",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Recipe {self.menu_item_name} on_menu={self.on_menu}>"


class PrepRecipe(Base):
    """Sub-recipe (syrup, batch, infusion) - matches prep_recipes table"""
    __tablename__ = "prep_recipes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    yield_amount = Column(Numeric(18, 6), nullable=False, default=1)
    yield_unit = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    components = relationship(
        "PrepRecipeComponent",
        back_populates="prep_recipe",
        foreign_keys="PrepRecipeComponent.prep_recipe_id",
        order_by="PrepRecipeComponent.sequence",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<PrepRecipe {self.name}: yields {self.yield_amount} {self.yield_unit}>"


class RecipeComponent(ComponentMixin, Base):
    """Component line of a sellable recipe (quantity per one serving)"""
    __tablename__ = "recipe_components"

    recipe_id = Column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipe = relationship("Recipe", back_populates="components")

    def __repr__(self):
        return f"<RecipeComponent recipe={self.recipe_id} {self.reference}: {self.quantity} {self.unit}>"


class PrepRecipeComponent(ComponentMixin, Base):
    """Component line of a prep recipe (quantity per full yield)"""
    __tablename__ = "prep_recipe_components"

    prep_recipe_id = Column(
        Integer, ForeignKey("prep_recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prep_recipe = relationship(
        "PrepRecipe", back_populates="components", foreign_keys=[prep_recipe_id]
    )

    def __repr__(self):
        return f"<PrepRecipeComponent prep={self.prep_recipe_id} {self.reference}: {self.quantity} {self.unit}>"
