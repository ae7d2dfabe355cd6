"""
Recipe Graph Snapshot

Read-only, in-memory copy of the recipe graph used for one recalculation
pass. Nodes live in id-keyed arenas and components point at them through
tagged references (IngredientRef / PrepRecipeRef), never through live ORM
objects, so expansion cannot trigger lazy loads or see rows change
mid-pass.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple, Union

from sqlalchemy.orm import Session, selectinload


@dataclass(frozen=True)
class IngredientRef:
    """Component target: a raw ingredient"""
    ingredient_id: int


@dataclass(frozen=True)
class PrepRecipeRef:
    """Component target: a prep (sub-)recipe"""
    prep_recipe_id: int


ComponentRef = Union[IngredientRef, PrepRecipeRef]


@dataclass(frozen=True)
class ComponentNode:
    ref: ComponentRef
    quantity: Decimal
    unit: Optional[str] = None


@dataclass(frozen=True)
class IngredientNode:
    id: int
    name: str
    base_unit: str


@dataclass(frozen=True)
class PrepRecipeNode:
    id: int
    name: str
    yield_amount: Decimal
    yield_unit: Optional[str]
    components: Tuple[ComponentNode, ...] = ()


@dataclass(frozen=True)
class RecipeNode:
    id: int
    menu_item_name: str
    on_menu: bool
    components: Tuple[ComponentNode, ...] = ()


def normalize_item_name(name: Optional[str]) -> str:
    """Key used to match free-text sales item names against recipes."""
    if not name:
        return ""
    return " ".join(name.split()).casefold()


@dataclass
class RecipeGraph:
    """Arena of every node reachable during a pass"""
    ingredients: Mapping[int, IngredientNode] = field(default_factory=dict)
    prep_recipes: Mapping[int, PrepRecipeNode] = field(default_factory=dict)
    recipes: Mapping[int, RecipeNode] = field(default_factory=dict)

    def __post_init__(self):
        self._by_name: Dict[str, RecipeNode] = {
            normalize_item_name(r.menu_item_name): r for r in self.recipes.values()
        }

    def on_menu_recipes(self) -> List[RecipeNode]:
        return [r for r in self.recipes.values() if r.on_menu]

    def recipe_by_name(self, menu_item_name: str) -> Optional[RecipeNode]:
        """Case- and whitespace-insensitive exact name lookup."""
        return self._by_name.get(normalize_item_name(menu_item_name))


def _component_nodes(components) -> Tuple[ComponentNode, ...]:
    return tuple(
        ComponentNode(
            ref=c.reference,
            quantity=Decimal(str(c.quantity)),
            unit=c.unit,
        )
        for c in components
    )


def load_recipe_graph(db: Session, default_base_unit: str = "each") -> RecipeGraph:
    """
    Load the full recipe graph from the store into an immutable snapshot.

    Args:
        db: Database session
        default_base_unit: Base unit for ingredients stored without one

    Returns:
        RecipeGraph for the duration of one pass
    """
    from barback.models import Ingredient, PrepRecipe, Recipe

    ingredients = {
        ing.id: IngredientNode(
            id=ing.id,
            name=ing.name,
            base_unit=ing.base_unit or default_base_unit,
        )
        for ing in db.query(Ingredient).all()
    }

    prep_recipes = {
        prep.id: PrepRecipeNode(
            id=prep.id,
            name=prep.name,
            yield_amount=Decimal(str(prep.yield_amount)) if prep.yield_amount is not None else Decimal("0"),
            yield_unit=prep.yield_unit,
            components=_component_nodes(prep.components),
        )
        for prep in db.query(PrepRecipe).options(selectinload(PrepRecipe.components)).all()
    }

    recipes = {
        recipe.id: RecipeNode(
            id=recipe.id,
            menu_item_name=recipe.menu_item_name,
            on_menu=bool(recipe.on_menu),
            components=_component_nodes(recipe.components),
        )
        for recipe in db.query(Recipe).options(selectinload(Recipe.components)).all()
    }

    return RecipeGraph(ingredients=ingredients, prep_recipes=prep_recipes, recipes=recipes)
