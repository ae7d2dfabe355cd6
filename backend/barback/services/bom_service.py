"""
BOM Expansion Service

Flattens a sellable recipe, through any number of nested prep recipes, into
raw ingredient quantities per one serving, in each ingredient's base unit.

1. Ingredient component - converted to the ingredient's base unit
2. Prep recipe component - the prep recipe is expanded to its usage per one
   unit of yield, then scaled by the component quantity (converted into the
   prep's yield unit)

Problems with a single component never abort the expansion:
- Unit incompatibility: that component contributes zero and is recorded
- Cycle: the edge back onto the current path is truncated and recorded
- Missing reference: skipped and recorded
"""
from collections import defaultdict, deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from barback.exceptions import CycleDetectedError, IncompatibleUnitsError
from barback.logging_config import get_logger
from barback.services.recipe_graph import (
    ComponentNode,
    ComponentRef,
    IngredientRef,
    PrepRecipeRef,
    RecipeGraph,
    RecipeNode,
)
from barback.services.uom_service import convert_quantity

logger = get_logger(__name__)

# Owner of a component list: ("recipe", id) or ("prep_recipe", id)
Owner = Tuple[str, int]


# ============================================================================
# Diagnostics
# ============================================================================

@dataclass(frozen=True)
class CycleDetected:
    """A prep recipe edge that pointed back onto the expansion path"""
    parent_prep_recipe_id: int
    child_prep_recipe_id: int
    path: Tuple[int, ...]


@dataclass(frozen=True)
class UnitIncompatibility:
    """A component whose unit could not be converted to its target's unit"""
    owner_type: str
    owner_id: int
    target: ComponentRef
    from_unit: Optional[str]
    to_unit: Optional[str]
    reason: str


@dataclass(frozen=True)
class MissingReference:
    """A component pointing at an ingredient or prep recipe that does not exist"""
    owner_type: str
    owner_id: int
    target: ComponentRef


@dataclass
class ExpansionDiagnostics:
    """Soft failures collected while expanding, deduplicated per pass"""
    cycles: Dict[Tuple[int, int], CycleDetected] = field(default_factory=dict)
    unit_errors: Dict[Tuple, UnitIncompatibility] = field(default_factory=dict)
    missing_references: Dict[Tuple, MissingReference] = field(default_factory=dict)

    @property
    def cycles_detected(self) -> int:
        return len(self.cycles)

    @property
    def unit_error_count(self) -> int:
        return len(self.unit_errors)


# ============================================================================
# Expander
# ============================================================================

class BOMExpander:
    """
    Recipe graph expander for one pass.

    A prep recipe's per-unit-yield expansion only depends on the snapshot,
    so it is computed at most once and shared by every parent that uses it.
    """

    def __init__(self, graph: RecipeGraph, strict_cycles: bool = False):
        self.graph = graph
        self.strict_cycles = strict_cycles
        self.diagnostics = ExpansionDiagnostics()
        self._prep_cache: Dict[int, Dict[int, Decimal]] = {}
        self._recipe_cache: Dict[int, Dict[int, Decimal]] = {}

    def expand_recipe(self, recipe: RecipeNode) -> Dict[int, Decimal]:
        """
        Ingredient usage for one serving of a sellable recipe.

        Args:
            recipe: Recipe node from the snapshot

        Returns:
            Mapping of ingredient_id -> quantity in the ingredient's base unit

        Raises:
            CycleDetectedError: Only when strict_cycles is enabled
        """
        if recipe.id not in self._recipe_cache:
            self._recipe_cache[recipe.id] = self._expand_components(
                ("recipe", recipe.id), recipe.components, path=()
            )
        return dict(self._recipe_cache[recipe.id])

    def expand_prep_recipe(self, prep_recipe_id: int) -> Dict[int, Decimal]:
        """Ingredient usage for one unit of a prep recipe's yield."""
        return dict(self._expand_prep(prep_recipe_id, path=()))

    # ------------------------------------------------------------------

    def _expand_prep(self, prep_recipe_id: int, path: Tuple[int, ...]) -> Dict[int, Decimal]:
        cached = self._prep_cache.get(prep_recipe_id)
        if cached is not None:
            return cached

        prep = self.graph.prep_recipes[prep_recipe_id]
        totals = self._expand_components(
            ("prep_recipe", prep.id), prep.components, path=path + (prep.id,)
        )

        yield_amount = prep.yield_amount
        if yield_amount <= 0:
            logger.warning(
                f"Prep recipe '{prep.name}' has non-positive yield {yield_amount}, treating as 1",
                extra={"prep_recipe_id": prep.id},
            )
            yield_amount = Decimal("1")

        per_unit = {ing_id: qty / yield_amount for ing_id, qty in totals.items()}
        self._prep_cache[prep.id] = per_unit
        return per_unit

    def _expand_components(
        self,
        owner: Owner,
        components: Tuple[ComponentNode, ...],
        path: Tuple[int, ...],
    ) -> Dict[int, Decimal]:
        totals: Dict[int, Decimal] = defaultdict(Decimal)

        for component in components:
            ref = component.ref

            if isinstance(ref, IngredientRef):
                ingredient = self.graph.ingredients.get(ref.ingredient_id)
                if ingredient is None:
                    self._record_missing(owner, ref)
                    continue
                unit = component.unit or ingredient.base_unit
                try:
                    qty = convert_quantity(component.quantity, unit, ingredient.base_unit)
                except IncompatibleUnitsError as e:
                    self._record_unit_error(owner, ref, unit, ingredient.base_unit, e)
                    continue
                totals[ingredient.id] += qty
                continue

            prep = self.graph.prep_recipes.get(ref.prep_recipe_id)
            if prep is None:
                self._record_missing(owner, ref)
                continue

            if prep.id in path:
                self._record_cycle(path, prep.id)
                continue

            unit = component.unit or prep.yield_unit
            if unit and prep.yield_unit:
                try:
                    qty_in_yield = convert_quantity(component.quantity, unit, prep.yield_unit)
                except IncompatibleUnitsError as e:
                    self._record_unit_error(owner, ref, unit, prep.yield_unit, e)
                    continue
            else:
                qty_in_yield = component.quantity

            for ing_id, per_unit_qty in self._expand_prep(prep.id, path).items():
                totals[ing_id] += per_unit_qty * qty_in_yield

        return dict(totals)

    # ------------------------------------------------------------------

    def _record_cycle(self, path: Tuple[int, ...], child_id: int) -> None:
        parent_id = path[-1]
        key = (parent_id, child_id)
        if key not in self.diagnostics.cycles:
            self.diagnostics.cycles[key] = CycleDetected(
                parent_prep_recipe_id=parent_id,
                child_prep_recipe_id=child_id,
                path=path + (child_id,),
            )
            logger.warning(
                f"Prep recipe cycle detected: {parent_id} -> {child_id}, edge truncated",
                extra={"path": list(path + (child_id,))},
            )
        if self.strict_cycles:
            raise CycleDetectedError(parent_id, child_id, details={"path": list(path + (child_id,))})

    def _record_unit_error(
        self,
        owner: Owner,
        ref: ComponentRef,
        from_unit: Optional[str],
        to_unit: Optional[str],
        error: IncompatibleUnitsError,
    ) -> None:
        key = (owner, ref, from_unit, to_unit)
        if key in self.diagnostics.unit_errors:
            return
        self.diagnostics.unit_errors[key] = UnitIncompatibility(
            owner_type=owner[0],
            owner_id=owner[1],
            target=ref,
            from_unit=from_unit,
            to_unit=to_unit,
            reason=error.message,
        )
        logger.warning(
            f"Skipping component of {owner[0]} {owner[1]}: {error.message}",
            extra={"owner_type": owner[0], "owner_id": owner[1], "target": repr(ref)},
        )

    def _record_missing(self, owner: Owner, ref: ComponentRef) -> None:
        key = (owner, ref)
        if key in self.diagnostics.missing_references:
            return
        self.diagnostics.missing_references[key] = MissingReference(
            owner_type=owner[0], owner_id=owner[1], target=ref
        )
        logger.warning(
            f"Component of {owner[0]} {owner[1]} references missing {ref!r}",
            extra={"owner_type": owner[0], "owner_id": owner[1]},
        )


# ============================================================================
# Membership queries
# ============================================================================

def ingredients_used_by_on_menu_recipes(graph: RecipeGraph) -> Set[int]:
    """
    Ids of every raw ingredient reachable from an on-menu recipe.

    Breadth-first frontier over prep recipes with a visited set, so a prep
    recipe reachable at several depths (or through a cycle) is expanded once.
    """
    ingredient_ids: Set[int] = set()
    visited: Set[int] = set()
    frontier: deque = deque()

    def _collect(components: Tuple[ComponentNode, ...]) -> None:
        for component in components:
            if isinstance(component.ref, PrepRecipeRef):
                frontier.append(component.ref.prep_recipe_id)
            elif component.ref.ingredient_id in graph.ingredients:
                ingredient_ids.add(component.ref.ingredient_id)

    for recipe in graph.on_menu_recipes():
        _collect(recipe.components)

    while frontier:
        prep_id = frontier.popleft()
        if prep_id in visited:
            continue
        visited.add(prep_id)
        prep = graph.prep_recipes.get(prep_id)
        if prep is not None:
            _collect(prep.components)

    return ingredient_ids


def expand_on_menu_recipes(expander: BOMExpander) -> Dict[int, Dict[int, Decimal]]:
    """Per-serving expansion of every on-menu recipe, keyed by recipe id."""
    expansions: Dict[int, Dict[int, Decimal]] = {}
    for recipe in sorted(expander.graph.on_menu_recipes(), key=lambda r: r.id):
        expansions[recipe.id] = expander.expand_recipe(recipe)
    return expansions


def summarize_diagnostics(diagnostics: ExpansionDiagnostics) -> List[str]:
    """Human-readable lines for logs and run records."""
    lines = [
        f"cycle: prep recipe {c.parent_prep_recipe_id} -> {c.child_prep_recipe_id}"
        for c in diagnostics.cycles.values()
    ]
    lines.extend(
        f"unit: {u.owner_type} {u.owner_id}: {u.reason}" for u in diagnostics.unit_errors.values()
    )
    lines.extend(
        f"missing: {m.owner_type} {m.owner_id} -> {m.target!r}"
        for m in diagnostics.missing_references.values()
    )
    return lines
