"""
Ingredient-level stock checks for orders and the menu.

Products consume ingredients through recipe lines
(``inventory_product_ingredients``). A recipe line with a zero
``quantity_per_unit`` means the ingredient is not stock-controlled.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from core.exceptions import ValidationError
from core.models import RecipeLine, to_float

INSUFFICIENT_STOCK_MESSAGE = "Não há estoque suficiente para alguns itens do pedido."


@dataclass
class OrderLine:
    """A cart line as sent by checkout."""
    product_id: Optional[str]
    quantity: float
    is_half_half: bool = False
    flavor_product_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "OrderLine":
        return cls(
            product_id=data.get("productId") or data.get("product_id"),
            quantity=to_float(data.get("quantity")),
            is_half_half=bool(data.get("isHalfHalf") or data.get("is_half_half")),
            flavor_product_ids=list(
                data.get("halfHalfFlavorProductIds")
                or data.get("flavor_product_ids")
                or []
            ),
        )


@dataclass
class InsufficientIngredient:
    ingredient_id: str
    ingredient_name: Optional[str]
    required: float
    stock: float

    @property
    def missing(self) -> float:
        return self.required - self.stock

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingredientId": self.ingredient_id,
            "ingredientName": self.ingredient_name,
            "required": self.required,
            "stock": self.stock,
            "missing": self.missing,
        }


@dataclass
class InventoryCheck:
    ok: bool
    message: Optional[str] = None
    insufficient: List[InsufficientIngredient] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"ok": self.ok}
        if self.message:
            result["message"] = self.message
        if self.insufficient:
            result["insufficientIngredients"] = [i.to_dict() for i in self.insufficient]
        return result


def effective_units(lines: Iterable[OrderLine]) -> Dict[str, float]:
    """
    Units of each product an order will consume.

    A half-and-half line spreads its quantity evenly over its flavours,
    so a 1/2 pepperoni 1/2 cheese pizza counts 0.5 of each.
    """
    units: Dict[str, float] = {}
    for line in lines:
        if not line.product_id or line.quantity <= 0:
            continue
        if line.is_half_half and line.flavor_product_ids:
            share = line.quantity / len(line.flavor_product_ids)
            for flavor_id in line.flavor_product_ids:
                units[flavor_id] = units.get(flavor_id, 0.0) + share
        else:
            units[line.product_id] = units.get(line.product_id, 0.0) + line.quantity
    return units


def find_insufficient_ingredients(
    units: Dict[str, float],
    recipe: Iterable[RecipeLine],
) -> List[InsufficientIngredient]:
    """Sum ingredient demand across products and compare with stock."""
    usage: Dict[str, InsufficientIngredient] = {}

    for line in recipe:
        product_units = units.get(line.product_id, 0.0)
        if product_units <= 0:
            continue

        entry = usage.get(line.ingredient_id)
        if entry is None:
            entry = usage[line.ingredient_id] = InsufficientIngredient(
                ingredient_id=line.ingredient_id,
                ingredient_name=line.ingredient_name or None,
                required=0.0,
                stock=line.current_stock,
            )
        entry.required += product_units * line.quantity_per_unit
        entry.stock = line.current_stock

    return [entry for entry in usage.values() if entry.required > entry.stock]


def validate_order_inventory(lines: List[OrderLine], recipe: Iterable[RecipeLine]) -> InventoryCheck:
    """
    Check whether the kitchen has enough stock for an order.

    Raises:
        ValidationError: no lines, or no line with a positive quantity
    """
    if not lines:
        raise ValidationError("items", "Itens do pedido não enviados.")

    units = effective_units(lines)
    if not units:
        raise ValidationError("items", "Nenhuma unidade de produto para validar.")

    insufficient = find_insufficient_ingredients(units, recipe)
    if insufficient:
        return InventoryCheck(ok=False, message=INSUFFICIENT_STOCK_MESSAGE, insufficient=insufficient)
    return InventoryCheck(ok=True)


def unavailable_products(recipe: Iterable[RecipeLine]) -> List[str]:
    """
    Products that cannot be made even once with current stock.

    Products whose recipe has no controlled ingredient never appear.
    """
    availability: Dict[str, bool] = {}
    for line in recipe:
        if line.quantity_per_unit <= 0:
            continue
        can_make_one = line.current_stock >= line.quantity_per_unit
        availability[line.product_id] = availability.get(line.product_id, True) and can_make_one

    return [product_id for product_id, available in availability.items() if not available]
