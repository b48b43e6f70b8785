"""
Menu pricing rules: combos, coupons and half-and-half pizzas.

All functions are pure and work on ``core.models`` types; routes and the
checkout flow call them directly.

Usage:
    selections = toggle_selection({}, combo.slot("drink"), "coke")
    quote = quote_combo(combo, selections)
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.exceptions import ValidationError
from core.models import Combo, ComboSlot, Coupon, PizzaPriceRule

Selections = Dict[str, List[str]]


def _round_money(value: float) -> float:
    return round(value, 2)


# ═══════════════════════════════════════════════════════════════════════════════
# COMBOS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ComboQuote:
    price: float
    original_price: Optional[float]
    savings: float
    show_original_price: bool

    def to_dict(self) -> Dict:
        return {
            "price": self.price,
            "original_price": self.original_price,
            "savings": self.savings,
            "show_original_price": self.show_original_price,
        }


def toggle_selection(selections: Selections, slot: ComboSlot, product_id: str) -> Selections:
    """
    Select or unselect ``product_id`` in ``slot``.

    A full slot drops its oldest choice to make room. Returns a new mapping.
    """
    result = {key: list(value) for key, value in selections.items()}
    current = result.get(slot.id, [])

    if product_id in current:
        current = [p for p in current if p != product_id]
    elif slot.max_quantity > 0 and len(current) >= slot.max_quantity:
        current = current[1:] + [product_id]
    else:
        current = current + [product_id]

    result[slot.id] = current
    return result


def selected_total(combo: Combo, selections: Selections) -> float:
    total = 0.0
    for slot in combo.slots:
        for product_id in selections.get(slot.id, []):
            product = slot.find_product(product_id)
            if product:
                total += product.price
    return total


def quote_combo(combo: Combo, selections: Optional[Selections] = None) -> ComboQuote:
    """Price a combo for the current selections."""
    selections = selections or {}
    pct = combo.discount_percent or 0.0
    has_discount = pct > 0

    if combo.is_fixed:
        price = combo.combo_price
        if has_discount and pct < 100:
            original = price / (1 - pct / 100)
        else:
            original = combo.original_price
    else:
        original = selected_total(combo, selections)
        price = original * (1 - pct / 100) if has_discount else original

    original_positive = original is not None and original > 0
    savings = original - price if has_discount and original_positive else 0.0
    has_selection = any(selections.get(slot.id) for slot in combo.slots)

    return ComboQuote(
        price=_round_money(price),
        original_price=_round_money(original) if original is not None else None,
        savings=_round_money(max(savings, 0.0)),
        show_original_price=bool(
            has_discount and original_positive and (combo.is_fixed or has_selection)
        ),
    )


def selection_is_complete(combo: Combo, selections: Selections) -> bool:
    return all(
        len(selections.get(slot.id, [])) >= slot.min_quantity
        for slot in combo.slots
    )


def describe_selection(combo: Combo, selections: Selections) -> str:
    """Cart note like ``Lanche: X-Burger | Bebida: Coca, Suco``."""
    parts = []
    for slot in combo.slots:
        names = [
            product.name
            for product in (slot.find_product(pid) for pid in selections.get(slot.id, []))
            if product
        ]
        if names:
            parts.append(f"{slot.name}: {', '.join(names)}")
    return " | ".join(parts)


# ═══════════════════════════════════════════════════════════════════════════════
# COUPONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CouponResult:
    valid: bool
    discount: float = 0.0
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {"valid": self.valid, "discount": self.discount, "reason": self.reason}


def evaluate_coupon(coupon: Coupon, subtotal: float, now: datetime) -> CouponResult:
    """
    Check a coupon against an order subtotal.

    The discount is clamped to [0, subtotal].
    """
    if not coupon.is_active:
        return CouponResult(False, reason="Cupom inativo")
    if coupon.expires_at and coupon.expires_at < now:
        return CouponResult(False, reason="Cupom expirado")
    if coupon.max_uses and coupon.current_uses >= coupon.max_uses:
        return CouponResult(False, reason="Cupom esgotado")
    if subtotal < coupon.min_order_value:
        return CouponResult(
            False,
            reason=f"Pedido mínimo de R$ {coupon.min_order_value:.2f}".replace(".", ","),
        )

    if coupon.discount_type == "percentage":
        discount = subtotal * coupon.discount_value / 100
    elif coupon.discount_type == "fixed":
        discount = coupon.discount_value
    else:
        raise ValidationError("discount_type", "must be 'percentage' or 'fixed'", coupon.discount_type)

    discount = min(max(discount, 0.0), max(subtotal, 0.0))
    return CouponResult(True, discount=_round_money(discount))


# ═══════════════════════════════════════════════════════════════════════════════
# HALF-AND-HALF PIZZA
# ═══════════════════════════════════════════════════════════════════════════════

def half_half_price(
    flavor_prices: Sequence[float],
    rule: str = PizzaPriceRule.HIGHER_PRICE.value,
    fixed_price: Optional[float] = None,
) -> float:
    """Price of a pizza split between flavours under the store's rule."""
    if not flavor_prices:
        raise ValidationError("flavor_prices", "at least one flavour is required")

    try:
        rule = PizzaPriceRule(rule)
    except ValueError:
        raise ValidationError("rule", "unknown pizza price rule", rule)

    if rule == PizzaPriceRule.FIXED_PRICE:
        if fixed_price is None:
            raise ValidationError("fixed_price", "required for fixed_price rule")
        return _round_money(fixed_price)
    if rule == PizzaPriceRule.AVERAGE_PRICE:
        return _round_money(sum(flavor_prices) / len(flavor_prices))
    return _round_money(max(flavor_prices))
