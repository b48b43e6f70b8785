"""
Domain models for restaurant ordering data.

Dataclasses built from backend REST rows (``from_row``) and serialized
back for API responses (``to_dict``). Every business module works on
these types rather than on raw dicts.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO timestamps as returned by PostgREST (``Z`` or offset)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def to_float(value: Any, default: float = 0.0) -> float:
    """Numeric columns arrive as numbers or strings; null becomes default."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    AWAITING_DRIVER = "awaiting_driver"
    QUEUED = "queued"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @classmethod
    def in_kitchen(cls) -> set:
        """Statuses counted as 'pending' on the dashboard."""
        return {cls.PENDING.value, cls.CONFIRMED.value, cls.PREPARING.value, cls.READY.value}

    @property
    def label(self) -> str:
        return STATUS_LABELS.get(self.value, (self.value, UNKNOWN_STATUS_COLOR))[0]

    @property
    def color(self) -> str:
        return STATUS_LABELS.get(self.value, (self.value, UNKNOWN_STATUS_COLOR))[1]


# status -> (pt-BR label, chart colour)
STATUS_LABELS: Dict[str, tuple] = {
    "pending": ("Pendente", "#eab308"),
    "confirmed": ("Confirmado", "#3b82f6"),
    "preparing": ("Preparando", "#f97316"),
    "ready": ("Pronto", "#a855f7"),
    "out_for_delivery": ("Em entrega", "#06b6d4"),
    "delivered": ("Entregue", "#22c55e"),
    "cancelled": ("Cancelado", "#ef4444"),
}
UNKNOWN_STATUS_COLOR = "#6b7280"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class NfeStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    AUTHORIZED = "authorized"
    ERROR = "error"


class DriverStatus(str, Enum):
    AVAILABLE = "available"
    PENDING_ACCEPTANCE = "pending_acceptance"
    BUSY = "busy"


class MovementType(str, Enum):
    PURCHASE = "purchase"
    CONSUMPTION = "consumption"
    ADJUSTMENT = "adjustment"


class PizzaPriceRule(str, Enum):
    """How a half-and-half pizza is priced from its flavours."""
    HIGHER_PRICE = "higher_price"
    AVERAGE_PRICE = "average_price"
    FIXED_PRICE = "fixed_price"


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrderItem:
    product_name: str
    quantity: float
    unit_price: float
    total_price: float
    id: Optional[str] = None
    order_id: Optional[str] = None
    product_id: Optional[str] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            id=data.get("id"),
            order_id=data.get("order_id"),
            product_id=data.get("product_id"),
            product_name=data.get("product_name") or "",
            quantity=to_float(data.get("quantity")),
            unit_price=to_float(data.get("unit_price")),
            total_price=to_float(data.get("total_price")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
        }


@dataclass
class Order:
    id: str
    company_id: str
    status: str
    total: float
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    customer_name: str = ""
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    discount_amount: float = 0.0
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    source: Optional[str] = None
    notes: Optional[str] = None
    delivery_driver_id: Optional[str] = None
    queue_position: Optional[int] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Order":
        queue_position = data.get("queue_position")
        return cls(
            id=data["id"],
            company_id=data.get("company_id") or "",
            status=data.get("status") or OrderStatus.PENDING.value,
            total=to_float(data.get("total")),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            delivered_at=parse_datetime(data.get("delivered_at")),
            customer_name=data.get("customer_name") or "",
            customer_phone=data.get("customer_phone"),
            customer_email=data.get("customer_email"),
            subtotal=to_float(data.get("subtotal")),
            delivery_fee=to_float(data.get("delivery_fee")),
            discount_amount=to_float(data.get("discount_amount")),
            payment_method=data.get("payment_method"),
            payment_status=data.get("payment_status"),
            source=data.get("source"),
            notes=data.get("notes"),
            delivery_driver_id=data.get("delivery_driver_id"),
            queue_position=int(queue_position) if queue_position is not None else None,
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED.value

    def is_within(self, start: datetime, end: datetime) -> bool:
        if not self.created_at:
            return False
        return start <= self.created_at <= end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "status": self.status,
            "total": self.total,
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "discount_amount": self.discount_amount,
            "customer_name": self.customer_name,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "source": self.source,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# COMPANY / NFE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Company:
    id: str
    name: str
    cnpj: Optional[str] = None
    razao_social: Optional[str] = None
    inscricao_estadual: Optional[str] = None
    status: Optional[str] = None
    is_open: bool = True
    opening_hours: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Company":
        is_open = data.get("is_open")
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            cnpj=data.get("cnpj"),
            razao_social=data.get("razao_social"),
            inscricao_estadual=data.get("inscricao_estadual"),
            status=data.get("status"),
            is_open=True if is_open is None else bool(is_open),
            opening_hours=data.get("opening_hours"),
        )


@dataclass
class NfeGlobalSettings:
    is_enabled: bool = False
    focus_nfe_token: Optional[str] = None
    environment: str = "homologacao"

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "NfeGlobalSettings":
        return cls(
            is_enabled=bool(data.get("is_enabled")),
            focus_nfe_token=data.get("focus_nfe_token") or None,
            environment=data.get("environment") or "homologacao",
        )


@dataclass
class NfeCompanySettings:
    company_id: str
    csc_id: Optional[str] = None
    csc_token: Optional[str] = None
    serie_nfce: Optional[int] = None
    ambiente: Optional[str] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "NfeCompanySettings":
        serie = data.get("serie_nfce")
        return cls(
            company_id=data.get("company_id") or "",
            csc_id=data.get("csc_id") or None,
            csc_token=data.get("csc_token") or None,
            serie_nfce=int(serie) if serie not in (None, "") else None,
            ambiente=data.get("ambiente") or None,
        )


@dataclass
class NfeInvoice:
    id: str
    order_id: str
    company_id: str
    status: str = NfeStatus.PENDING.value
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "NfeInvoice":
        return cls(
            id=data["id"],
            order_id=data.get("order_id") or "",
            company_id=data.get("company_id") or "",
            status=data.get("status") or NfeStatus.PENDING.value,
            created_at=parse_datetime(data.get("created_at")),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# INVENTORY
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Ingredient:
    id: str
    name: str
    current_stock: float = 0.0
    min_stock: float = 0.0
    unit: Optional[str] = None
    average_unit_cost: float = 0.0
    company_id: Optional[str] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Ingredient":
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            current_stock=to_float(data.get("current_stock")),
            min_stock=to_float(data.get("min_stock")),
            unit=data.get("unit"),
            average_unit_cost=to_float(data.get("average_unit_cost")),
            company_id=data.get("company_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "unit": self.unit,
        }


@dataclass
class RecipeLine:
    """One ingredient of a product's recipe, joined with the ingredient's stock."""
    product_id: str
    ingredient_id: str
    quantity_per_unit: float
    ingredient_name: str = ""
    current_stock: float = 0.0

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "RecipeLine":
        # PostgREST embeds the joined ingredient under its table name
        ingredient = data.get("inventory_ingredients") or {}
        return cls(
            product_id=data["product_id"],
            ingredient_id=data["ingredient_id"],
            quantity_per_unit=to_float(data.get("quantity_per_unit")),
            ingredient_name=ingredient.get("name") or data.get("ingredient_name") or "",
            current_stock=to_float(
                ingredient.get("current_stock", data.get("current_stock"))
            ),
        )


@dataclass
class InventoryMovement:
    ingredient_id: str
    movement_type: str
    quantity: float
    unit_cost: Optional[float] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "InventoryMovement":
        unit_cost = data.get("unit_cost")
        return cls(
            id=data.get("id"),
            ingredient_id=data.get("ingredient_id") or "",
            movement_type=data.get("movement_type") or "",
            quantity=to_float(data.get("quantity")),
            unit_cost=to_float(unit_cost) if unit_cost is not None else None,
            created_at=parse_datetime(data.get("created_at")),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# DELIVERY / CREDITS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class DeliveryDriver:
    id: str
    company_id: str
    driver_name: str = ""
    user_id: Optional[str] = None
    driver_status: Optional[str] = None
    is_available: bool = False

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "DeliveryDriver":
        return cls(
            id=data["id"],
            company_id=data.get("company_id") or "",
            driver_name=data.get("driver_name") or "",
            user_id=data.get("user_id"),
            driver_status=data.get("driver_status"),
            is_available=bool(data.get("is_available")),
        )


@dataclass
class CustomerCredit:
    id: str
    remaining_amount: float
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "CustomerCredit":
        return cls(
            id=data["id"],
            remaining_amount=to_float(data.get("remaining_amount")),
            created_at=parse_datetime(data.get("created_at")),
            expires_at=parse_datetime(data.get("expires_at")),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# MENU
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Coupon:
    code: str
    discount_type: str
    discount_value: float
    min_order_value: float = 0.0
    max_uses: Optional[int] = None
    current_uses: int = 0
    is_active: bool = True
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, data: Dict[str, Any]) -> "Coupon":
        max_uses = data.get("max_uses")
        is_active = data.get("is_active")
        return cls(
            code=(data.get("code") or "").upper(),
            discount_type=data.get("discount_type") or "percentage",
            discount_value=to_float(data.get("discount_value")),
            min_order_value=to_float(data.get("min_order_value")),
            max_uses=int(max_uses) if max_uses is not None else None,
            current_uses=int(data.get("current_uses") or 0),
            is_active=True if is_active is None else bool(is_active),
            expires_at=parse_datetime(data.get("expires_at")),
        )


@dataclass
class ComboSlotProduct:
    product_id: str
    name: str
    price: float


@dataclass
class ComboSlot:
    id: str
    name: str
    min_quantity: int = 1
    max_quantity: int = 1
    products: List[ComboSlotProduct] = field(default_factory=list)

    def find_product(self, product_id: str) -> Optional[ComboSlotProduct]:
        for product in self.products:
            if product.product_id == product_id:
                return product
        return None


@dataclass
class Combo:
    id: str
    name: str
    price_type: str = "fixed"  # fixed | selectable
    combo_price: float = 0.0
    original_price: Optional[float] = None
    discount_percent: float = 0.0
    slots: List[ComboSlot] = field(default_factory=list)

    @property
    def is_fixed(self) -> bool:
        return self.price_type != "selectable"

    def slot(self, slot_id: str) -> Optional[ComboSlot]:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None
