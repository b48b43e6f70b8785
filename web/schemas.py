"""
Pydantic request and response models for API endpoints.

Request bodies accept the camelCase keys the storefront sends as well as
snake_case field names.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from core.models import Combo, ComboSlot, ComboSlotProduct, Coupon


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH / METRICS
# ═══════════════════════════════════════════════════════════════════════════════

class SyncStatus(BaseModel):
    """Background sync status for health check."""
    status: str = Field(description="Sync status: active, idle, stale or error")
    last_sync_time: Optional[str] = Field(None, description="Last sync time (ISO format)")
    seconds_since_sync: Optional[int] = Field(None, description="Seconds since last sync")
    last_orders_found: int = Field(0, description="Orders fetched by the last sync")
    last_error: Optional[str] = Field(None, description="Error of the last sync, if any")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status: healthy or degraded")
    version: str = Field(description="Application version")
    uptime_seconds: int = Field(description="Uptime in seconds")
    correlation_id: Optional[str] = Field(None, description="Request correlation ID")
    duckdb: Dict[str, Any] = Field(default_factory=dict, description="Analytics store status and counts")
    sync: Optional[SyncStatus] = Field(None, description="Background sync service status")


class MetricsResponse(BaseModel):
    """Application metrics."""
    uptime_seconds: int
    correlation_id: Optional[str] = None
    requests: Dict[str, int] = Field(default_factory=dict, description="Requests per endpoint")
    errors: Dict[str, int] = Field(default_factory=dict, description="Errors per type")
    gateways: Dict[str, Dict[str, int]] = Field(default_factory=dict, description="Upstream calls ok/failed")
    timing: Dict[str, Dict[str, Optional[float]]] = Field(default_factory=dict, description="Duration percentiles")


# ═══════════════════════════════════════════════════════════════════════════════
# MENU
# ═══════════════════════════════════════════════════════════════════════════════

class DayPeriod(CamelModel):
    id: str
    start_time: str = Field(alias="startTime", description="HH:MM")
    end_time: str = Field(alias="endTime", description="HH:MM, may be past midnight")
    is_active: bool = Field(True, alias="isActive")


class CategoryPeriodLink(CamelModel):
    category_id: str = Field(alias="categoryId")
    day_period_id: str = Field(alias="dayPeriodId")


class VisibleCategoriesRequest(CamelModel):
    """Category ids to filter plus the store's day periods and links."""
    category_ids: List[str] = Field(alias="categoryIds")
    day_periods: List[DayPeriod] = Field(default_factory=list, alias="dayPeriods")
    links: List[CategoryPeriodLink] = Field(default_factory=list)
    timezone: Optional[str] = None


class ComboSlotProductPayload(CamelModel):
    product_id: str = Field(alias="productId")
    name: str = ""
    price: float = 0.0


class ComboSlotPayload(CamelModel):
    id: str
    name: str = ""
    min_quantity: int = Field(1, alias="minQuantity", ge=0)
    max_quantity: int = Field(1, alias="maxQuantity", ge=0)
    products: List[ComboSlotProductPayload] = Field(default_factory=list)


class ComboPayload(CamelModel):
    id: str
    name: str = ""
    price_type: str = Field("fixed", alias="priceType")
    combo_price: float = Field(0.0, alias="comboPrice")
    original_price: Optional[float] = Field(None, alias="originalPrice")
    discount_percent: float = Field(0.0, alias="discountPercent", ge=0, le=100)
    slots: List[ComboSlotPayload] = Field(default_factory=list)

    def to_model(self) -> Combo:
        return Combo(
            id=self.id,
            name=self.name,
            price_type=self.price_type,
            combo_price=self.combo_price,
            original_price=self.original_price,
            discount_percent=self.discount_percent,
            slots=[
                ComboSlot(
                    id=slot.id,
                    name=slot.name,
                    min_quantity=slot.min_quantity,
                    max_quantity=slot.max_quantity,
                    products=[
                        ComboSlotProduct(p.product_id, p.name, p.price) for p in slot.products
                    ],
                )
                for slot in self.slots
            ],
        )


class ComboQuoteRequest(CamelModel):
    combo: ComboPayload
    selections: Dict[str, List[str]] = Field(default_factory=dict)


class CouponPayload(CamelModel):
    code: str
    discount_type: str = Field(alias="discountType")
    discount_value: float = Field(alias="discountValue")
    min_order_value: float = Field(0.0, alias="minOrderValue")
    max_uses: Optional[int] = Field(None, alias="maxUses")
    current_uses: int = Field(0, alias="currentUses")
    is_active: bool = Field(True, alias="isActive")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")

    def to_model(self) -> Coupon:
        expires_at = self.expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return Coupon(
            code=self.code.upper(),
            discount_type=self.discount_type,
            discount_value=self.discount_value,
            min_order_value=self.min_order_value,
            max_uses=self.max_uses,
            current_uses=self.current_uses,
            is_active=self.is_active,
            expires_at=expires_at,
        )


class CouponEvaluateRequest(CamelModel):
    coupon: CouponPayload
    subtotal: float = Field(ge=0)


# ═══════════════════════════════════════════════════════════════════════════════
# INVENTORY
# ═══════════════════════════════════════════════════════════════════════════════

class OrderLinePayload(CamelModel):
    """A cart line; half-and-half lines carry their flavour products."""
    product_id: Optional[str] = Field(None, alias="productId")
    quantity: float = 0
    is_half_half: bool = Field(False, alias="isHalfHalf")
    flavor_product_ids: List[str] = Field(default_factory=list, alias="halfHalfFlavorProductIds")


class InventoryValidateRequest(CamelModel):
    company_id: Optional[str] = Field(None, alias="companyId")
    items: List[OrderLinePayload] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# CREDITS
# ═══════════════════════════════════════════════════════════════════════════════

class ConsumeCreditsRequest(CamelModel):
    company_id: str = Field(alias="companyId")
    customer_id: str = Field(alias="customerId")
    amount_to_consume: float = Field(alias="amountToConsume")
    order_id: str = Field(alias="orderId")


class ConsumeCreditsResponse(BaseModel):
    consumed: float
    message: str


# ═══════════════════════════════════════════════════════════════════════════════
# ADMIN
# ═══════════════════════════════════════════════════════════════════════════════

class JobInfoResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    trigger: str = ""
    next_run: Optional[str] = None
    last_run: Optional[str] = None
    last_status: Optional[str] = None
    run_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None


class JobsResponse(BaseModel):
    status: str
    jobs: List[JobInfoResponse] = Field(default_factory=list)
    history: List[Dict[str, Any]] = Field(default_factory=list)
    sync: Optional[Dict[str, Any]] = None
