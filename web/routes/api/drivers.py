"""Delivery driver endpoints."""
from typing import Optional

from fastapi import APIRouter, Query, Request

from core.delivery import calculate_driver_metrics
from core.order_service import get_order_service
from core.validators import validate_id, validate_month
from ._deps import DEFAULT_RATE_LIMIT, get_logger, get_store, limiter, local_now

router = APIRouter()
logger = get_logger(__name__)


@router.post("/drivers/{driver_id}/queue/advance")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def advance_queue(request: Request, driver_id: str):
    """Hand the driver their next queued delivery once the current one is done."""
    driver_id = validate_id(driver_id, "driver_id")
    return await get_order_service().advance_driver_queue(driver_id)


@router.get("/companies/{company_id}/drivers/{driver_id}/metrics")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_driver_metrics(
    request: Request,
    company_id: str,
    driver_id: str,
    month: Optional[str] = Query(None, description="YYYY-MM, defaults to the current month"),
):
    company_id = validate_id(company_id, "company_id")
    driver_id = validate_id(driver_id, "driver_id")

    now = local_now()
    month_start, month_end = validate_month(month, now)

    store = await get_store()
    deliveries = await store.get_driver_orders(driver_id, company_id=company_id)
    metrics = calculate_driver_metrics(deliveries, month_start, month_end, now)
    return {
        "driver_id": driver_id,
        "month": month_start.strftime("%Y-%m"),
        **metrics.to_dict(),
    }
