"""Dashboard endpoint."""
from typing import Optional

from fastapi import APIRouter, Query, Request

from core.validators import validate_id, validate_period
from web.services.dashboard_service import get_dashboard_service
from ._deps import DEFAULT_RATE_LIMIT, get_logger, limiter, local_now

router = APIRouter()
logger = get_logger(__name__)


@router.get("/companies/{company_id}/dashboard")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_dashboard(
    request: Request,
    company_id: str,
    period: Optional[str] = Query(None, description="today, 7days or 30days"),
    timezone: Optional[str] = Query(None, description="IANA timezone for day boundaries"),
):
    """Headline stats, charts, recent orders and inventory overview."""
    company_id = validate_id(company_id, "company_id")
    period = validate_period(period)
    service = await get_dashboard_service()
    return await service.get_dashboard(company_id, period, local_now(timezone))
