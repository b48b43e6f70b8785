"""Storefront menu endpoints: store hours, category visibility, combos and coupons."""
from fastapi import APIRouter, Request

from core.backend import get_backend
from core.exceptions import NotFoundError
from core.pricing import describe_selection, evaluate_coupon, quote_combo, selection_is_complete
from core.store_hours import check_store_open, filter_categories_by_day_period, format_today_hours
from core.validators import validate_id
from web.schemas import ComboQuoteRequest, CouponEvaluateRequest, VisibleCategoriesRequest
from ._deps import DEFAULT_RATE_LIMIT, get_logger, limiter, local_now

router = APIRouter()
logger = get_logger(__name__)


@router.get("/companies/{company_id}/store-status")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_store_status(request: Request, company_id: str):
    """Whether the store takes orders now, read live from the backend."""
    company_id = validate_id(company_id, "company_id")
    company = await get_backend().get_company(company_id)
    if company is None:
        raise NotFoundError("Company", company_id)

    now = local_now()
    status = check_store_open(company.is_open, company.opening_hours, now)
    return {
        **status.to_dict(),
        "today_hours": format_today_hours(company.opening_hours, now),
    }


@router.post("/menu/categories/visible")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_visible_categories(request: Request, body: VisibleCategoriesRequest):
    now = local_now(body.timezone)
    visible = filter_categories_by_day_period(
        body.category_ids,
        [p.model_dump() for p in body.day_periods],
        [link.model_dump() for link in body.links],
        now,
    )
    return {"category_ids": visible}


@router.post("/menu/combos/quote")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def quote_combo_endpoint(request: Request, body: ComboQuoteRequest):
    combo = body.combo.to_model()
    return {
        **quote_combo(combo, body.selections).to_dict(),
        "is_complete": selection_is_complete(combo, body.selections),
        "description": describe_selection(combo, body.selections),
    }


@router.post("/coupons/evaluate")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def evaluate_coupon_endpoint(request: Request, body: CouponEvaluateRequest):
    result = evaluate_coupon(body.coupon.to_model(), body.subtotal, local_now())
    return {"code": body.coupon.code.upper(), **result.to_dict()}
