"""Ingredient stock endpoints."""
from fastapi import APIRouter, Request

from core.backend import get_backend
from core.cache import cache, unavailable_key
from core.config import config
from core.inventory import OrderLine, unavailable_products, validate_order_inventory
from core.validators import validate_id
from web.schemas import InventoryValidateRequest
from ._deps import DEFAULT_RATE_LIMIT, get_logger, limiter

router = APIRouter()
logger = get_logger(__name__)


@router.post("/inventory/validate")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def validate_inventory(request: Request, body: InventoryValidateRequest):
    """
    Check an order against live ingredient stock before checkout.

    Half-and-half lines consume a share of each flavour's recipe.
    """
    lines = [
        OrderLine(
            product_id=item.product_id,
            quantity=item.quantity,
            is_half_half=item.is_half_half,
            flavor_product_ids=item.flavor_product_ids,
        )
        for item in body.items
    ]

    product_ids = sorted({
        product_id
        for line in lines
        for product_id in ([line.product_id] + line.flavor_product_ids)
        if product_id
    })
    recipe = []
    if product_ids:
        recipe = await get_backend().get_recipe_lines(
            company_id=body.company_id, product_ids=product_ids
        )

    check = validate_order_inventory(lines, recipe)
    if not check.ok:
        logger.info(
            "Order blocked by ingredient stock",
            extra={"company_id": body.company_id, "missing": len(check.insufficient)},
        )
    return check.to_dict()


@router.get("/companies/{company_id}/unavailable-products")
@limiter.limit(DEFAULT_RATE_LIMIT)
async def get_unavailable_products(request: Request, company_id: str):
    """Products that cannot be made even once with current stock."""
    company_id = validate_id(company_id, "company_id")

    async def load():
        recipe = await get_backend().get_recipe_lines(company_id=company_id)
        return unavailable_products(recipe)

    product_ids = await cache.get_or_set(
        unavailable_key(company_id), load, ttl=config.cache.unavailable_ttl_seconds
    )
    return {"company_id": company_id, "product_ids": product_ids}
