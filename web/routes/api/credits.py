"""Customer referral credit endpoints."""
from fastapi import APIRouter, Request

from core.order_service import get_order_service
from core.validators import validate_amount, validate_id
from web.schemas import ConsumeCreditsRequest, ConsumeCreditsResponse
from ._deps import DEFAULT_RATE_LIMIT, get_logger, limiter

router = APIRouter()
logger = get_logger(__name__)


@router.post("/credits/consume", response_model=ConsumeCreditsResponse)
@limiter.limit(DEFAULT_RATE_LIMIT)
async def consume_credits(request: Request, body: ConsumeCreditsRequest):
    """Spend a customer's credits on an order, oldest credit first."""
    return await get_order_service().consume_customer_credits(
        company_id=validate_id(body.company_id, "companyId"),
        customer_id=validate_id(body.customer_id, "customerId"),
        amount=validate_amount(body.amount_to_consume, "amountToConsume"),
        order_id=validate_id(body.order_id, "orderId"),
    )
