"""Payment gateway webhooks."""
from fastapi import APIRouter, Request

from core.exceptions import GatewayError, NotFoundError
from core.order_service import get_order_service
from core.resilience import CircuitOpenError
from ._deps import WEBHOOK_RATE_LIMIT, get_logger, limiter

router = APIRouter()
logger = get_logger(__name__)


@router.post("/payments/mercadopago/webhook")
@limiter.limit(WEBHOOK_RATE_LIMIT)
async def mercadopago_webhook(request: Request):
    """
    Mercado Pago notification.

    Always answers 200 so the gateway does not keep retrying; failures
    are logged and reported in the body.
    """
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Mercado Pago webhook with invalid JSON body")
        return {"received": True, "error": "invalid JSON"}

    if not isinstance(body, dict):
        return {"received": True}

    logger.info(
        "Mercado Pago webhook received",
        extra={"type": body.get("type"), "action": body.get("action")},
    )
    try:
        return await get_order_service().handle_payment_webhook(body)
    except (GatewayError, CircuitOpenError, NotFoundError, ValueError) as e:
        logger.error(f"Mercado Pago webhook failed: {e}", exc_info=True)
        return {"received": True, "error": str(e)}
    except Exception as e:
        logger.error(f"Unexpected Mercado Pago webhook error: {e}", exc_info=True)
        return {"received": True, "error": "internal error"}
