"""
Mercado Pago payments client.

Only what the order flow needs: look up a payment announced by a webhook
and translate its status into our ``payment_status``.
"""
from typing import Any, Dict

from core.config import config
from core.http_client import GatewayClient
from core.models import PaymentStatus

FAILED_STATUSES = frozenset({"rejected", "cancelled", "refunded"})


def map_payment_status(gateway_status: str) -> str:
    """approved -> paid; rejected/cancelled/refunded -> failed; else pending."""
    if gateway_status == "approved":
        return PaymentStatus.PAID.value
    if gateway_status in FAILED_STATUSES:
        return PaymentStatus.FAILED.value
    return PaymentStatus.PENDING.value


class MercadoPagoClient(GatewayClient):

    service_name = "mercadopago"

    def __init__(self, access_token: str = None, base_url: str = None, **kwargs):
        self.access_token = access_token or config.payments.access_token
        if not self.access_token:
            raise ValueError("MERCADO_PAGO_ACCESS_TOKEN is required")
        kwargs.setdefault("timeout", config.payments.request_timeout)
        super().__init__(base_url=base_url or config.payments.base_url, **kwargs)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"v1/payments/{payment_id}") or {}
