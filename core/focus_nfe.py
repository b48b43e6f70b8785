"""
Focus NFe gateway client (NFC-e consumer invoices).

Authentication is HTTP Basic with the account token as username and an
empty password. The invoice row id is used as the gateway ``ref`` so a
retried emission is idempotent on their side.
"""
from typing import Any, Dict

import httpx

from core.config import config
from core.exceptions import GatewayAPIError
from core.http_client import GatewayClient
from core.observability import get_logger
from core.resilience import RetryConfig

logger = get_logger(__name__)

STATUS_AUTHORIZED = "autorizado"
STATUS_AUTHORIZATION_ERROR = "erro_autorizacao"
UNKNOWN_ERROR_MESSAGE = "Erro desconhecido"

# Emission runs inside an order request: one retry, short backoff.
EMIT_RETRY = RetryConfig(max_attempts=2, base_delay=1.0, max_delay=5.0)


def error_message(body: Any) -> str:
    """Human message from a gateway rejection body."""
    if isinstance(body, dict):
        if body.get("mensagem"):
            return str(body["mensagem"])
        errors = body.get("erros") or []
        if errors and isinstance(errors[0], dict) and errors[0].get("mensagem"):
            return str(errors[0]["mensagem"])
    return UNKNOWN_ERROR_MESSAGE


class FocusNfeClient(GatewayClient):
    """
    Usage:
        async with FocusNfeClient(token, environment="production") as focus:
            body = await focus.emit_nfce(invoice.id, payload)
    """

    service_name = "focus_nfe"

    def __init__(self, token: str, environment: str = "homologacao", **kwargs):
        if not token:
            raise ValueError("Focus NFe token is required")
        self.token = token
        self.environment = environment
        kwargs.setdefault("timeout", config.nfe.request_timeout)
        kwargs.setdefault("retry_config", EMIT_RETRY)
        super().__init__(base_url=config.nfe.base_url(environment), **kwargs)

    @property
    def auth(self) -> httpx.Auth:
        return httpx.BasicAuth(self.token, "")

    async def emit_nfce(self, ref: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit an NFC-e for authorization.

        Returns the gateway body; a 4xx rejection is returned too (with the
        HTTP status under ``_http_status``) because it carries the
        rejection message the caller stores on the invoice.
        """
        try:
            body = await self._request("POST", "v2/nfce", params={"ref": ref}, json=payload)
        except GatewayAPIError as e:
            if e.status_code is not None and e.status_code < 500:
                rejected = dict(e.body) if isinstance(e.body, dict) else {}
                rejected["_http_status"] = e.status_code
                return rejected
            raise
        return body or {}
