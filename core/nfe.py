"""
NFC-e (consumer tax invoice) emission.

Orders that need an invoice get a row in ``nfe_invoices`` with status
``pending``. The queue worker picks up to ``NFE_BATCH_SIZE`` of them,
oldest first, builds the Focus NFe v2 payload and records the outcome on
the row. Invoices are processed one at a time; a failure marks that row
``error`` and the loop moves on.

Usage:
    from core.nfe import NfeProcessor

    result = await NfeProcessor().process_pending()
"""
import re
from typing import Any, Callable, Dict, List, Optional

from core.backend import BackendClient, get_backend
from core.config import config
from core.events import OrderEvent, emit_nfe_batch_processed, events
from core.exceptions import GatewayError, NfeConfigurationError, NotFoundError
from core.focus_nfe import STATUS_AUTHORIZATION_ERROR, STATUS_AUTHORIZED, FocusNfeClient, error_message
from core.models import Company, NfeCompanySettings, NfeInvoice, NfeStatus, Order, OrderItem
from core.observability import get_logger, timed
from core.resilience import CircuitOpenError

logger = get_logger(__name__)

# order payment_method -> Focus NFe "forma_pagamento"
PAYMENT_CODES = {
    "pix": "17",
    "cash": "01",
    "card": "03",
    "card_online": "03",
    "debit": "04",
}
OTHER_PAYMENT_CODE = "99"

ICMS_SIMPLES_NACIONAL = "102"
ICMS_ORIGIN_NATIONAL = "0"
DELIVERY_ITEM_CODE = "ENTREGA"
DELIVERY_ITEM_DESCRIPTION = "Taxa de Entrega"


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def money(value: float) -> str:
    return f"{value:.2f}"


def _quantity(value: float):
    return int(value) if float(value).is_integer() else value


def _nfce_item(number: int, code: str, description: str, quantity, unit_price: float,
               total: float, ncm: str) -> Dict[str, Any]:
    return {
        "numero_item": str(number),
        "codigo_produto": code[:60],
        "descricao": description[:120],
        "quantidade": quantity,
        "unidade_comercial": "UN",
        "valor_unitario_comercial": money(unit_price),
        "valor_unitario_tributavel": money(unit_price),
        "unidade_tributavel": "UN",
        "codigo_ncm": ncm,
        "valor_bruto": money(total),
        "icms_situacao_tributaria": ICMS_SIMPLES_NACIONAL,
        "icms_origem": ICMS_ORIGIN_NATIONAL,
    }


def build_nfce_payload(
    order: Order,
    items: List[OrderItem],
    company: Company,
    settings: Optional[NfeCompanySettings] = None,
) -> Dict[str, Any]:
    """Focus NFe v2 NFC-e body for one order."""
    nfce_items = [
        _nfce_item(
            index,
            item.id or "",
            item.product_name,
            _quantity(item.quantity),
            item.unit_price,
            item.total_price,
            config.nfe.default_ncm,
        )
        for index, item in enumerate(items, start=1)
    ]

    if order.delivery_fee > 0:
        nfce_items.append(_nfce_item(
            len(nfce_items) + 1,
            DELIVERY_ITEM_CODE,
            DELIVERY_ITEM_DESCRIPTION,
            1,
            order.delivery_fee,
            order.delivery_fee,
            config.nfe.delivery_ncm,
        ))

    additional_info = f"Pedido: {order.id[:8]}"
    if order.notes:
        additional_info += f" | Obs: {order.notes[:200]}"

    payload: Dict[str, Any] = {
        "natureza_operacao": "VENDA AO CONSUMIDOR",
        "forma_pagamento": "0",      # à vista
        "tipo_documento": "1",       # saída
        "finalidade_emissao": "1",   # normal
        "consumidor_final": "1",
        "presenca_comprador": "4",   # entrega a domicílio
        "cnpj_emitente": only_digits(company.cnpj),
        "nome_destinatario": (order.customer_name or "")[:60],
        "items": nfce_items,
        "formas_pagamento": [{
            "forma_pagamento": PAYMENT_CODES.get(order.payment_method or "", OTHER_PAYMENT_CODE),
            "valor_pagamento": money(order.total),
        }],
        "valor_produtos": money(order.subtotal),
        "valor_desconto": money(order.discount_amount or 0),
        "valor_total": money(order.total),
        "informacoes_adicionais_contribuinte": additional_info,
    }

    state_registration = only_digits(company.inscricao_estadual)
    if state_registration:
        payload["inscricao_estadual_emitente"] = state_registration

    if settings and settings.csc_id and settings.csc_token:
        payload["csc_id"] = settings.csc_id
        payload["csc"] = settings.csc_token

    if settings and settings.serie_nfce:
        payload["serie"] = str(settings.serie_nfce)

    return payload


def invoice_update_from_response(body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Row update for an accepted gateway answer, or None when it was rejected.

    A body carrying ``_http_status`` came back with a 4xx.
    """
    focus_status = body.get("status")
    if "_http_status" in body or focus_status == STATUS_AUTHORIZATION_ERROR:
        return None

    authorized = focus_status == STATUS_AUTHORIZED
    update = {
        "status": NfeStatus.AUTHORIZED.value if authorized else NfeStatus.PROCESSING.value,
        "focus_nfe_id": body.get("id") or None,
        "nfe_number": body.get("numero") or None,
        "access_key": body.get("chave_nfe") or None,
    }
    if authorized:
        update["pdf_url"] = body.get("caminho_danfe") or None
        update["xml_url"] = body.get("caminho_xml_nota_fiscal") or None
    return update


class NfeProcessor:
    """Sequential worker over the pending invoice queue."""

    def __init__(
        self,
        backend: Optional[BackendClient] = None,
        focus_factory: Optional[Callable[[str, str], FocusNfeClient]] = None,
        batch_size: int = None,
    ):
        self.backend = backend or get_backend()
        self.focus_factory = focus_factory or FocusNfeClient
        self.batch_size = batch_size or config.nfe.batch_size

    async def _load_settings(self):
        settings = await self.backend.get_nfe_global_settings()
        if settings is None:
            raise NfeConfigurationError("NFe settings not configured")
        if not settings.is_enabled:
            raise NfeConfigurationError("NFe is disabled")
        if not settings.focus_nfe_token:
            raise NfeConfigurationError("Focus NFe token not configured")
        return settings

    @timed("nfe.process_pending", warn_threshold_ms=30000)
    async def process_pending(self) -> Dict[str, Any]:
        """
        Send every queued invoice to the gateway.

        Raises:
            NfeConfigurationError: NFe missing, disabled or without token
        """
        settings = await self._load_settings()

        invoices = await self.backend.get_pending_invoices(limit=self.batch_size)
        if not invoices:
            logger.debug("No pending invoices to process")
            return {"message": "No pending invoices", "processed": 0}

        logger.info(f"Found {len(invoices)} pending invoices")
        results = []
        for invoice in invoices:
            results.append(
                await self._process_invoice(invoice, settings.focus_nfe_token, settings.environment)
            )

        failed = sum(1 for r in results if r["status"] == "error")
        await emit_nfe_batch_processed(len(results) - failed, failed)
        logger.info(
            f"Processed {len(results)} invoices",
            extra={"processed": len(results), "failed": failed},
        )
        return {"message": "Processing complete", "results": results}

    async def _process_invoice(self, invoice: NfeInvoice, token: str, environment: str) -> Dict[str, Any]:
        logger.info(
            f"Processing invoice {invoice.id} for order {invoice.order_id}",
            extra={"invoice_id": invoice.id, "order_id": invoice.order_id},
        )
        try:
            await self.backend.update_invoice(invoice.id, {"status": NfeStatus.PROCESSING.value})

            order = await self.backend.get_order(invoice.order_id)
            if order is None:
                raise NotFoundError("Order", invoice.order_id)
            items = await self.backend.get_order_items(invoice.order_id)

            company = await self.backend.get_company(invoice.company_id)
            if company is None:
                raise NotFoundError("Company", invoice.company_id)
            if not company.cnpj:
                raise NfeConfigurationError("Company CNPJ not configured")

            company_settings = await self.backend.get_company_nfe_settings(invoice.company_id)
            use_environment = (company_settings.ambiente if company_settings else None) or environment

            payload = build_nfce_payload(order, items, company, company_settings)
            async with self.focus_factory(token, use_environment) as focus:
                body = await focus.emit_nfce(invoice.id, payload)

            update = invoice_update_from_response(body)
            if update is not None:
                await self.backend.update_invoice(invoice.id, update)
                return {"id": invoice.id, "status": "success", "focusStatus": body.get("status")}

            message = error_message(body)
            await self._mark_error(invoice, message)
            return {"id": invoice.id, "status": "error", "error": message}

        except Exception as e:
            logger.error(f"Error processing invoice {invoice.id}: {e}", exc_info=True)
            await self._mark_error(invoice, str(e))
            return {"id": invoice.id, "status": "error", "error": str(e)}

    async def _mark_error(self, invoice: NfeInvoice, message: str) -> None:
        try:
            await self.backend.update_invoice(
                invoice.id,
                {"status": NfeStatus.ERROR.value, "error_message": message},
            )
        except (GatewayError, CircuitOpenError) as e:
            # The row stays pending/processing and is retried next run
            logger.error(f"Could not mark invoice {invoice.id} as error: {e}")
        await events.emit(
            OrderEvent.NFE_INVOICE_FAILED,
            {"invoice_id": invoice.id, "order_id": invoice.order_id, "error": message},
            source="nfe",
        )
