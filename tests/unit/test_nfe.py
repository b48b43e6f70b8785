"""
Tests for core.nfe payload building and gateway response mapping.
"""
import pytest

from core.models import Company, NfeCompanySettings, Order
from core.nfe import (
    build_nfce_payload,
    invoice_update_from_response,
    money,
    only_digits,
)


class TestHelpers:
    """Tests for formatting helpers."""

    def test_only_digits(self):
        assert only_digits("12.345.678/0001-90") == "12345678000190"
        assert only_digits(None) == ""

    def test_money(self):
        assert money(7) == "7.00"
        assert money(57.5) == "57.50"


class TestBuildNfcePayload:
    """Tests for build_nfce_payload."""

    def test_items_and_delivery_line(self, order, order_items, company):
        """Each order item becomes a line; the delivery fee is the last one."""
        payload = build_nfce_payload(order, order_items, company)
        items = payload["items"]

        assert len(items) == 3
        assert items[0]["numero_item"] == "1"
        assert items[0]["codigo_produto"] == "item-1"
        assert items[0]["descricao"] == "X-Burger"
        assert items[0]["quantidade"] == 2
        assert items[0]["valor_unitario_comercial"] == "20.00"
        assert items[0]["valor_bruto"] == "40.00"
        assert items[0]["codigo_ncm"] == "21069090"
        assert items[0]["icms_situacao_tributaria"] == "102"

        delivery = items[2]
        assert delivery["numero_item"] == "3"
        assert delivery["codigo_produto"] == "ENTREGA"
        assert delivery["descricao"] == "Taxa de Entrega"
        assert delivery["valor_bruto"] == "7.00"
        assert delivery["codigo_ncm"] == "49019900"

    def test_no_delivery_line_without_fee(self, order, order_items, company):
        order.delivery_fee = 0
        payload = build_nfce_payload(order, order_items, company)
        assert [i["codigo_produto"] for i in payload["items"]] == ["item-1", "item-2"]

    def test_totals_and_payment(self, order, order_items, company):
        payload = build_nfce_payload(order, order_items, company)

        assert payload["valor_produtos"] == "52.50"
        assert payload["valor_desconto"] == "2.00"
        assert payload["valor_total"] == "57.50"
        assert payload["formas_pagamento"] == [
            {"forma_pagamento": "17", "valor_pagamento": "57.50"}
        ]
        assert payload["natureza_operacao"] == "VENDA AO CONSUMIDOR"
        assert payload["presenca_comprador"] == "4"

    def test_unknown_payment_method(self, order, order_items, company):
        order.payment_method = "voucher"
        payload = build_nfce_payload(order, order_items, company)
        assert payload["formas_pagamento"][0]["forma_pagamento"] == "99"

    def test_issuer_fields(self, order, order_items, company):
        payload = build_nfce_payload(order, order_items, company)

        assert payload["cnpj_emitente"] == "12345678000190"
        assert payload["inscricao_estadual_emitente"] == "123456789000"
        assert payload["nome_destinatario"] == "Maria Souza"
        assert payload["informacoes_adicionais_contribuinte"] == "Pedido: 44444444 | Obs: Sem cebola"

    def test_without_state_registration_or_notes(self, order_items):
        order = Order(id="abcdef1234", company_id="c", status="delivered", total=10.0)
        company = Company(id="c", name="Loja", cnpj="11.222.333/0001-44")

        payload = build_nfce_payload(order, order_items, company)

        assert "inscricao_estadual_emitente" not in payload
        assert payload["informacoes_adicionais_contribuinte"] == "Pedido: abcdef12"
        assert payload["valor_desconto"] == "0.00"

    def test_company_settings(self, order, order_items, company):
        settings = NfeCompanySettings(company_id=company.id, csc_id="1", csc_token="TOKEN", serie_nfce=2)
        payload = build_nfce_payload(order, order_items, company, settings)

        assert payload["csc_id"] == "1"
        assert payload["csc"] == "TOKEN"
        assert payload["serie"] == "2"

    def test_csc_requires_both_parts(self, order, order_items, company):
        settings = NfeCompanySettings(company_id=company.id, csc_id="1")
        payload = build_nfce_payload(order, order_items, company, settings)

        assert "csc_id" not in payload
        assert "serie" not in payload

    def test_long_description_truncated(self, order, order_items, company):
        order_items[0].product_name = "P" * 200
        payload = build_nfce_payload(order, order_items, company)
        assert len(payload["items"][0]["descricao"]) == 120


class TestInvoiceUpdateFromResponse:
    """Tests for invoice_update_from_response."""

    def test_authorized(self):
        body = {
            "status": "autorizado",
            "id": "focus-1",
            "numero": "123",
            "chave_nfe": "NFe3526",
            "caminho_danfe": "/danfe.pdf",
            "caminho_xml_nota_fiscal": "/nota.xml",
        }
        assert invoice_update_from_response(body) == {
            "status": "authorized",
            "focus_nfe_id": "focus-1",
            "nfe_number": "123",
            "access_key": "NFe3526",
            "pdf_url": "/danfe.pdf",
            "xml_url": "/nota.xml",
        }

    def test_still_processing(self):
        """Anything accepted but not yet authorized stays processing."""
        update = invoice_update_from_response({"status": "processando_autorizacao", "id": "f-2"})

        assert update["status"] == "processing"
        assert update["focus_nfe_id"] == "f-2"
        assert update["nfe_number"] is None
        assert "pdf_url" not in update

    def test_authorization_error(self):
        assert invoice_update_from_response({"status": "erro_autorizacao"}) is None

    @pytest.mark.parametrize("body", [
        {"_http_status": 422, "mensagem": "CNPJ invalido"},
        {"_http_status": 400},
    ])
    def test_client_rejection(self, body):
        assert invoice_update_from_response(body) is None
