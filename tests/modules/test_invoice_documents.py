"""Tests for the invoice document read-model and rendering hand-off."""

import json

from ledger_modules.billing.documents import InvoiceDocument


class JsonRenderer:
    """Minimal renderer: serializes the wire form."""

    def __init__(self):
        self.seen = []

    def render(self, document: InvoiceDocument) -> bytes:
        self.seen.append(document)
        return json.dumps(document.to_dict(), sort_keys=True).encode("utf-8")


class TestBuildDocument:
    def test_reconciled_amounts(self, create_invoice, ledger, payments, test_actor_id):
        invoice = create_invoice()
        payments.record_payment(invoice.id, "5.00", "cash", actor_id=test_actor_id)

        document = ledger.build_document(invoice.id)

        assert document.amount_paid.to_wire() == "5.00"
        assert document.balance_due.to_wire() == "100.00"
        assert len(document.payments) == 1
        assert document.currency == "USD"

    def test_wire_format(self, create_invoice, ledger, payments, test_actor_id):
        invoice = create_invoice()
        payments.record_payment(invoice.id, "105.00", "card", actor_id=test_actor_id)

        wire = ledger.build_document(invoice.id).to_dict()

        assert wire["invoice"]["total_amount"] == "105.00"
        assert wire["invoice"]["status"] == "paid"
        assert wire["invoice"]["issue_date"] == "2024-01-01"
        assert wire["invoice"]["items"][0]["total_price"] == "100.00"
        assert wire["payments"][0]["recorded_at"].endswith("+00:00")
        assert wire["balance_due"] == "0.00"

    def test_status_is_derived(self, create_invoice, ledger, deterministic_clock):
        invoice = create_invoice(due_in_days=1)
        deterministic_clock.advance_days(2)

        assert ledger.build_document(invoice.id).invoice.status.value == "overdue"


class TestRenderDocument:
    def test_renderer_receives_document(self, create_invoice, ledger):
        invoice = create_invoice()
        renderer = JsonRenderer()

        content = ledger.render_document(invoice.id, renderer)

        assert json.loads(content)["invoice"]["invoice_number"] == invoice.invoice_number
        assert renderer.seen[0].invoice.id == invoice.id

    def test_render_is_logged(self, create_invoice, ledger, captured_logs):
        invoice = create_invoice()
        ledger.render_document(invoice.id, JsonRenderer())

        rendered = [r for r in captured_logs() if r["message"] == "invoice_document_rendered"]
        assert rendered[-1]["renderer"] == "JsonRenderer"
        assert rendered[-1]["invoice_number"] == invoice.invoice_number
