"""
Tests para el módulo de Facturación

Cubren:
- Máquina de estados (función pura y aplicada al modelo)
- Creación en borrador, edición solo en borrador, envío y anulación
- Registro de pagos: guardas, sobrepagos, idempotencia e invariantes de saldo
- Actualización periódica de vencimientos
- Detección de posibles facturas duplicadas
- Endpoints HTTP

Todas las consultas están scoped por tenant_id.
"""

import pytest
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException

from app.modules.invoices.models import Invoice, InvoiceStatus, PaymentMethod
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceLineItemCreate, InvoiceUpdate, PaymentCreate, InvoiceFilters,
    DuplicateCheckRequest
)
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.state import derive_invoice_state


# ===== FIXTURES =====

@pytest.fixture
def catalog(make_item):
    """Dos bienes: A a 50 y B a 20"""
    return make_item(name="Producto A", price="50.00"), make_item(name="Producto B", price="20.00")


@pytest.fixture
def invoice_data(customer, catalog):
    """2 x 50 + 1 x 20, descuento 10, envío 5 -> total 115"""
    item_a, item_b = catalog
    return InvoiceCreate(
        customer_id=customer.id,
        discount=Decimal("10"),
        shipping=Decimal("5"),
        items=[
            InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("2")),
            InvoiceLineItemCreate(item_id=item_b.id, quantity=Decimal("1")),
        ]
    )


@pytest.fixture
def service(db_session):
    return InvoiceService(db_session)


@pytest.fixture
def draft_invoice(service, invoice_data, tenant_id):
    return service.create_invoice(invoice_data, tenant_id)


@pytest.fixture
def sent_invoice(service, draft_invoice, tenant_id):
    return service.mark_invoice_sent(draft_invoice.id, tenant_id)


def pay(service, invoice, tenant_id, amount, **kwargs):
    return service.record_payment(invoice.id, PaymentCreate(amount=Decimal(str(amount)), **kwargs), tenant_id)


def assert_balance_invariants(invoice):
    paid = sum((p.amount for p in invoice.payments), Decimal("0"))
    assert invoice.amount_paid == paid
    assert invoice.balance_due + invoice.amount_paid == invoice.total_amount
    assert invoice.balance_due >= 0


# ===== TESTS DE LA MÁQUINA DE ESTADOS =====

class TestDeriveInvoiceState:
    """Tests de la función pura"""

    today = date(2026, 6, 15)

    def derive(self, status, total, payments, due_date=None):
        return derive_invoice_state(status, Decimal(total), [Decimal(p) for p in payments],
                                    due_date or self.today, today=self.today)

    def test_draft_never_transitions(self):
        state = self.derive(InvoiceStatus.DRAFT, "100", ["100"], self.today - timedelta(days=5))
        assert state.status == InvoiceStatus.DRAFT
        assert state.balance_due == Decimal("0")

    def test_sent_without_payments(self):
        state = self.derive(InvoiceStatus.SENT, "100", [])
        assert state.status == InvoiceStatus.SENT
        assert state.balance_due == Decimal("100")
        assert state.overdue_flag is False

    def test_partial_payment(self):
        state = self.derive(InvoiceStatus.SENT, "100", ["40"])
        assert state.status == InvoiceStatus.PARTIALLY_PAID
        assert state.amount_paid == Decimal("40")
        assert state.balance_due == Decimal("60")

    def test_full_payment(self):
        state = self.derive(InvoiceStatus.PARTIALLY_PAID, "100", ["40", "60"])
        assert state.status == InvoiceStatus.PAID
        assert state.balance_due == Decimal("0")

    def test_past_due_without_payments_is_overdue(self):
        state = self.derive(InvoiceStatus.SENT, "100", [], self.today - timedelta(days=1))
        assert state.status == InvoiceStatus.OVERDUE
        assert state.overdue_flag is True

    def test_partial_payment_past_due_keeps_status_but_flags(self):
        state = self.derive(InvoiceStatus.SENT, "100", ["10"], self.today - timedelta(days=1))
        assert state.status == InvoiceStatus.PARTIALLY_PAID
        assert state.overdue_flag is True

    def test_due_today_is_not_overdue(self):
        state = self.derive(InvoiceStatus.SENT, "100", [], self.today)
        assert state.status == InvoiceStatus.SENT

    def test_cancelled_stays_cancelled(self):
        state = self.derive(InvoiceStatus.CANCELLED, "100", ["30"])
        assert state.status == InvoiceStatus.CANCELLED
        assert state.overdue_flag is False

    def test_cancelled_fully_paid_becomes_paid(self):
        state = self.derive(InvoiceStatus.CANCELLED, "100", ["100"])
        assert state.status == InvoiceStatus.PAID

    def test_zero_total_is_never_paid(self):
        state = self.derive(InvoiceStatus.SENT, "0", [])
        assert state.status == InvoiceStatus.SENT

    def test_negative_and_nan_payments_clamp_to_zero(self):
        state = derive_invoice_state(
            InvoiceStatus.SENT, Decimal("100"), [Decimal("-20"), Decimal("NaN"), Decimal("30")],
            self.today, today=self.today
        )
        assert state.amount_paid == Decimal("30")
        assert state.balance_due == Decimal("70")

    def test_balance_never_negative(self):
        state = self.derive(InvoiceStatus.SENT, "100", ["150"])
        assert state.balance_due == Decimal("0")
        assert state.status == InvoiceStatus.PAID


# ===== TESTS DE CREACIÓN Y BORRADORES =====

class TestCreateInvoice:

    def test_totals_and_initial_state(self, draft_invoice):
        assert draft_invoice.status == InvoiceStatus.DRAFT
        assert draft_invoice.number == "INV-00001"
        assert draft_invoice.subtotal == Decimal("120.00")
        assert draft_invoice.total_amount == Decimal("115.00")
        assert draft_invoice.balance_due == Decimal("115.00")
        assert draft_invoice.amount_paid == Decimal("0")
        assert [li.position for li in draft_invoice.line_items] == [0, 1]
        assert draft_invoice.line_items[0].line_amount == Decimal("100.00")

    def test_snapshots_customer_name(self, draft_invoice, customer):
        assert draft_invoice.customer_name == customer.name

    def test_due_date_defaults_to_issue_date(self, draft_invoice):
        assert draft_invoice.due_date == draft_invoice.issue_date

    def test_numbers_increase(self, service, invoice_data, tenant_id):
        first = service.create_invoice(invoice_data, tenant_id)
        second = service.create_invoice(invoice_data, tenant_id)
        assert (first.number, second.number) == ("INV-00001", "INV-00002")

    def test_line_tax_is_percentage_of_line_amount(self, service, customer, catalog, tenant_id):
        item_a, _ = catalog
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("2"), tax_rate=Decimal("19"))]
        ), tenant_id)
        assert invoice.taxes_total == Decimal("19.00")
        assert invoice.total_amount == Decimal("119.00")

    def test_explicit_rate_overrides_selling_price(self, service, customer, catalog, tenant_id):
        item_a, _ = catalog
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("3"), rate=Decimal("10"))]
        ), tenant_id)
        assert invoice.total_amount == Decimal("30.00")

    def test_discount_larger_than_total_is_rejected(self, service, customer, catalog, tenant_id, db_session):
        item_a, _ = catalog
        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(InvoiceCreate(
                customer_id=customer.id,
                discount=Decimal("500"),
                items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("1"))]
            ), tenant_id)
        assert exc_info.value.status_code == 400
        assert db_session.query(Invoice).count() == 0

    def test_unknown_item_is_rejected_without_consuming_number(self, service, customer, invoice_data, tenant_id):
        bad = InvoiceCreate(
            customer_id=customer.id,
            items=[InvoiceLineItemCreate(item_id=uuid4(), quantity=Decimal("1"))]
        )
        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(bad, tenant_id)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["errors"][0]["field"] == "items[0].item_id"

        assert service.create_invoice(invoice_data, tenant_id).number == "INV-00001"

    def test_inactive_item_is_rejected(self, service, customer, make_item, tenant_id):
        item = make_item(name="Descontinuado", is_active=False)
        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(InvoiceCreate(
                customer_id=customer.id,
                items=[InvoiceLineItemCreate(item_id=item.id, quantity=Decimal("1"))]
            ), tenant_id)
        assert exc_info.value.status_code == 400

    def test_customer_of_other_tenant_is_rejected(self, service, make_customer, other_company, catalog, tenant_id):
        foreign = make_customer(name="Ajeno", tenant=other_company.id)
        item_a, _ = catalog
        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(InvoiceCreate(
                customer_id=foreign.id,
                items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("1"))]
            ), tenant_id)
        assert exc_info.value.status_code == 400

    def test_invoice_of_other_tenant_is_not_found(self, service, draft_invoice, other_company):
        with pytest.raises(HTTPException) as exc_info:
            service.get_invoice_by_id(draft_invoice.id, other_company.id)
        assert exc_info.value.status_code == 404


class TestDraftEditing:

    def test_draft_can_be_edited(self, service, draft_invoice, catalog, tenant_id):
        _, item_b = catalog
        updated = service.update_invoice_draft(draft_invoice.id, InvoiceUpdate(
            discount=Decimal("0"),
            items=[InvoiceLineItemCreate(item_id=item_b.id, quantity=Decimal("4"))]
        ), tenant_id)
        assert updated.status == InvoiceStatus.DRAFT
        assert len(updated.line_items) == 1
        assert updated.subtotal == Decimal("80.00")
        assert updated.total_amount == Decimal("85.00")  # 80 + envío 5
        assert updated.balance_due == Decimal("85.00")

    def test_sent_invoice_rejects_edits(self, service, sent_invoice, tenant_id):
        with pytest.raises(HTTPException) as exc_info:
            service.update_invoice_draft(sent_invoice.id, InvoiceUpdate(notes="cambio"), tenant_id)
        assert exc_info.value.status_code == 409
        assert service.get_invoice_by_id(sent_invoice.id, tenant_id).notes is None

    def test_paid_invoice_rejects_edits(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "115")
        with pytest.raises(HTTPException) as exc_info:
            service.update_invoice_draft(sent_invoice.id, InvoiceUpdate(discount=Decimal("1")), tenant_id)
        assert exc_info.value.status_code == 409

    def test_only_drafts_can_be_deleted(self, service, draft_invoice, invoice_data, tenant_id, db_session):
        service.delete_draft_invoice(draft_invoice.id, tenant_id)
        assert db_session.query(Invoice).count() == 0

        other = service.create_invoice(invoice_data, tenant_id)
        service.mark_invoice_sent(other.id, tenant_id)
        with pytest.raises(HTTPException) as exc_info:
            service.delete_draft_invoice(other.id, tenant_id)
        assert exc_info.value.status_code == 409


# ===== TESTS DE TRANSICIONES =====

class TestMarkSent:

    def test_draft_to_sent(self, sent_invoice):
        assert sent_invoice.status == InvoiceStatus.SENT
        assert sent_invoice.sent_at is not None
        assert sent_invoice.overdue_flag is False

    def test_only_from_draft(self, service, sent_invoice, tenant_id):
        with pytest.raises(HTTPException) as exc_info:
            service.mark_invoice_sent(sent_invoice.id, tenant_id)
        assert exc_info.value.status_code == 409

    def test_past_due_invoice_is_sent_as_overdue(self, service, customer, catalog, tenant_id):
        item_a, _ = catalog
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            issue_date=date.today() - timedelta(days=40),
            due_date=date.today() - timedelta(days=10),
            items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("1"))]
        ), tenant_id)
        invoice = service.mark_invoice_sent(invoice.id, tenant_id)
        assert invoice.status == InvoiceStatus.OVERDUE
        assert invoice.overdue_flag is True

    def test_zero_total_invoice_cannot_be_sent(self, service, customer, catalog, tenant_id):
        """2 x 50 + 1 x 20 + envío 5 - descuento 125 = 0: nunca podría quedar pagada"""
        item_a, item_b = catalog
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            discount=Decimal("125"),
            shipping=Decimal("5"),
            items=[
                InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("2")),
                InvoiceLineItemCreate(item_id=item_b.id, quantity=Decimal("1")),
            ]
        ), tenant_id)
        assert invoice.total_amount == Decimal("0.00")

        with pytest.raises(HTTPException) as exc_info:
            service.mark_invoice_sent(invoice.id, tenant_id)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["errors"][0]["field"] == "discount"
        assert service.get_invoice_by_id(invoice.id, tenant_id).status == InvoiceStatus.DRAFT


class TestCancelInvoice:

    def test_cancel_sent_invoice(self, service, sent_invoice, tenant_id):
        cancelled = service.cancel_invoice(sent_invoice.id, tenant_id)
        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.cancelled_at is not None

    def test_cancel_draft_invoice(self, service, draft_invoice, tenant_id):
        assert service.cancel_invoice(draft_invoice.id, tenant_id).status == InvoiceStatus.CANCELLED

    def test_cancel_twice_is_a_conflict(self, service, sent_invoice, tenant_id):
        service.cancel_invoice(sent_invoice.id, tenant_id)
        with pytest.raises(HTTPException) as exc_info:
            service.cancel_invoice(sent_invoice.id, tenant_id)
        assert exc_info.value.status_code == 409

    def test_partially_paid_invoice_can_be_cancelled(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "15")
        cancelled = service.cancel_invoice(sent_invoice.id, tenant_id)
        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.amount_paid == Decimal("15.00")
        assert_balance_invariants(cancelled)

    def test_fully_paid_invoice_stays_paid(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "115")
        result = service.cancel_invoice(sent_invoice.id, tenant_id)
        assert result.status == InvoiceStatus.PAID
        assert result.cancelled_at is None


# ===== TESTS DE PAGOS =====

class TestRecordPayment:

    def test_full_scenario(self, service, sent_invoice, tenant_id):
        """115 -> pagar 50 -> parcial 65 -> pagar 65 -> pagada 0 -> otro pago rechazado"""
        invoice = pay(service, sent_invoice, tenant_id, "50")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.balance_due == Decimal("65.00")
        assert_balance_invariants(invoice)

        invoice = pay(service, invoice, tenant_id, "65", method=PaymentMethod.BANK_TRANSFER, reference="TRX-1")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.balance_due == Decimal("0")
        assert invoice.paid_at is not None
        assert [p.position for p in invoice.payments] == [0, 1]
        assert_balance_invariants(invoice)

        with pytest.raises(HTTPException) as exc_info:
            pay(service, invoice, tenant_id, "1")
        assert exc_info.value.status_code == 409

    def test_paying_a_draft_is_a_conflict(self, service, draft_invoice, tenant_id):
        with pytest.raises(HTTPException) as exc_info:
            pay(service, draft_invoice, tenant_id, "10")
        assert exc_info.value.status_code == 409

        invoice = service.get_invoice_by_id(draft_invoice.id, tenant_id)
        assert invoice.payments == []
        assert invoice.status == InvoiceStatus.DRAFT

    def test_paying_a_cancelled_invoice_is_a_conflict(self, service, sent_invoice, tenant_id):
        service.cancel_invoice(sent_invoice.id, tenant_id)
        with pytest.raises(HTTPException) as exc_info:
            pay(service, sent_invoice, tenant_id, "10")
        assert exc_info.value.status_code == 409

    def test_overpayment_is_rejected_and_invoice_unchanged(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "100")
        with pytest.raises(HTTPException) as exc_info:
            pay(service, sent_invoice, tenant_id, "15.01")
        assert exc_info.value.status_code == 409

        invoice = service.get_invoice_by_id(sent_invoice.id, tenant_id)
        assert invoice.amount_paid == Decimal("100.00")
        assert invoice.balance_due == Decimal("15.00")
        assert len(invoice.payments) == 1
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

    def test_exact_remaining_balance_is_accepted(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "100")
        invoice = pay(service, sent_invoice, tenant_id, "15.00")
        assert invoice.status == InvoiceStatus.PAID

    @pytest.mark.parametrize("amount", ["0", "-5", "0.001"])
    def test_non_positive_amount_is_a_validation_error(self, service, sent_invoice, tenant_id, amount):
        with pytest.raises(HTTPException) as exc_info:
            pay(service, sent_invoice, tenant_id, amount)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail["errors"][0]["field"] == "amount"

    def test_unknown_invoice_is_not_found(self, service, tenant_id):
        with pytest.raises(HTTPException) as exc_info:
            service.record_payment(uuid4(), PaymentCreate(amount=Decimal("10")), tenant_id)
        assert exc_info.value.status_code == 404

    def test_other_tenant_cannot_pay(self, service, sent_invoice, other_company):
        with pytest.raises(HTTPException) as exc_info:
            pay(service, sent_invoice, other_company.id, "10")
        assert exc_info.value.status_code == 404

    def test_idempotency_key_prevents_double_payment(self, service, sent_invoice, tenant_id):
        pay(service, sent_invoice, tenant_id, "40", idempotency_key="pos-7-abc")
        invoice = pay(service, sent_invoice, tenant_id, "40", idempotency_key="pos-7-abc")

        assert len(invoice.payments) == 1
        assert invoice.amount_paid == Decimal("40.00")

    def test_concurrent_payments_cannot_overpay(self, session_factory, sent_invoice, tenant_id):
        """Dos pagos simultáneos de 70 sobre 115: el segundo ve el primero y es rechazado"""
        invoice_id = sent_invoice.id
        start = threading.Barrier(2)

        def pay_70(_):
            session = session_factory()
            try:
                start.wait(timeout=10)
                InvoiceService(session).record_payment(invoice_id, PaymentCreate(amount=Decimal("70")), tenant_id)
                return 201
            except HTTPException as exc:
                return exc.status_code
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as executor:
            outcomes = sorted(executor.map(pay_70, range(2)))

        assert outcomes == [201, 409]

        session = session_factory()
        try:
            invoice = InvoiceService(session).get_invoice_by_id(invoice_id, tenant_id)
            assert [p.amount for p in invoice.payments] == [Decimal("70.00")]
            assert invoice.status == InvoiceStatus.PARTIALLY_PAID
            assert_balance_invariants(invoice)
            assert invoice.balance_due == Decimal("45.00")
        finally:
            session.close()

    def test_payment_on_overdue_invoice_keeps_flag(self, service, customer, catalog, tenant_id):
        item_a, _ = catalog
        invoice = service.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            issue_date=date.today() - timedelta(days=40),
            due_date=date.today() - timedelta(days=10),
            items=[InvoiceLineItemCreate(item_id=item_a.id, quantity=Decimal("1"))]
        ), tenant_id)
        service.mark_invoice_sent(invoice.id, tenant_id)

        invoice = pay(service, invoice, tenant_id, "20")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.overdue_flag is True

        invoice = pay(service, invoice, tenant_id, "30")
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.overdue_flag is False


# ===== TESTS DE VENCIMIENTOS Y LISTADOS =====

class TestRefreshOverdue:

    def test_sent_invoice_ages_into_overdue(self, service, sent_invoice, tenant_id):
        changed = service.refresh_overdue(tenant_id, today=sent_invoice.due_date + timedelta(days=1))
        assert changed == 1

        invoice = service.get_invoice_by_id(sent_invoice.id, tenant_id)
        assert invoice.status == InvoiceStatus.OVERDUE
        assert invoice.overdue_flag is True

    def test_sweep_date_is_not_reused_by_later_writes(self, service, sent_invoice, tenant_id):
        """El pago posterior se evalúa con la fecha real, no con la del barrido"""
        sweep_day = sent_invoice.due_date + timedelta(days=1)
        service.refresh_overdue(tenant_id, today=sweep_day)

        invoice = pay(service, sent_invoice, tenant_id, "50")

        assert invoice.status == InvoiceStatus.PARTIALLY_PAID
        assert invoice.overdue_flag is False

    def test_drafts_and_paid_invoices_are_untouched(self, service, draft_invoice, invoice_data, tenant_id):
        paid = service.create_invoice(invoice_data, tenant_id)
        service.mark_invoice_sent(paid.id, tenant_id)
        pay(service, paid, tenant_id, "115")

        changed = service.refresh_overdue(tenant_id, today=date.today() + timedelta(days=30))
        assert changed == 0
        assert service.get_invoice_by_id(draft_invoice.id, tenant_id).status == InvoiceStatus.DRAFT


class TestListInvoices:

    def test_filters_by_status(self, service, draft_invoice, invoice_data, tenant_id):
        sent = service.create_invoice(invoice_data, tenant_id)
        service.mark_invoice_sent(sent.id, tenant_id)

        result = service.get_invoices(tenant_id, InvoiceFilters(status=InvoiceStatus.SENT))
        assert result["total"] == 1
        assert result["invoices"][0].id == sent.id

    def test_other_tenant_sees_nothing(self, service, draft_invoice, other_company):
        assert service.get_invoices(other_company.id, InvoiceFilters())["total"] == 0


class TestDuplicateCheck:

    def _check(self, invoice, **overrides):
        data = {
            "customer_id": invoice.customer_id,
            "issue_date": invoice.issue_date,
            "due_date": invoice.due_date,
            "total_amount": invoice.total_amount,
        }
        data.update(overrides)
        return DuplicateCheckRequest(**data)

    def test_same_customer_dates_and_total_match(self, service, draft_invoice, tenant_id):
        result = service.find_duplicates(tenant_id, self._check(draft_invoice))
        assert result["is_duplicate"] is True
        assert result["count"] == 1
        assert result["matching_invoices"][0].number == draft_invoice.number

    def test_different_total_does_not_match(self, service, draft_invoice, tenant_id):
        result = service.find_duplicates(tenant_id, self._check(draft_invoice, total_amount=Decimal("115.01")))
        assert result["is_duplicate"] is False
        assert result["matching_invoices"] == []

    def test_cancelled_invoices_are_ignored(self, service, draft_invoice, tenant_id):
        check = self._check(draft_invoice)
        service.cancel_invoice(draft_invoice.id, tenant_id)
        assert service.find_duplicates(tenant_id, check)["count"] == 0

    def test_other_tenant_invoices_are_ignored(self, service, draft_invoice, other_company):
        assert service.find_duplicates(other_company.id, self._check(draft_invoice))["is_duplicate"] is False

    def test_at_most_five_matches(self, service, invoice_data, tenant_id):
        invoices = [service.create_invoice(invoice_data, tenant_id) for _ in range(6)]
        assert service.find_duplicates(tenant_id, self._check(invoices[0]))["count"] == 5


# ===== TESTS DE API =====

class TestInvoiceAPI:

    def _payload(self, customer, catalog):
        item_a, item_b = catalog
        return {
            "customer_id": str(customer.id),
            "discount": "10",
            "shipping": "5",
            "items": [
                {"item_id": str(item_a.id), "quantity": "2"},
                {"item_id": str(item_b.id), "quantity": "1"},
            ]
        }

    def test_requires_company_header(self, client):
        response = client.get("/invoices/")
        assert response.status_code == 400

    def test_create_send_and_pay(self, client, headers, customer, catalog):
        response = client.post("/invoices/", json=self._payload(customer, catalog), headers=headers)
        assert response.status_code == 201
        invoice = response.json()
        assert invoice["status"] == "draft"
        assert Decimal(invoice["total_amount"]) == Decimal("115")

        response = client.post(f"/invoices/{invoice['id']}/payments", json={"amount": "50"}, headers=headers)
        assert response.status_code == 409

        response = client.post(f"/invoices/{invoice['id']}/send", headers=headers)
        assert response.status_code == 200
        assert response.json()["status"] == "sent"

        response = client.post(f"/invoices/{invoice['id']}/payments", json={"amount": "50"}, headers=headers)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "partially_paid"
        assert Decimal(body["balance_due"]) == Decimal("65")

        response = client.patch(f"/invoices/{invoice['id']}", json={"notes": "x"}, headers=headers)
        assert response.status_code == 409

    def test_validation_errors(self, client, headers, customer, catalog):
        payload = self._payload(customer, catalog)
        payload["items"][0]["quantity"] = "0"
        response = client.post("/invoices/", json=payload, headers=headers)
        assert response.status_code == 422

    def test_cross_tenant_detail_is_404(self, client, headers, customer, catalog, other_company):
        created = client.post("/invoices/", json=self._payload(customer, catalog), headers=headers).json()
        response = client.get(f"/invoices/{created['id']}", headers={"X-Company-ID": str(other_company.id)})
        assert response.status_code == 404

    def test_check_duplicate_endpoint(self, client, headers, customer, catalog):
        created = client.post("/invoices/", json=self._payload(customer, catalog), headers=headers).json()
        check = {
            "customer_id": created["customer_id"],
            "issue_date": created["issue_date"],
            "due_date": created["due_date"],
            "total_amount": created["total_amount"],
        }

        response = client.post("/invoices/check-duplicate", json=check, headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["is_duplicate"] is True
        assert body["matching_invoices"][0]["number"] == created["number"]

        check["total_amount"] = "1.00"
        response = client.post("/invoices/check-duplicate", json=check, headers=headers)
        assert response.json() == {"is_duplicate": False, "matching_invoices": [], "count": 0}
