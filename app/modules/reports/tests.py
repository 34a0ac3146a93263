"""
Tests para reportes de ingresos

El mismo dinero nunca se cuenta dos veces: los pagos viven en la factura y
los recibos vinculados a una factura no suman como ingreso POS.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import InvoiceCreate, InvoiceLineItemCreate, PaymentCreate
from app.modules.invoices.service import InvoiceService
from app.modules.receipts.models import SalesReceipt, ReceiptStatus
from app.modules.receipts.schemas import SalesReceiptCreate, SalesReceiptLineItemCreate
from app.modules.receipts.service import SalesReceiptService
from app.modules.reports.schemas import TrendGrouping
from app.modules.reports.services import RevenueReportService


TODAY = date.today()


# ===== HELPERS =====

@pytest.fixture
def issue(db_session, customer, make_item, tenant_id):
    """Crea una factura de `price` x 1, opcionalmente enviada y con pagos"""
    invoices = InvoiceService(db_session)

    def _issue(price="100.00", paid=None, send=True, issue_date=TODAY):
        item = make_item(price=price)
        invoice = invoices.create_invoice(InvoiceCreate(
            customer_id=customer.id,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=30),
            items=[InvoiceLineItemCreate(item_id=item.id, quantity=Decimal("1"))]
        ), tenant_id)
        if send:
            invoice = invoices.mark_invoice_sent(invoice.id, tenant_id)
        if paid:
            invoice = invoices.record_payment(invoice.id, PaymentCreate(amount=Decimal(paid)), tenant_id)
        return invoice
    return _issue


@pytest.fixture
def sell(db_session, make_item, tenant_id):
    receipts = SalesReceiptService(db_session)

    def _sell(price="30.00", quantity="1", receipt_date=TODAY):
        item = make_item(price=price)
        return receipts.create_pos_receipt(SalesReceiptCreate(
            receipt_date=receipt_date,
            items=[SalesReceiptLineItemCreate(item_id=item.id, quantity=Decimal(quantity))]
        ), tenant_id)
    return _sell


@pytest.fixture
def report(db_session, tenant_id):
    return RevenueReportService(db_session, tenant_id)


# ===== TESTS DE INGRESOS =====

class TestAggregateRevenue:

    def test_paid_invoice_with_linked_receipt_counts_once(self, db_session, issue, report, tenant_id):
        """Factura de 100 pagada + recibo histórico de 100 vinculado -> ingreso 100"""
        invoice = issue(paid="100")
        assert invoice.status == InvoiceStatus.PAID

        db_session.add(SalesReceipt(
            tenant_id=tenant_id,
            customer_name=invoice.customer_name,
            invoice_id=invoice.id,
            number="REC-LEGACY-1",
            receipt_date=TODAY,
            subtotal=Decimal("100.00"),
            total_amount=Decimal("100.00")
        ))
        db_session.commit()

        summary = report.aggregate_revenue()

        assert summary.invoice_revenue == Decimal("100.00")
        assert summary.pos_revenue == Decimal("0.00")
        assert summary.total_revenue == Decimal("100.00")

    def test_standalone_receipts_are_pos_revenue(self, sell, report):
        sell(price="30.00", quantity="2")
        sell(price="15.50")

        summary = report.aggregate_revenue()

        assert summary.pos_revenue == Decimal("75.50")
        assert summary.invoice_revenue == Decimal("0.00")

    def test_cancelled_receipts_are_excluded(self, db_session, sell, report, tenant_id):
        receipt = sell(price="40.00")
        SalesReceiptService(db_session).cancel_receipt(receipt.id, tenant_id)

        assert report.aggregate_revenue().pos_revenue == Decimal("0.00")

    def test_partial_payments_and_outstanding(self, issue, report):
        issue(price="60.00", paid="20")
        issue(price="40.00")

        summary = report.aggregate_revenue()

        assert summary.invoice_revenue == Decimal("20.00")
        assert summary.outstanding == Decimal("80.00")

    def test_drafts_and_cancelled_invoices_are_excluded(self, db_session, issue, report, tenant_id):
        issue(price="500.00", send=False)
        cancelled = issue(price="300.00")
        InvoiceService(db_session).cancel_invoice(cancelled.id, tenant_id)

        summary = report.aggregate_revenue()

        assert summary.invoice_revenue == Decimal("0.00")
        assert summary.outstanding == Decimal("0.00")

    def test_other_tenants_are_invisible(self, db_session, issue, sell, other_company):
        issue(paid="100")
        sell()

        summary = RevenueReportService(db_session, other_company.id).aggregate_revenue()

        assert summary.total_revenue == Decimal("0.00")
        assert summary.outstanding == Decimal("0.00")

    def test_date_range_and_previous_period(self, issue, sell, report):
        start = date(2024, 2, 1)
        end = date(2024, 2, 29)
        issue(price="50.00", paid="50", issue_date=date(2024, 1, 15))
        issue(price="100.00", paid="100", issue_date=date(2024, 2, 10))
        sell(price="25.00", receipt_date=date(2024, 2, 20))
        sell(price="999.00", receipt_date=date(2024, 3, 1))

        summary = report.aggregate_revenue(start, end)

        assert summary.invoice_revenue == Decimal("100.00")
        assert summary.pos_revenue == Decimal("25.00")
        assert summary.total_revenue == Decimal("125.00")
        assert summary.previous_total_revenue == Decimal("50.00")
        assert summary.revenue_change_percent == Decimal("150.00")


class TestTrendAndBreakdown:

    def test_monthly_trend(self, issue, sell, report):
        issue(price="80.00", paid="80", issue_date=date(2024, 1, 5))
        sell(price="10.00", receipt_date=date(2024, 1, 20))
        sell(price="12.00", receipt_date=date(2024, 3, 2))

        trend = report.revenue_trend(group_by=TrendGrouping.MONTH)

        assert [point.period for point in trend.points] == ["2024-01", "2024-03"]
        january = trend.points[0]
        assert january.invoice_revenue == Decimal("80.00")
        assert january.pos_revenue == Decimal("10.00")
        assert january.total_revenue == Decimal("90.00")

    def test_status_breakdown(self, issue, report):
        issue(price="100.00", paid="100")
        issue(price="60.00", paid="10")
        issue(price="70.00", paid="5")
        issue(price="20.00", send=False)

        breakdown = {item.status: item for item in report.status_breakdown().statuses}

        assert set(breakdown) == {InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID}
        assert breakdown[InvoiceStatus.PARTIALLY_PAID].count == 2
        assert breakdown[InvoiceStatus.PARTIALLY_PAID].balance_due == Decimal("115.00")
        assert breakdown[InvoiceStatus.PAID].amount_paid == Decimal("100.00")


class TestAgingReport:

    def test_lists_receivables_oldest_due_first(self, issue, report):
        old = issue(price="100.00", paid="20", issue_date=date(2024, 1, 1))
        recent = issue(price="40.00")
        issue(price="70.00", paid="70")
        issue(price="10.00", send=False)

        aging = report.aging()

        assert [item.invoice_number for item in aging.invoices] == [old.number, recent.number]
        assert aging.total_invoices == 2
        assert aging.total_balance_due == Decimal("120.00")

        oldest = aging.invoices[0]
        assert oldest.status == InvoiceStatus.PARTIALLY_PAID
        assert oldest.balance_due == Decimal("80.00")
        assert oldest.is_overdue is True
        assert oldest.days_overdue == (TODAY - date(2024, 1, 31)).days

        assert aging.invoices[1].is_overdue is False
        assert aging.invoices[1].days_overdue == 0
        assert aging.overdue_invoices_count == 1
        assert aging.overdue_amount == Decimal("80.00")
        assert aging.current_amount == Decimal("40.00")

    def test_as_of_date_skips_later_invoices(self, issue, report):
        issue(price="100.00", issue_date=date(2024, 1, 1))
        issue(price="40.00")

        aging = report.aging(as_of_date=date(2024, 2, 1))

        assert aging.total_invoices == 1
        assert aging.invoices[0].days_overdue == 1

    def test_cancelled_invoices_are_excluded(self, db_session, issue, report, tenant_id):
        cancelled = issue(price="90.00")
        InvoiceService(db_session).cancel_invoice(cancelled.id, tenant_id)

        assert report.aging().invoices == []


# ===== TESTS DE API =====

class TestRevenueAPI:

    def test_summary_endpoint(self, client, headers, issue, sell):
        issue(price="100.00", paid="40")
        sell(price="10.00")

        response = client.get("/api/v1/reports/revenue/summary", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["total_revenue"]) == Decimal("50.00")
        assert Decimal(body["outstanding"]) == Decimal("60.00")

    def test_inverted_range_is_422(self, client, headers):
        response = client.get(
            "/api/v1/reports/revenue/summary",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
            headers=headers
        )
        assert response.status_code == 422

    def test_requires_company_header(self, client):
        assert client.get("/api/v1/reports/revenue/summary").status_code == 400

    def test_aging_endpoint(self, client, headers, issue):
        invoice = issue(price="100.00", paid="25")

        response = client.get("/api/v1/reports/revenue/aging", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_invoices"] == 1
        assert body["invoices"][0]["invoice_number"] == invoice.number
        assert Decimal(body["invoices"][0]["balance_due"]) == Decimal("75.00")
