"""Unit tests for collaborator HTTP clients"""

import httpx
import pytest
from datetime import date
from debt_reconciler.domain.exceptions import ExternalServiceError
from debt_reconciler.infrastructure.clients.config_service import CustomerNameClient, StartingDebtClient
from debt_reconciler.infrastructure.clients.sales import SalesClient

CUTOFF = date(2025, 4, 29)


@pytest.fixture
def serve(monkeypatch):
    """Route every httpx.Client request to the given handler"""
    real_client = httpx.Client

    def install(handler):
        monkeypatch.setattr(
            httpx, "Client", lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs)
        )

    return install


def test_sales_totals_summed_per_buyer_after_cutoff(serve):
    waybills = [
        {"type": "SALE", "buyerTin": "405123456", "buyerName": "Tasty LLC", "date": "2025-05-02", "amount": 1200.5},
        {"type": "SALE", "buyerTin": "405123456", "date": "2025-06-01", "amount": "300.00"},
        {"type": "SALE", "buyerTin": "405123456", "date": "2025-04-29", "amount": 999},
        {"type": "PURCHASE", "buyerTin": "405123456", "date": "2025-05-03", "amount": 50},
        {"type": "SALE", "customerId": "C-2", "date": "2025-05-10", "amount": 10},
    ]
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return httpx.Response(200, json=waybills)

    serve(handler)
    totals = SalesClient(base_url="http://sales").get_all_sales_totals(CUTOFF)

    assert seen == ["/api/waybills/sales/all"]
    assert totals["405123456"].total_cents == 150050
    assert totals["405123456"].count == 2
    assert totals["405123456"].last_date == date(2025, 6, 1)
    assert totals["405123456"].customer_name == "Tasty LLC"
    assert totals["C-2"].total_cents == 1000


def test_sales_service_error_raises(serve):
    serve(lambda request: httpx.Response(502))

    with pytest.raises(ExternalServiceError, match="502"):
        SalesClient(base_url="http://sales").get_all_sales_totals(CUTOFF)


def test_sales_service_timeout_raises(serve):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    serve(handler)

    with pytest.raises(ExternalServiceError, match="timeout"):
        SalesClient(base_url="http://sales", timeout=1.0).get_all_sales_totals(CUTOFF)


def test_starting_debts_parsed(serve):
    serve(lambda request: httpx.Response(200, json=[
        {"customerId": "405123456", "name": "Tasty LLC", "debt": 1500.75, "date": "2025-04-29"},
        {"customerId": "C-2", "name": "Other", "debt": 0, "date": "2025-04-29"},
    ]))

    debts = StartingDebtClient(base_url="http://config").get_all_starting_debts()

    assert debts["405123456"].amount_cents == 150075
    assert debts["405123456"].as_of_date == date(2025, 4, 29)
    assert debts["405123456"].customer_name == "Tasty LLC"
    assert debts["C-2"].amount_cents == 0


def test_starting_debt_for_unknown_customer_is_zero(serve):
    serve(lambda request: httpx.Response(404))

    assert StartingDebtClient(base_url="http://config").get_debt_amount("nobody") == 0


def test_name_resolution(serve):
    def handler(request):
        if request.url.path.endswith("/405123456"):
            return httpx.Response(200, json={"identification": "405123456", "customerName": "Tasty LLC"})
        return httpx.Response(404)

    serve(handler)
    client = CustomerNameClient(base_url="http://config")

    assert client.resolve_name("405123456") == "Tasty LLC"
    assert client.resolve_name("000000000") is None


def test_name_resolution_failure_raises(serve):
    serve(lambda request: httpx.Response(500))

    with pytest.raises(ExternalServiceError):
        CustomerNameClient(base_url="http://config").resolve_name("405123456")


def test_sales_totals_for_one_customer(serve):
    seen = []

    def handler(request):
        seen.append((request.url.path, request.url.params.get("afterCutoffOnly")))
        return httpx.Response(200, json=[
            {"type": "SALE", "buyerTin": "405123456", "date": "2025-05-02", "amount": "20.10"},
        ])

    serve(handler)
    client = SalesClient(base_url="http://sales")

    assert client.get_sales_totals("405123456", CUTOFF).total_cents == 2010
    assert seen == [("/api/waybills/customer/405123456", "true")]
    assert client.get_sales_totals("000000000", CUTOFF).total_cents == 0
