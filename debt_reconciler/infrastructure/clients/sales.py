"""Waybill service HTTP client for after-cutoff sales totals"""

import httpx
from datetime import date
from typing import Any, Dict, List
from debt_reconciler.domain.models import SalesTotals
from debt_reconciler.domain.exceptions import ExternalServiceError
from debt_reconciler.config import settings
from debt_reconciler.infrastructure.observability.metrics import external_call_failures_counter
from debt_reconciler.utils.amount_utils import to_minor_units
from debt_reconciler.utils.date_utils import is_after_cutoff, parse_date


class SalesClient:
    """Client for the waybill service; implements SalesTotalsProvider"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.sales_service_base
        self.timeout = timeout or settings.http_timeout_seconds

    def _get_waybills(self, path: str) -> List[Dict[str, Any]]:
        with httpx.Client(timeout=self.timeout) as client:
            try:
                response = client.get(f"{self.base_url}{path}")
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                external_call_failures_counter.labels(service="sales").inc()
                raise ExternalServiceError(f"Sales service timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                external_call_failures_counter.labels(service="sales").inc()
                raise ExternalServiceError(f"Sales service error: {e.response.status_code}") from e
            except (httpx.RequestError, ValueError) as e:
                external_call_failures_counter.labels(service="sales").inc()
                raise ExternalServiceError(f"Sales service unavailable: {e}") from e

        if not isinstance(data, list):
            raise ExternalServiceError("Invalid waybill payload from sales service")
        return data

    def get_all_sales_totals(self, cutoff_date: date) -> Dict[str, SalesTotals]:
        """
        Sum sale waybills dated strictly after the cutoff, per buyer.

        Raises:
            ExternalServiceError: On timeout, HTTP errors, or invalid response
        """
        return _sum_waybills(self._get_waybills("/api/waybills/sales/all"), cutoff_date)

    def get_sales_totals(self, customer_id: str, cutoff_date: date) -> SalesTotals:
        waybills = self._get_waybills(f"/api/waybills/customer/{customer_id}?afterCutoffOnly=true")
        totals = _sum_waybills(waybills, cutoff_date)
        return totals.get(customer_id, SalesTotals(customer_id=customer_id))


def _sum_waybills(waybills: List[Dict[str, Any]], cutoff_date: date) -> Dict[str, SalesTotals]:
    totals: Dict[str, SalesTotals] = {}
    try:
        for waybill in waybills:
            if waybill.get("type", "SALE") != "SALE":
                continue
            customer_id = str(waybill.get("buyerTin") or waybill.get("customerId") or "").strip()
            sale_date = parse_date(waybill.get("date"))
            if not customer_id or sale_date is None or not is_after_cutoff(sale_date, cutoff_date):
                continue

            entry = totals.setdefault(customer_id, SalesTotals(customer_id=customer_id))
            entry.total_cents += to_minor_units(waybill.get("amount"))
            entry.count += 1
            if entry.last_date is None or sale_date > entry.last_date:
                entry.last_date = sale_date
            entry.customer_name = entry.customer_name or waybill.get("buyerName") or waybill.get("customerName")
    except (AttributeError, TypeError) as e:
        raise ExternalServiceError(f"Invalid waybill data from sales service: {e}") from e
    return totals
