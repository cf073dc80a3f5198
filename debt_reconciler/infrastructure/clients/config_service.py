"""Config service HTTP clients for starting debts and customer names"""

import logging
import httpx
from typing import Any, Dict, Optional
from debt_reconciler.domain.models import StartingDebt
from debt_reconciler.domain.exceptions import ExternalServiceError
from debt_reconciler.config import settings
from debt_reconciler.infrastructure.observability.metrics import external_call_failures_counter
from debt_reconciler.utils.amount_utils import to_minor_units
from debt_reconciler.utils.date_utils import parse_date

logger = logging.getLogger(__name__)


class StartingDebtClient:
    """Client for starting debts; implements StartingDebtProvider"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.config_service_base
        self.timeout = timeout or settings.http_timeout_seconds

    def _get(self, path: str) -> Any:
        with httpx.Client(timeout=self.timeout) as client:
            try:
                response = client.get(f"{self.base_url}{path}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                external_call_failures_counter.labels(service="config").inc()
                raise ExternalServiceError(f"Config service timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                external_call_failures_counter.labels(service="config").inc()
                raise ExternalServiceError(f"Config service error: {e.response.status_code}") from e
            except (httpx.RequestError, ValueError) as e:
                external_call_failures_counter.labels(service="config").inc()
                raise ExternalServiceError(f"Config service unavailable: {e}") from e

    def get_all_starting_debts(self) -> Dict[str, StartingDebt]:
        """
        Fetch every starting debt entry, keyed by customer id.

        Raises:
            ExternalServiceError: On timeout, HTTP errors, or invalid response
        """
        data = self._get("/api/config/debts") or []
        try:
            debts = [_to_starting_debt(entry) for entry in data]
        except (KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(f"Invalid starting debt data from config service: {e}") from e
        return {debt.customer_id: debt for debt in debts if debt.customer_id}

    def get_debt_amount(self, customer_id: str) -> int:
        data = self._get(f"/api/config/debts/{customer_id}")
        if not data:
            return 0
        try:
            return _to_starting_debt(data).amount_cents
        except (KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(f"Invalid starting debt data from config service: {e}") from e


def _to_starting_debt(entry: Dict[str, Any]) -> StartingDebt:
    return StartingDebt(
        customer_id=str(entry["customerId"]).strip(),
        amount_cents=to_minor_units(entry.get("debt")),
        as_of_date=parse_date(entry.get("date")),
        customer_name=entry.get("name"),
    )


class CustomerNameClient:
    """Resolves tax ids to display names; implements CustomerNameResolver"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.config_service_base
        self.timeout = timeout or settings.http_timeout_seconds

    def resolve_name(self, customer_id: str) -> Optional[str]:
        """
        Look up the customer's display name.

        Returns None for unknown customers.

        Raises:
            ExternalServiceError: On timeout, HTTP errors, or invalid response
        """
        with httpx.Client(timeout=self.timeout) as client:
            try:
                response = client.get(f"{self.base_url}/api/config/customers/{customer_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                external_call_failures_counter.labels(service="config").inc()
                raise ExternalServiceError(f"Customer lookup error: {e.response.status_code}") from e
            except (httpx.RequestError, ValueError) as e:
                external_call_failures_counter.labels(service="config").inc()
                raise ExternalServiceError(f"Customer lookup failed: {e}") from e

        if not isinstance(data, dict):
            return None
        return data.get("customerName") or None
