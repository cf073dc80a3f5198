"""Collaborator interfaces consumed by the reconciliation core"""

from datetime import date
from typing import Dict, Optional, Protocol

from debt_reconciler.domain.models import SalesTotals, StartingDebt


class StartingDebtProvider(Protocol):
    """Debts captured as a single balance at the cutoff date"""

    def get_debt_amount(self, customer_id: str) -> int:
        """Starting debt in cents, 0 when the customer has none"""
        ...

    def get_all_starting_debts(self) -> Dict[str, StartingDebt]:
        ...


class SalesTotalsProvider(Protocol):
    """Tax-authority invoice totals after the cutoff date"""

    def get_sales_totals(self, customer_id: str, cutoff_date: date) -> SalesTotals:
        ...

    def get_all_sales_totals(self, cutoff_date: date) -> Dict[str, SalesTotals]:
        ...


class CustomerNameResolver(Protocol):
    """Maps a tax id to a display name"""

    def resolve_name(self, customer_id: str) -> Optional[str]:
        ...
