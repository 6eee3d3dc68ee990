"""Abstract municipal financial data source and factory."""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from app.config import settings


class FinancialDataSource(ABC):
    """Abstract interface for upstream municipal financial data.

    Every metric call returns ``None`` when the upstream has no data for the
    municipality-year, and raises on transport or API failure.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name of the data provider."""
        ...

    @abstractmethod
    async def get_total_revenue(self, municipality_code: str, year: int) -> Optional[Decimal]:
        """Total audited operating revenue in ZAR."""
        ...

    @abstractmethod
    async def get_operating_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        """Total audited operating expenditure in ZAR."""
        ...

    @abstractmethod
    async def get_capital_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        """Total audited capital expenditure in ZAR."""
        ...

    @abstractmethod
    async def get_total_debt(self, municipality_code: str, year: int) -> Optional[Decimal]:
        """Total liabilities in ZAR."""
        ...

    @abstractmethod
    async def get_audit_outcome(self, municipality_code: str, year: int) -> Optional[str]:
        """Auditor-General opinion label, verbatim."""
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Check if the upstream is reachable."""
        ...


def get_financial_data_source() -> FinancialDataSource:
    """Factory function that returns the configured financial data source."""
    provider = settings.financial_data_provider.lower()

    if provider == "mock":
        from app.services.muni_money.mock_source import MockFinancialDataSource
        return MockFinancialDataSource()
    else:
        from app.services.muni_money.municipal_money import MunicipalMoneyClient
        return MunicipalMoneyClient()
