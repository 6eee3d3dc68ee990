"""Municipal Money (National Treasury) cube API client.

The API exposes OLAP-style cubes under ``/cubes/{cube}/aggregate``. Every
metric here is an aggregate over audited actuals (amount type ``AUDA``) cut by
demarcation code and financial year end.
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.config import settings
from app.services.muni_money.adapter import FinancialDataSource

logger = logging.getLogger(__name__)

INCOME_EXPENDITURE_CUBE = "incexp_v2"
FINANCIAL_POSITION_CUBE = "financial_position_v2"
CAPITAL_CUBE = "capital_v2"
AUDIT_OPINION_CUBE = "audit_opinions"

AUDITED_ACTUAL = "AUDA"
AMOUNT_AGGREGATE = "amount.sum"

# Operating revenue line items
REVENUE_ITEM_CODES = frozenset(
    ["0200", "0300", "0400", "0500", "0600", "0800", "0900"]
    + [f"{code:04d}" for code in range(1000, 2100, 100)]
)
EXPENDITURE_ITEM_CODES = frozenset(f"{code:04d}" for code in range(3000, 5000, 100))
TOTAL_LIABILITIES_ITEM_CODE = "0500"


class MuniMoneyError(Exception):
    """Transport or decoding failure talking to Municipal Money."""


class MuniMoneyApiError(MuniMoneyError):
    """Municipal Money answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Municipal Money API returned {status_code}: {body[:200]}")


def build_cut(municipality_code: str, year: int, amount_type: Optional[str] = AUDITED_ACTUAL) -> str:
    """Cube cut string, e.g. ``amount_type.code:AUDA|demarcation.code:"BUF"|financial_year_end.year:2023``."""
    parts = []
    if amount_type:
        parts.append(f"amount_type.code:{amount_type}")
    parts.append(f'demarcation.code:"{municipality_code}"')
    parts.append(f"financial_year_end.year:{year}")
    return "|".join(parts)


def _cell_amount(cell: Dict[str, Any]) -> Optional[Decimal]:
    raw = cell.get(AMOUNT_AGGREGATE)
    if raw is None:
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        logger.warning("Ignoring non-numeric amount in cube cell: %r", raw)
        return None


def sum_cells(cells: List[Dict[str, Any]], item_codes: Optional[frozenset] = None) -> Optional[Decimal]:
    """Sum ``amount.sum`` over cells, optionally restricted to item codes.

    Returns None when no cell matched so "no data" stays distinct from zero.
    """
    total = Decimal("0")
    matched = False
    for cell in cells:
        if item_codes is not None and cell.get("item.code") not in item_codes:
            continue
        amount = _cell_amount(cell)
        if amount is None:
            continue
        total += amount
        matched = True
    return total if matched else None


class MunicipalMoneyClient(FinancialDataSource):
    """Async client for the Municipal Money cube API."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.muni_money_api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.muni_money_timeout_seconds
        # Revenue and operating expenditure share one incexp_v2 request per (code, year)
        self._income_expenditure: Dict[Tuple[str, int], asyncio.Task] = {}

    @property
    def provider_name(self) -> str:
        return "municipal_money"

    # ── generic aggregate call ─────────────────────────────

    async def fetch_aggregate(
        self,
        cube: str,
        *,
        cut: str,
        drilldown: str,
        aggregates: Optional[str] = AMOUNT_AGGREGATE,
    ) -> List[Dict[str, Any]]:
        """Run an aggregate query against a cube and return its cells."""
        url = f"{self.base_url}/cubes/{cube}/aggregate"
        params = {"drilldown": drilldown, "cut": cut}
        if aggregates:
            params["aggregates"] = aggregates

        logger.debug("GET %s params=%s", url, params)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise MuniMoneyError(f"Request to {cube} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error("Municipal Money %s returned %s: %s", cube, response.status_code, response.text[:500])
            raise MuniMoneyApiError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MuniMoneyError(f"Invalid JSON from {cube}: {exc}") from exc

        if not isinstance(payload, dict):
            raise MuniMoneyError(f"Unexpected response shape from {cube}")
        cells = payload.get("cells")
        if cells is None:
            cells = payload.get("data", [])
        return cells

    # ── metrics ────────────────────────────────────────────

    async def _income_expenditure_cells(self, municipality_code: str, year: int) -> List[Dict[str, Any]]:
        key = (municipality_code, year)
        task = self._income_expenditure.get(key)
        if task is None:
            task = asyncio.ensure_future(self.fetch_aggregate(
                INCOME_EXPENDITURE_CUBE,
                cut=build_cut(municipality_code, year),
                drilldown="item.code|item.label",
            ))
            self._income_expenditure[key] = task
        try:
            return await asyncio.shield(task)
        except MuniMoneyError:
            # Failed requests are not reused
            if self._income_expenditure.get(key) is task:
                del self._income_expenditure[key]
            raise

    async def get_total_revenue(self, municipality_code: str, year: int) -> Optional[Decimal]:
        cells = await self._income_expenditure_cells(municipality_code, year)
        total = sum_cells(cells, REVENUE_ITEM_CODES)
        logger.debug("Revenue for %s %s: %s", municipality_code, year, total)
        return total

    async def get_operating_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        cells = await self._income_expenditure_cells(municipality_code, year)
        total = sum_cells(cells, EXPENDITURE_ITEM_CODES)
        logger.debug("Operating expenditure for %s %s: %s", municipality_code, year, total)
        return total

    async def get_capital_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        cells = await self.fetch_aggregate(
            CAPITAL_CUBE,
            cut=build_cut(municipality_code, year),
            drilldown="demarcation.code",
        )
        total = sum_cells(cells)
        logger.debug("Capital expenditure for %s %s: %s", municipality_code, year, total)
        return total

    async def get_total_debt(self, municipality_code: str, year: int) -> Optional[Decimal]:
        cells = await self.fetch_aggregate(
            FINANCIAL_POSITION_CUBE,
            cut=build_cut(municipality_code, year),
            drilldown="item.code|item.label",
        )
        for cell in cells:
            if cell.get("item.code") == TOTAL_LIABILITIES_ITEM_CODE:
                return _cell_amount(cell)
        return None

    async def get_audit_outcome(self, municipality_code: str, year: int) -> Optional[str]:
        cells = await self.fetch_aggregate(
            AUDIT_OPINION_CUBE,
            cut=build_cut(municipality_code, year, amount_type=None),
            drilldown="opinion.code|opinion.label",
            aggregates=None,
        )
        if not cells:
            return None
        return cells[0].get("opinion.label")

    async def check_health(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.base_url}/cubes")
        except httpx.HTTPError as exc:
            logger.warning("Municipal Money health check failed: %s", exc)
            return False
        return 200 <= response.status_code < 300
