"""Mock financial data source for development and testing.

Generates plausible synthetic figures for any municipality-year. Output is
seeded from the demarcation code and year, so repeated calls agree with each
other and with the cache.
"""

import hashlib
import random
from decimal import Decimal
from typing import Any, Dict, Optional

from app.services.muni_money.adapter import FinancialDataSource

# ── Reference data ────────────────────────────────────

PROFILES = {
    "strong": {
        "revenue_range": (2_000_000_000, 15_000_000_000),
        "opex_ratio": (0.78, 0.95),
        "capex_share": (0.15, 0.35),
        "debt_ratio": (0.05, 0.35),
        "opinions": ["Clean Audit", "Financially Unqualified"],
    },
    "average": {
        "revenue_range": (300_000_000, 3_000_000_000),
        "opex_ratio": (0.90, 1.08),
        "capex_share": (0.08, 0.20),
        "debt_ratio": (0.25, 0.70),
        "opinions": ["Financially Unqualified", "Qualified Audit Opinion"],
    },
    "distressed": {
        "revenue_range": (50_000_000, 600_000_000),
        "opex_ratio": (1.05, 1.30),
        "capex_share": (0.00, 0.08),
        "debt_ratio": (0.60, 1.40),
        "opinions": ["Qualified Audit Opinion", "Adverse Audit Opinion", "Disclaimer Of Audit Opinion"],
    },
}

# Chance that a single metric is unavailable upstream
MISSING_CHANCE = 0.05


class MockFinancialDataSource(FinancialDataSource):
    """Deterministic synthetic data source."""

    @property
    def provider_name(self) -> str:
        return "mock"

    def _generate(self, municipality_code: str, year: int) -> Dict[str, Any]:
        hash_val = int(hashlib.md5(f"{municipality_code}:{year}".encode()).hexdigest(), 16)
        rng = random.Random(hash_val)

        profile_name = ["strong", "average", "average", "distressed"][hash_val % 4]
        profile = PROFILES[profile_name]

        revenue = Decimal(rng.randint(*profile["revenue_range"]))
        opex = (revenue * Decimal(str(round(rng.uniform(*profile["opex_ratio"]), 4)))).quantize(Decimal("1"))
        share = Decimal(str(round(rng.uniform(*profile["capex_share"]), 4)))
        # capex / (opex + capex) == share
        capex = (opex * share / (Decimal("1") - share)).quantize(Decimal("1"))
        debt = (revenue * Decimal(str(round(rng.uniform(*profile["debt_ratio"]), 4)))).quantize(Decimal("1"))

        data: Dict[str, Any] = {
            "revenue": revenue,
            "operating_expenditure": opex,
            "capital_expenditure": capex,
            "debt": debt,
            "audit_outcome": rng.choice(profile["opinions"]),
        }
        for key in list(data):
            if rng.random() < MISSING_CHANCE:
                data[key] = None
        return data

    async def get_total_revenue(self, municipality_code: str, year: int) -> Optional[Decimal]:
        return self._generate(municipality_code, year)["revenue"]

    async def get_operating_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        return self._generate(municipality_code, year)["operating_expenditure"]

    async def get_capital_expenditure(self, municipality_code: str, year: int) -> Optional[Decimal]:
        return self._generate(municipality_code, year)["capital_expenditure"]

    async def get_total_debt(self, municipality_code: str, year: int) -> Optional[Decimal]:
        return self._generate(municipality_code, year)["debt"]

    async def get_audit_outcome(self, municipality_code: str, year: int) -> Optional[str]:
        return self._generate(municipality_code, year)["audit_outcome"]

    async def check_health(self) -> bool:
        return True
