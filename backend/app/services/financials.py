"""Financial data cache: reads and upserts of per-year metrics and scores.

One ``financial_data`` row exists per municipality-year. Rows are written
through an upsert so concurrent detail requests for the same municipality
converge on a single row instead of violating the unique constraint.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.financial import FinancialData, METRIC_FIELDS, SCORE_FIELDS
from app.services.scoring import ScoreBreakdown

logger = logging.getLogger(__name__)


async def get_cached_financials(
    db: AsyncSession, municipality_id: str, year: int,
) -> Optional[FinancialData]:
    """Cached row for one municipality-year, or None."""
    result = await db.execute(
        select(FinancialData).where(
            FinancialData.municipality_id == municipality_id,
            FinancialData.year == year,
        )
    )
    row = result.scalar_one_or_none()
    if row is not None:
        logger.debug("Cache hit for %s %s", municipality_id, year)
    return row


async def get_all_financial_years(db: AsyncSession, municipality_id: str) -> list[FinancialData]:
    """Every cached year for a municipality, newest first."""
    result = await db.execute(
        select(FinancialData)
        .where(FinancialData.municipality_id == municipality_id)
        .order_by(FinancialData.year.desc())
    )
    return list(result.scalars().all())


def build_upsert_statement(
    municipality_id: str,
    year: int,
    metrics: dict[str, Any],
    breakdown: ScoreBreakdown,
):
    """INSERT ... ON CONFLICT (municipality_id, year) DO UPDATE for one row."""
    values: dict[str, Any] = {"municipality_id": municipality_id, "year": year}
    for field in METRIC_FIELDS:
        values[field] = metrics.get(field)
    values.update(breakdown.as_dict())

    stmt = pg_insert(FinancialData).values(**values)
    update_cols = {field: stmt.excluded[field] for field in METRIC_FIELDS + SCORE_FIELDS}
    update_cols["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[FinancialData.municipality_id, FinancialData.year],
        set_=update_cols,
    )


async def upsert_financial_record(
    db: AsyncSession,
    municipality_id: str,
    year: int,
    metrics: dict[str, Any],
    breakdown: ScoreBreakdown,
) -> None:
    """Insert or refresh the cached metrics and scores for a municipality-year.

    Does not commit; the caller owns the transaction.
    """
    await db.execute(build_upsert_statement(municipality_id, year, metrics, breakdown))
    logger.info(
        "Upserted financial data for %s %s (overall=%.2f)",
        municipality_id, year, breakdown.overall_score,
    )
