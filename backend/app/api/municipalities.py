"""Municipalities API: map features, reference list and scored detail views."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.schemas import (
    FinancialYearResponse,
    MapFeatureCollection,
    MunicipalityBasic,
    MunicipalityDetailResponse,
)
from app.services.muni_money.adapter import FinancialDataSource, get_financial_data_source
from app.services.municipalities import (
    get_all_municipalities_basic,
    get_financial_history,
    get_map_features,
    get_municipality_detail,
)

logger = logging.getLogger(__name__)

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get("", response_model=MapFeatureCollection)
async def list_map_features(
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """GeoJSON FeatureCollection for the map, with each municipality's latest score."""
    max_limit = settings.map_feature_limit_max
    effective_limit = min(limit, max_limit) if limit is not None else max_limit
    return await get_map_features(db, effective_limit)


@router.get("/list", response_model=list[MunicipalityBasic])
async def list_municipalities(db: AsyncSession = Depends(get_db)):
    return await get_all_municipalities_basic(db)


@router.get("/{municipality_id}", response_model=MunicipalityDetailResponse)
@limiter.limit(settings.detail_rate_limit)
async def municipality_detail(
    municipality_id: str,
    request: Request,
    year: Optional[int] = Query(None, ge=1990, le=2100),
    db: AsyncSession = Depends(get_db),
    source: FinancialDataSource = Depends(get_financial_data_source),
):
    """Municipality detail with scored financials for one year.

    Missing metrics are fetched from the upstream source and cached.
    """
    target_year = year if year is not None else settings.default_financial_year
    logger.info("Detail request for %s (%s)", municipality_id, target_year)

    detail = await get_municipality_detail(db, source, municipality_id, target_year)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Municipality {municipality_id} not found")
    return detail


@router.get("/{municipality_id}/financials", response_model=list[FinancialYearResponse])
async def municipality_financials(
    municipality_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Every cached financial year, newest first. Never calls upstream."""
    history = await get_financial_history(db, municipality_id)
    if history is None:
        raise HTTPException(status_code=404, detail=f"Municipality {municipality_id} not found")
    return history
