"""Tests for the municipality service and the financial data cache.

Covers:
  - Amount sanitising and scoring-input assembly
  - Fetching only the metrics the cache is missing
  - Upstream failures leaving a metric absent
  - Upsert of computed scores, and rollback when the cache write fails
  - Map FeatureCollection assembly (mocked DB)
  - Upsert statement shape
"""

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from app.models.financial import FinancialData
from app.models.municipality import Municipality
from app.services.financials import (
    build_upsert_statement,
    get_all_financial_years,
    get_cached_financials,
)
from app.services.municipalities import (
    build_scoring_input,
    fetch_missing_metrics,
    get_financial_history,
    get_map_features,
    get_municipality_detail,
    parse_geometry,
    sanitize_amount,
)
from app.services.muni_money.municipal_money import MuniMoneyApiError
from app.services.scoring import ScoreBreakdown

SVC = "app.services.municipalities"


# ────────────────────────────────────────────────────────────────────
# Fixtures
# ────────────────────────────────────────────────────────────────────

def _municipality(**overrides) -> Municipality:
    data = dict(id="BUF", name="Buffalo City", province="Eastern Cape", population=100.0, classification="A")
    data.update(overrides)
    return Municipality(**data)


def _source(**values):
    """Data source whose metric calls return ``values`` (or raise them)."""
    source = MagicMock()
    source.provider_name = "test"
    mapping = {
        "revenue": "get_total_revenue",
        "operating_expenditure": "get_operating_expenditure",
        "capital_expenditure": "get_capital_expenditure",
        "debt": "get_total_debt",
        "audit_outcome": "get_audit_outcome",
    }
    for field, method in mapping.items():
        value = values.get(field)
        if isinstance(value, Exception):
            setattr(source, method, AsyncMock(side_effect=value))
        else:
            setattr(source, method, AsyncMock(return_value=value))
    return source


FULL_METRICS = dict(
    revenue=Decimal("1000"),
    operating_expenditure=Decimal("800"),
    capital_expenditure=Decimal("200"),
    debt=Decimal("500"),
    audit_outcome="Clean Audit",
)


def _cached(**overrides) -> FinancialData:
    data = dict(municipality_id="BUF", year=2023, **FULL_METRICS)
    data.update(overrides)
    return FinancialData(**data)


# ═══════════════════════════════════════════════════════════════
# 1. Sanitising
# ═══════════════════════════════════════════════════════════════

class TestSanitizeAmount:
    def test_negative_clamped_to_zero(self, caplog):
        assert sanitize_amount("debt", Decimal("-10"), "BUF") == Decimal("0")
        assert "debt" in caplog.text

    def test_positive_passes_through(self):
        assert sanitize_amount("revenue", Decimal("12.5")) == Decimal("12.5")

    def test_none_stays_none(self):
        assert sanitize_amount("revenue", None) is None

    def test_float_converted_exactly(self):
        assert sanitize_amount("revenue", 0.1) == Decimal("0.1")

    def test_build_scoring_input(self):
        data = build_scoring_input(FULL_METRICS, 100)
        assert data.revenue == Decimal("1000")
        assert data.population == 100
        assert data.audit_outcome == "Clean Audit"

    def test_usable_population(self):
        assert _municipality(population=0.0).usable_population is None
        assert _municipality(population=None).usable_population is None
        assert _municipality(population=1234.0).usable_population == 1234


# ═══════════════════════════════════════════════════════════════
# 2. Fetching missing metrics
# ═══════════════════════════════════════════════════════════════

class TestFetchMissingMetrics:
    @pytest.mark.asyncio
    async def test_no_cache_fetches_everything(self):
        source = _source(**FULL_METRICS)
        metrics = await fetch_missing_metrics(source, "BUF", 2023, None)
        assert metrics == FULL_METRICS
        source.get_total_revenue.assert_awaited_once_with("BUF", 2023)
        source.get_audit_outcome.assert_awaited_once_with("BUF", 2023)

    @pytest.mark.asyncio
    async def test_only_missing_fields_fetched(self):
        source = _source(debt=Decimal("900"))
        cached = _cached(debt=None)
        metrics = await fetch_missing_metrics(source, "BUF", 2023, cached)
        assert metrics["debt"] == Decimal("900")
        assert metrics["revenue"] == Decimal("1000")
        source.get_total_debt.assert_awaited_once()
        source.get_total_revenue.assert_not_awaited()
        source.get_audit_outcome.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_complete_cache_fetches_nothing(self):
        source = _source()
        metrics = await fetch_missing_metrics(source, "BUF", 2023, _cached())
        assert metrics == FULL_METRICS
        source.get_total_revenue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_fetch_leaves_metric_absent(self):
        source = _source(**{**FULL_METRICS, "revenue": MuniMoneyApiError(500, "boom")})
        metrics = await fetch_missing_metrics(source, "BUF", 2023, None)
        assert metrics["revenue"] is None
        assert metrics["debt"] == Decimal("500")

    @pytest.mark.asyncio
    async def test_negative_upstream_amount_clamped(self):
        source = _source(**{**FULL_METRICS, "capital_expenditure": Decimal("-300")})
        metrics = await fetch_missing_metrics(source, "BUF", 2023, None)
        assert metrics["capital_expenditure"] == Decimal("0")


# ═══════════════════════════════════════════════════════════════
# 3. Detail flow
# ═══════════════════════════════════════════════════════════════

class TestMunicipalityDetail:
    @pytest.mark.asyncio
    async def test_unknown_municipality_returns_none(self):
        db = AsyncMock()
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=None)):
            assert await get_municipality_detail(db, _source(), "XXX", 2023) is None

    @pytest.mark.asyncio
    async def test_fetches_scores_and_persists(self):
        db = AsyncMock()
        source = _source(**FULL_METRICS)
        upsert = AsyncMock()
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=_municipality())), \
             patch(f"{SVC}.get_municipality_geometry", AsyncMock(return_value={"type": "Point", "coordinates": [27.9, -33.0]})), \
             patch(f"{SVC}.get_cached_financials", AsyncMock(return_value=None)), \
             patch(f"{SVC}.upsert_financial_record", upsert):
            detail = await get_municipality_detail(db, source, "BUF", 2023)

        assert detail["id"] == "BUF"
        assert detail["geometry"]["type"] == "Point"
        record = detail["financials"][0]
        assert record["year"] == 2023
        assert record["infrastructure_score"] == Decimal("75")
        assert record["audit_category"] == "clean"
        assert abs(record["overall_score"] - Decimal("72.0940")) < Decimal("0.0001")

        upsert.assert_awaited_once()
        args = upsert.call_args.args
        assert args[1:3] == ("BUF", 2023)
        assert isinstance(args[4], ScoreBreakdown)
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_upstream_and_write(self):
        db = AsyncMock()
        source = _source()
        cached = _cached(
            overall_score=Decimal("61.5"),
            financial_health_score=Decimal("40"),
            infrastructure_score=Decimal("50"),
            efficiency_score=Decimal("70"),
            accountability_score=Decimal("100"),
        )
        upsert = AsyncMock()
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=_municipality())), \
             patch(f"{SVC}.get_municipality_geometry", AsyncMock(return_value=None)), \
             patch(f"{SVC}.get_cached_financials", AsyncMock(return_value=cached)), \
             patch(f"{SVC}.upsert_financial_record", upsert):
            detail = await get_municipality_detail(db, source, "BUF", 2023)

        assert detail["financials"][0]["overall_score"] == Decimal("61.5")
        assert detail["geometry"] is None
        source.get_total_revenue.assert_not_awaited()
        upsert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_rolled_back_and_logged(self):
        db = AsyncMock()
        upsert = AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("db down")))
        log_mock = AsyncMock()
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=_municipality())), \
             patch(f"{SVC}.get_municipality_geometry", AsyncMock(return_value=None)), \
             patch(f"{SVC}.get_cached_financials", AsyncMock(return_value=None)), \
             patch(f"{SVC}.upsert_financial_record", upsert), \
             patch(f"{SVC}.log_error_standalone", log_mock):
            detail = await get_municipality_detail(db, _source(**FULL_METRICS), "BUF", 2023)

        assert detail["financials"][0]["efficiency_score"] == Decimal("100")
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()
        log_mock.assert_awaited_once()
        assert log_mock.call_args.kwargs["municipality_id"] == "BUF"

    @pytest.mark.asyncio
    async def test_upstream_outage_still_scores(self):
        db = AsyncMock()
        error = MuniMoneyApiError(503, "down")
        source = _source(
            revenue=error, operating_expenditure=error, capital_expenditure=error,
            debt=error, audit_outcome=error,
        )
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=_municipality())), \
             patch(f"{SVC}.get_municipality_geometry", AsyncMock(return_value=None)), \
             patch(f"{SVC}.get_cached_financials", AsyncMock(return_value=None)), \
             patch(f"{SVC}.upsert_financial_record", AsyncMock()):
            detail = await get_municipality_detail(db, source, "BUF", 2023)

        record = detail["financials"][0]
        assert record["overall_score"] == Decimal("0")
        assert record["audit_category"] == "unrecognized"


class TestFinancialHistory:
    @pytest.mark.asyncio
    async def test_unknown_municipality(self):
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=None)):
            assert await get_financial_history(AsyncMock(), "XXX") is None

    @pytest.mark.asyncio
    async def test_returns_records_in_order(self):
        rows = [_cached(year=2023), _cached(year=2022)]
        with patch(f"{SVC}.get_municipality", AsyncMock(return_value=_municipality())), \
             patch(f"{SVC}.get_all_financial_years", AsyncMock(return_value=rows)):
            history = await get_financial_history(AsyncMock(), "BUF")
        assert [r["year"] for r in history] == [2023, 2022]


# ═══════════════════════════════════════════════════════════════
# 4. Map features
# ═══════════════════════════════════════════════════════════════

class TestMapFeatures:
    @pytest.mark.asyncio
    async def test_feature_collection(self):
        rows = [
            SimpleNamespace(
                id="BUF", name="Buffalo City", province="Eastern Cape", population=755200.0,
                classification="A", geometry='{"type": "Polygon", "coordinates": []}',
                overall_score=Decimal("64.25"),
            ),
            SimpleNamespace(
                id="EC101", name="Dr Beyers Naude", province="Eastern Cape", population=None,
                classification="B3", geometry=None, overall_score=None,
            ),
            SimpleNamespace(
                id="NC062", name="Nama Khoi", province="Northern Cape", population=46000.0,
                classification="B3", geometry='{"type": "Polygon", "coordinates": []}',
                overall_score=None,
            ),
        ]
        result = MagicMock()
        result.all.return_value = rows
        db = AsyncMock()
        db.execute.return_value = result

        collection = await get_map_features(db, 10)

        assert collection["type"] == "FeatureCollection"
        ids = [f["properties"]["id"] for f in collection["features"]]
        assert ids == ["BUF", "NC062"]
        first = collection["features"][0]
        assert first["properties"]["latest_score"] == 64.25
        assert first["geometry"]["type"] == "Polygon"
        assert collection["features"][1]["properties"]["latest_score"] is None

    def test_parse_geometry_rejects_garbage(self):
        assert parse_geometry("not json", "BUF") is None
        assert parse_geometry("[1, 2]", "BUF") is None
        assert parse_geometry(None, "BUF") is None


# ═══════════════════════════════════════════════════════════════
# 5. Cache reads and upsert statement
# ═══════════════════════════════════════════════════════════════

class TestFinancialCache:
    @pytest.mark.asyncio
    async def test_get_cached_financials(self):
        row = _cached()
        result = MagicMock()
        result.scalar_one_or_none.return_value = row
        db = AsyncMock()
        db.execute.return_value = result
        assert await get_cached_financials(db, "BUF", 2023) is row

    @pytest.mark.asyncio
    async def test_get_all_financial_years(self):
        rows = [_cached(year=2023), _cached(year=2021)]
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        db = AsyncMock()
        db.execute.return_value = result
        assert await get_all_financial_years(db, "BUF") == rows

    def test_upsert_statement_targets_unique_key(self):
        breakdown = ScoreBreakdown(
            overall_score=Decimal("72"),
            financial_health_score=Decimal("27"),
            infrastructure_score=Decimal("75"),
            efficiency_score=Decimal("100"),
            accountability_score=Decimal("100"),
        )
        stmt = build_upsert_statement("BUF", 2023, FULL_METRICS, breakdown)
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (municipality_id, year) DO UPDATE" in sql
        assert "overall_score = excluded.overall_score" in sql
        assert "revenue = excluded.revenue" in sql
        assert "updated_at = now()" in sql

    def test_is_complete(self):
        assert _cached().is_complete
        assert not _cached(audit_outcome=None).is_complete

    def test_municipality_relationships_never_lazy_load(self):
        relationships = Municipality.__mapper__.relationships
        assert relationships["financials"].lazy == "raise"
        assert relationships["geometries"].lazy == "raise"
