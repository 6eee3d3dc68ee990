"""Cached financial metrics and computed scores per municipality-year."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, Text, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

METRIC_FIELDS = (
    "revenue",
    "operating_expenditure",
    "capital_expenditure",
    "debt",
    "audit_outcome",
)

SCORE_FIELDS = (
    "overall_score",
    "financial_health_score",
    "infrastructure_score",
    "efficiency_score",
    "accountability_score",
)


class FinancialData(Base):
    __tablename__ = "financial_data"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    municipality_id: Mapped[str] = mapped_column(
        String(16),
        ForeignKey("municipalities.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Raw metrics (currency amounts in ZAR)
    revenue: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    operating_expenditure: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    capital_expenditure: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    debt: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    audit_outcome: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Scores (0-100)
    overall_score: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    financial_health_score: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    infrastructure_score: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    efficiency_score: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    accountability_score: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    municipality = relationship("Municipality", back_populates="financials")

    __table_args__ = (
        UniqueConstraint("municipality_id", "year", name="uq_financial_data_municipality_year"),
    )

    @property
    def is_complete(self) -> bool:
        """True when every raw metric is cached."""
        return all(getattr(self, name) is not None for name in METRIC_FIELDS)
