"""Municipality reference data and boundary geometry.

Rows are loaded from the Municipal Demarcation Board datasets; the service
only reads them.
"""

from datetime import datetime

from sqlalchemy import String, Text, Float, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import UserDefinedType

from app.database import Base


class Geometry(UserDefinedType):
    """PostGIS ``geometry`` column. Read back through ``ST_AsGeoJSON``."""

    cache_ok = True

    def __init__(self, geometry_type: str = "Geometry", srid: int = 4326):
        self.geometry_type = geometry_type
        self.srid = srid

    def get_col_spec(self, **kw) -> str:
        return f"geometry({self.geometry_type}, {self.srid})"


class Municipality(Base):
    __tablename__ = "municipalities"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)  # demarcation code, e.g. "BUF"
    name: Mapped[str] = mapped_column(Text, nullable=False)
    province: Mapped[str] = mapped_column(Text, nullable=False)
    population: Mapped[float | None] = mapped_column(Float, nullable=True)
    classification: Mapped[str | None] = mapped_column(Text, nullable=True)  # A, B1..B4, C1, C2
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    district_id: Mapped[str | None] = mapped_column(String(16), nullable=True)
    district_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True,
    )

    geometries = relationship("MunicipalGeometry", back_populates="municipality", lazy="raise")
    financials = relationship("FinancialData", back_populates="municipality", lazy="raise")

    @property
    def usable_population(self) -> int | None:
        """Population as a positive integer, or None when unknown."""
        if self.population is None or self.population <= 0:
            return None
        return int(self.population)


class MunicipalGeometry(Base):
    __tablename__ = "municipal_geometries"

    ogc_fid: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    geom = mapped_column(Geometry("Geometry", 4326), nullable=True)
    munic_id: Mapped[str] = mapped_column(
        String(16),
        ForeignKey("municipalities.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )

    municipality = relationship("Municipality", back_populates="geometries")

    __table_args__ = (
        Index("municipal_geometries_geom_idx", "geom", postgresql_using="gist"),
    )
