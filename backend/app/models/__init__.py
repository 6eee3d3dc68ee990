"""SQLAlchemy models for the SeeMyCity backend."""

from app.models.municipality import Municipality, MunicipalGeometry, Geometry
from app.models.financial import FinancialData, METRIC_FIELDS, SCORE_FIELDS
from app.models.error_log import ErrorLog, ErrorSeverity
