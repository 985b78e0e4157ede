"""Database layer for elcalc with async SQLAlchemy."""

from elcalc.db.calculations import (
    get_current_calculation,
    load_templates,
    save_calculation,
    save_template,
)
from elcalc.db.connection import close_db, get_session, init_db
from elcalc.db.models import (
    Base,
    CalculationFeedbackModel,
    CalculationModel,
    CalibrationAdjustmentModel,
    CatalogComponentModel,
    CatalogMaterialModel,
    OfferModel,
    OfferTextTemplateModel,
    ProjectModel,
)

__all__ = [
    "Base",
    "CalculationModel",
    "CalculationFeedbackModel",
    "CalibrationAdjustmentModel",
    "CatalogComponentModel",
    "CatalogMaterialModel",
    "OfferModel",
    "OfferTextTemplateModel",
    "ProjectModel",
    "get_session",
    "init_db",
    "close_db",
    "save_calculation",
    "get_current_calculation",
    "load_templates",
    "save_template",
]
