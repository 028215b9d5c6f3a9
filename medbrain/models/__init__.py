"""
Models Package - persisted records and API schemas
"""
from .records import (
    AnalysisRow,
    MedicalProfile,
    RecommendationsRecord,
    WeeklyPlanRecord,
    utcnow,
)

__all__ = [
    "AnalysisRow",
    "MedicalProfile",
    "RecommendationsRecord",
    "WeeklyPlanRecord",
    "utcnow",
]
