"""Learning engine: feedback collection and calibration proposals."""

from elcalc.learning.engine import LearningEngine
from elcalc.learning.models import (
    ComponentCalibration,
    CompletedProject,
    FeedbackCollectionResult,
    LearningCycleResult,
    LearningMetrics,
    LearningSystemStatus,
)
from elcalc.learning.repository import (
    DuplicateFeedbackError,
    FeedbackRepository,
    FeedbackStoreError,
)

__all__ = [
    "LearningEngine",
    "FeedbackRepository",
    "FeedbackStoreError",
    "DuplicateFeedbackError",
    "LearningMetrics",
    "ComponentCalibration",
    "CompletedProject",
    "FeedbackCollectionResult",
    "LearningCycleResult",
    "LearningSystemStatus",
]
