"""Application services wiring persistence to the matching core."""

from .recommendations import RecommendationService
from .supervisors import SupervisorImportService, SupervisorImportSummary
from .tag_admin import SimilarTag, TagImportService, TagImportSummary

__all__ = [
    "RecommendationService",
    "SimilarTag",
    "SupervisorImportService",
    "SupervisorImportSummary",
    "TagImportService",
    "TagImportSummary",
]
