from app.models.analytics import BrandAnalytics, CompetitorAnalytics
from app.models.brand import Brand
from app.models.detailed_result import DetailedQueryResult
from app.models.processing_job import ProcessingJob
from app.models.user import User

__all__ = [
    "Brand",
    "BrandAnalytics",
    "CompetitorAnalytics",
    "DetailedQueryResult",
    "ProcessingJob",
    "User",
]
