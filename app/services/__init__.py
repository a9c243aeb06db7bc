"""Services package: expose all concrete services from one import."""
from .review_service import ReviewService
from .query_service import LiveQuery, ReviewQueryService
from .metadata_service import MetadataService

__all__ = [
    'ReviewService',
    'ReviewQueryService',
    'LiveQuery',
    'MetadataService',
]
