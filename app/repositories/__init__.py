"""Repository package: expose all concrete repositories from one import."""
from .document_repository import DocumentReviewRepository
from .local_repository import LocalReviewRepository

__all__ = [
    'DocumentReviewRepository',
    'LocalReviewRepository',
]
