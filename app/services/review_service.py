"""Business logic for admin review management."""
import datetime
import json
import logging
from typing import Dict, List, Optional, Tuple

from ..repositories.document_repository import DocumentReviewRepository
from .normalizer import (
    DEFAULT_COVER_IMAGE, DEFAULT_HEADER_IMAGE, author_avatar, coerce_list,
    generate_excerpt, generate_slug, normalize_records, unique_slug,
)
from .sort_service import sort_reviews

logger = logging.getLogger('reviewhub.reviews')

MSG_NO_PLATFORM = 'Please select at least one platform.'
MSG_REQUIRED = 'Please fill in all required fields.'
MSG_RATING = 'Rating must be a whole number between 0 and 10.'
MSG_TITLE = 'Title must contain at least one letter or number.'
MSG_NOT_FOUND = 'Review not found.'
MSG_INVALID_IMPORT = 'Failed to import: Invalid file format.'

RECENT_COUNT = 5


def _parse_rating(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        rating = value
    else:
        try:
            rating = int(str(value).strip())
        except (TypeError, ValueError):
            return None
    return rating if 0 <= rating <= 10 else None


def _parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'on', 'yes')
    return bool(value)


class ReviewService:
    """Validates and applies admin review operations, delegating persistence
    to :class:`~app.repositories.document_repository.DocumentReviewRepository`.

    Rules
    -----
    * ``title``, ``genre``, ``platform`` (at least one), ``rating``,
      ``author`` and ``content`` are required.
    * ``rating`` must be an integer in the range **0-10** (inclusive).
    * New reviews get a unique slug as their id, today's date when none is
      given, an excerpt derived from the content and the author's avatar.
    * Changing the title regenerates the slug; the id never changes.
    * Saving a featured review clears the flag on every other review in the
      same store transaction.

    Write operations return ``(success, value)`` where *value* is the review
    id on success and a user-facing message on failure.
    """

    def __init__(self, repository: DocumentReviewRepository, local=None,
                 store_error=Exception) -> None:
        self._repo = repository
        self._local = local
        self._store_error = store_error

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate(form: Dict) -> Optional[str]:
        """Return a user-facing error message for *form*, or ``None``."""
        platforms = coerce_list(form.get('platform'))
        if not platforms:
            return MSG_NO_PLATFORM
        for key in ('title', 'genre', 'author', 'content'):
            if not str(form.get(key) or '').strip():
                return MSG_REQUIRED
        if form.get('rating') in (None, ''):
            return MSG_REQUIRED
        if _parse_rating(form.get('rating')) is None:
            return MSG_RATING
        if not generate_slug(str(form.get('title'))):
            return MSG_TITLE
        return None

    @staticmethod
    def build_record(form: Dict) -> Dict:
        """Turn validated form values into a review document (without id/slug)."""
        content = str(form.get('content') or '').strip()
        author = str(form.get('author') or '').strip()
        date = str(form.get('date') or '').strip() or datetime.date.today().isoformat()
        return {
            'title': str(form.get('title')).strip(),
            'genre': str(form.get('genre')).strip(),
            'platform': coerce_list(form.get('platform')),
            'rating': _parse_rating(form.get('rating')),
            'author': author,
            'date': date,
            'featured': _parse_bool(form.get('featured')),
            'coverImage': str(form.get('coverImage') or '').strip() or DEFAULT_COVER_IMAGE,
            'headerImage': str(form.get('headerImage') or '').strip() or DEFAULT_HEADER_IMAGE,
            'tags': coerce_list(form.get('tags')),
            'excerpt': generate_excerpt(content),
            'content': content,
            'authorAvatar': author_avatar(author),
            'developers': coerce_list(form.get('developers')),
            'publishers': coerce_list(form.get('publishers')),
            'modes': coerce_list(form.get('modes')),
        }

    # ------------------------------------------------------------------
    # Write API
    # ------------------------------------------------------------------

    def add(self, form: Dict, actor: Optional[str] = None,
            exclusive_featured: bool = True) -> Tuple[bool, str]:
        """Create a review from *form*."""
        error = self.validate(form)
        if error:
            return False, error
        record = self.build_record(form)
        try:
            slug = unique_slug(record['title'], self._repo.taken_slugs())
            record['slug'] = slug
            self._repo.put(slug, record, actor=actor, exclusive_featured=exclusive_featured)
        except self._store_error as exc:
            logger.error("Could not add review %r: %s", record['title'], exc)
            return False, str(exc)
        logger.info("Review %s added by %s", slug, actor or 'unknown')
        return True, slug

    def update(self, review_id: str, form: Dict,
               actor: Optional[str] = None) -> Tuple[bool, str]:
        """Replace the editable fields of *review_id* with *form*."""
        error = self.validate(form)
        if error:
            return False, error
        try:
            existing = self._repo.get(review_id)
            if existing is None:
                return False, MSG_NOT_FOUND
            review_id = existing['id']
            record = self.build_record(form)
            if record['title'] != existing.get('title'):
                taken = self._repo.taken_slugs() - {review_id, existing.get('slug')}
                record['slug'] = unique_slug(record['title'], taken)
            else:
                record['slug'] = existing.get('slug') or review_id
            self._repo.put(review_id, record, actor=actor)
        except self._store_error as exc:
            logger.error("Could not update review %s: %s", review_id, exc)
            return False, str(exc)
        logger.info("Review %s updated by %s", review_id, actor or 'unknown')
        return True, review_id

    def remove(self, review_id: str) -> Tuple[bool, str]:
        """Delete *review_id*."""
        try:
            existing = self._repo.get(review_id)
            if existing is None or not self._repo.delete(existing['id']):
                return False, MSG_NOT_FOUND
        except self._store_error as exc:
            logger.error("Could not delete review %s: %s", review_id, exc)
            return False, str(exc)
        logger.info("Review %s deleted", existing['id'])
        return True, existing['id']

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get(self, review_id: str) -> Optional[Dict]:
        """Return the raw document for *review_id* (for the edit form)."""
        return self._repo.get(review_id)

    def all_documents(self) -> List[Dict]:
        return self._repo.list(order_by='date')

    def stats(self) -> Dict:
        """Dashboard numbers for the admin panel."""
        reviews = normalize_records(self.all_documents())
        genres = sorted({r.genre for r in reviews if r.genre})
        platforms = sorted({p for r in reviews for p in r.platform})
        total = len(reviews)
        avg = round(sum(r.rating for r in reviews) / total, 1) if total else 0
        return {
            'total_reviews': total,
            'avg_rating': avg,
            'featured_count': sum(1 for r in reviews if r.featured),
            'genre_count': len(genres),
            'genres': genres,
            'platform_count': len(platforms),
        }

    def recent(self, count: int = RECENT_COUNT) -> List[Dict]:
        return self._repo.list(order_by='date', limit=count)

    def admin_search(self, term: str = '') -> List[Dict]:
        """Documents whose title, genre or author contains *term*, newest first."""
        term = (term or '').strip().lower()
        documents = self.all_documents()
        if term:
            documents = [
                doc for doc in documents
                if any(term in str(doc.get(key) or '').lower()
                       for key in ('title', 'genre', 'author'))
            ]
        by_id = {doc['id']: doc for doc in documents}
        ordered = sort_reviews(normalize_records(documents), 'date-desc')
        return [by_id[r.id] for r in ordered]

    # ------------------------------------------------------------------
    # Export / import / reset
    # ------------------------------------------------------------------

    @staticmethod
    def export_filename(today: Optional[datetime.date] = None) -> str:
        today = today or datetime.date.today()
        return f'gamereviewhub-reviews-{today.isoformat()}.json'

    def export_json(self) -> str:
        return json.dumps(self.all_documents(), indent=2)

    def import_records(self, payload, actor: Optional[str] = None) -> Tuple[bool, object]:
        """Add every review in *payload* (a JSON string or a list).

        Ids and slugs are dropped and regenerated.  Returns
        ``(True, imported_count)`` or ``(False, message)``.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError:
                return False, MSG_INVALID_IMPORT
        if not isinstance(payload, list):
            return False, MSG_INVALID_IMPORT

        added = 0
        for record in payload:
            if not isinstance(record, dict):
                logger.warning("Skipping non-object import entry: %r", record)
                continue
            record = {k: v for k, v in record.items() if k not in ('id', 'slug')}
            ok, value = self.add(record, actor=actor, exclusive_featured=False)
            if ok:
                added += 1
            else:
                logger.warning("Skipping imported review %r: %s", record.get('title'), value)
        return True, added

    def reset_local(self) -> bool:
        """Clear the local fallback collection."""
        if self._local is None:
            return False
        self._local.clear()
        return True
