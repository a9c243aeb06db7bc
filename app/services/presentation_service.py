"""View models for review cards, review pages, related reviews and the
featured carousel.

Every function here is pure: it reads :class:`~app.models.Review` instances
and returns plain dicts ready for a template or ``jsonify``.
"""
import datetime
from typing import Dict, List, Optional, Sequence

from ..models import Review
from .sort_service import sort_reviews

SITE_NAME = 'GameReview Hub'
RELATED_LIMIT = 3
STAR_SLOTS = 5

_RATING_LABELS = (
    (9, 'Masterpiece'),
    (8, 'Great'),
    (7, 'Good'),
    (6, 'Decent'),
    (5, 'Average'),
    (4, 'Below Average'),
)


# ---------------------------------------------------------------------------
# Rating / date helpers
# ---------------------------------------------------------------------------

def rating_class(rating: int) -> str:
    """CSS tier for a rating badge: ``high`` (8+), ``medium`` (5+) or ``low``."""
    if rating >= 8:
        return 'high'
    if rating >= 5:
        return 'medium'
    return 'low'


def rating_label(rating: int) -> str:
    for threshold, label in _RATING_LABELS:
        if rating >= threshold:
            return label
    return 'Poor'


def star_slots(rating: int) -> List[str]:
    """Five star slots for a 0-10 rating.

    ``floor(rating / 2)`` slots are ``'full'``, one more is ``'half'`` when the
    rating is odd, and the rest are ``'empty'``.
    """
    full = rating // 2
    half = 1 if rating % 2 else 0
    return ['full'] * full + ['half'] * half + ['empty'] * (STAR_SLOTS - full - half)


def format_date(value: datetime.date) -> str:
    """Format *value* as ``January 5, 2024``."""
    return f"{value.strftime('%B')} {value.day}, {value.year}"


# ---------------------------------------------------------------------------
# View models
# ---------------------------------------------------------------------------

def card(review: Review) -> Dict:
    """Summary used by review grids and related-review lists."""
    overflow = len(review.platform) - 1
    return {
        'id': review.id,
        'slug': review.slug or review.id,
        'title': review.title,
        'genre': review.genre,
        'cover_image': review.cover_image,
        'rating': review.rating,
        'rating_class': rating_class(review.rating),
        'primary_platform': review.primary_platform,
        'platform_overflow': overflow,
        'platform_label': review.primary_platform + ('+' if overflow > 0 else ''),
        'date': review.date.isoformat(),
        'date_display': format_date(review.date),
        'excerpt': review.excerpt,
        'author': review.author,
        'author_avatar': review.author_avatar,
        'featured': review.featured,
    }


def detail(review: Review) -> Dict:
    """Full review page model."""
    view = card(review)
    view.update({
        'header_image': review.header_image,
        'rating_label': rating_label(review.rating),
        'stars': star_slots(review.rating),
        'content': review.content,
        'tags': list(review.tags),
        'platforms': list(review.platform),
        'platforms_display': ', '.join(review.platform),
        'developers': list(review.developers),
        'publishers': list(review.publishers),
        'modes': list(review.modes),
        'page_title': f'{review.title} Review - {SITE_NAME}',
        'meta_description': review.excerpt,
    })
    return view


present = detail


def related(review: Review, collection: Sequence[Review],
            limit: int = RELATED_LIMIT) -> List[Review]:
    """Up to *limit* other reviews sharing the genre or at least one platform
    with *review*, in collection order."""
    platforms = set(review.platform)
    result = []
    for other in collection:
        if other.identity == review.identity:
            continue
        if other.genre == review.genre or platforms.intersection(other.platform):
            result.append(other)
            if len(result) >= limit:
                break
    return result


def featured_lineup(collection: Sequence[Review]) -> List[Review]:
    """Featured reviews newest first; the latest review when none is flagged."""
    featured = [r for r in collection if r.featured]
    if featured:
        return sort_reviews(featured, 'date-desc')
    ordered = sort_reviews(collection, 'date-desc')
    return ordered[:1]


class FeaturedCarousel:
    """Slider state for the home-page featured section.

    Holds its own current index instead of a page-global one; the web layer
    builds a fresh carousel per render and the CLI/tests drive it directly.
    """

    def __init__(self, reviews: Sequence[Review]) -> None:
        self._reviews = list(reviews)
        self._index = 0

    def __len__(self) -> int:
        return len(self._reviews)

    @property
    def index(self) -> int:
        return self._index

    @property
    def has_navigation(self) -> bool:
        return len(self._reviews) > 1

    def current(self) -> Optional[Review]:
        if not self._reviews:
            return None
        return self._reviews[self._index]

    def next(self) -> Optional[Review]:
        if self._reviews:
            self._index = (self._index + 1) % len(self._reviews)
        return self.current()

    def prev(self) -> Optional[Review]:
        if self._reviews:
            self._index = (self._index - 1) % len(self._reviews)
        return self.current()

    def go_to(self, index: int) -> Optional[Review]:
        if 0 <= index < len(self._reviews):
            self._index = index
        return self.current()

    def slide(self) -> Optional[Dict]:
        review = self.current()
        if review is None:
            return None
        view = detail(review)
        if self.has_navigation:
            view['badge'] = f'Featured Review {self._index + 1} of {len(self._reviews)}'
        else:
            view['badge'] = 'Featured Review'
        return view

    def dots(self) -> List[Dict]:
        return [{'index': i, 'active': i == self._index}
                for i in range(len(self._reviews))] if self.has_navigation else []

    def slides(self) -> List[Dict]:
        """Every slide view model, leaving the current index untouched."""
        start = self._index
        views = []
        for i in range(len(self._reviews)):
            self._index = i
            views.append(self.slide())
        self._index = start
        return views
