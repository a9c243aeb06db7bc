"""Filter evaluation over normalized reviews."""
import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

from ..models import Review

logger = logging.getLogger('reviewhub.filter')

ALL = 'all'


def _constraint(value) -> Optional[str]:
    """Return *value* as a constraint string, or ``None`` for "no constraint"."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() == ALL:
        return None
    return value


def parse_rating_range(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse an inclusive ``"min-max"`` rating range such as ``"8-10"``.

    Returns ``None`` for "no constraint" and for anything malformed.
    """
    value = _constraint(value)
    if value is None:
        return None
    parts = value.split('-')
    if len(parts) != 2:
        logger.debug("Ignoring malformed rating range %r", value)
        return None
    try:
        low, high = int(parts[0]), int(parts[1])
    except ValueError:
        logger.debug("Ignoring malformed rating range %r", value)
        return None
    if low > high:
        low, high = high, low
    return low, high


@dataclass(frozen=True)
class FilterSpec:
    """A set of ANDed review predicates.  ``None`` fields do not constrain."""
    genre: Optional[str] = None
    platform: Optional[str] = None
    rating: Optional[Tuple[int, int]] = None
    search: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping]) -> 'FilterSpec':
        """Build a spec from request args / form values.

        ``rating`` uses the inclusive ``"min-max"`` range form.
        """
        if isinstance(data, FilterSpec):
            return data
        data = data or {}
        search = _constraint(data.get('search'))
        return cls(
            genre=_constraint(data.get('genre')),
            platform=_constraint(data.get('platform')),
            rating=parse_rating_range(data.get('rating')),
            search=search.lower() if search else None,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.genre or self.platform or self.rating or self.search)

    def matches(self, review: Review) -> bool:
        if self.genre and review.genre != self.genre:
            return False
        if self.platform and self.platform not in review.platform:
            return False
        if self.rating:
            low, high = self.rating
            if not low <= review.rating <= high:
                return False
        if self.search:
            needle = self.search.lower()
            haystacks = (review.title.lower(), review.excerpt.lower())
            if not any(needle in text for text in haystacks if text):
                return False
        return True


def filter_reviews(reviews: Sequence[Review], spec) -> List[Review]:
    """Return the reviews matching *spec* (a :class:`FilterSpec` or a
    mapping), preserving input order."""
    spec = FilterSpec.from_mapping(spec)
    if spec.is_empty:
        return list(reviews)
    return [review for review in reviews if spec.matches(review)]
