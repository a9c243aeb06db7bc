"""Stable ordering of normalized reviews by one of a fixed set of keys."""
import locale
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..models import Review

logger = logging.getLogger('reviewhub.sort')

DEFAULT_SORT = 'date-desc'


def use_system_collation() -> bool:
    """Switch ``LC_COLLATE`` to the environment's locale so title sorting
    follows its collation rules.  Without this call titles sort by code
    point (the C locale).  Returns ``False`` when the locale is unavailable."""
    try:
        locale.setlocale(locale.LC_COLLATE, '')
    except locale.Error as exc:
        logger.warning("System collation unavailable, titles sort by code point: %s", exc)
        return False
    return True


def _title_key(review: Review):
    # strxfrm rejects embedded NUL characters
    return locale.strxfrm(review.title.casefold().replace('\x00', ''))


# key -> (sort key function, descending)
SORT_KEYS: Dict[str, Tuple[Callable[[Review], object], bool]] = {
    'date-desc': (lambda r: r.date, True),
    'date-asc': (lambda r: r.date, False),
    'rating-desc': (lambda r: r.rating, True),
    'rating-asc': (lambda r: r.rating, False),
    'title-asc': (_title_key, False),
    'title-desc': (_title_key, True),
}


def resolve_sort_key(key: Optional[str]) -> str:
    """Return *key* if recognised, else the default ``date-desc``."""
    return key if key in SORT_KEYS else DEFAULT_SORT


def sort_reviews(reviews: Sequence[Review], key: Optional[str] = None) -> List[Review]:
    """Return *reviews* ordered by *key*.

    ``sorted`` is stable in both directions, so reviews with equal keys keep
    their input order.
    """
    key_func, descending = SORT_KEYS[resolve_sort_key(key)]
    return sorted(reviews, key=key_func, reverse=descending)
