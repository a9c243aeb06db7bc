"""Record normalization: raw review documents -> :class:`~app.models.Review`."""
import datetime
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from ..models import EPOCH_DATE, Review

logger = logging.getLogger('reviewhub.normalizer')

EXCERPT_LENGTH = 150

DEFAULT_COVER_IMAGE = 'https://images.unsplash.com/photo-1538481199705-c710c4e965fc?w=800&h=600&fit=crop'
DEFAULT_HEADER_IMAGE = 'https://images.unsplash.com/photo-1538481199705-c710c4e965fc?w=1600&h=900&fit=crop'
UNKNOWN_PLATFORM = 'Unknown'

AUTHOR_AVATARS = {
    'Alex': 'https://images.unsplash.com/photo-1535713875002-d1d0cf377fde?w=100&h=100&fit=crop',
    'Jordan': 'https://images.unsplash.com/photo-1599566150163-29194dcabd36?w=100&h=100&fit=crop',
}
DEFAULT_AUTHOR = 'Alex'

_TAG_RE = re.compile(r'<[^>]*>')
_WS_RE = re.compile(r'\s+')
_SLUG_RE = re.compile(r'[^a-z0-9]+')


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def generate_slug(title: str) -> str:
    """Return a URL-friendly slug for *title*.

    ``"The Legend of Zelda: Tears of the Kingdom!"`` becomes
    ``"the-legend-of-zelda-tears-of-the-kingdom"``.  A title without any
    ASCII letter or digit yields ``""``.
    """
    if not title:
        return ''
    return _SLUG_RE.sub('-', str(title).lower()).strip('-')


def unique_slug(title: str, taken: Iterable[str]) -> str:
    """Return :func:`generate_slug` of *title*, suffixed ``-2``, ``-3``, ...
    until it does not collide with any slug in *taken*."""
    base = generate_slug(title)
    if not base:
        return ''
    taken = set(taken)
    slug = base
    n = 2
    while slug in taken:
        slug = f'{base}-{n}'
        n += 1
    return slug


def generate_excerpt(html: str) -> str:
    """Plain-text excerpt of *html*: tags stripped, whitespace collapsed and
    cut to 150 characters plus ``...`` when longer."""
    if not html:
        return ''
    text = _WS_RE.sub(' ', _TAG_RE.sub(' ', str(html))).strip()
    if len(text) > EXCERPT_LENGTH:
        return text[:EXCERPT_LENGTH] + '...'
    return text


def author_avatar(author: str) -> str:
    return AUTHOR_AVATARS.get(author) or AUTHOR_AVATARS[DEFAULT_AUTHOR]


def parse_date(value: Any) -> datetime.date:
    """Parse an ISO date (or datetime) into a :class:`datetime.date`.

    Anything unparsable becomes the epoch date so that it sorts last under
    newest-first ordering.
    """
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.date.fromisoformat(value.strip()[:10])
        except ValueError:
            logger.debug("Unparsable review date %r", value)
    return EPOCH_DATE


def coerce_list(value: Any) -> List[str]:
    """Turn a list, a comma-separated string or a scalar into a list of
    non-empty stripped strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(',')
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def coerce_platforms(value: Any) -> List[str]:
    """Platforms keep their order (the first one is the primary platform);
    a scalar is wrapped rather than split on commas."""
    if isinstance(value, str):
        value = [value]
    platforms = coerce_list(value)
    return platforms or [UNKNOWN_PLATFORM]


def coerce_rating(value: Any) -> int:
    try:
        rating = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(10, rating))


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def _first(raw: Dict, *keys: str) -> Optional[Any]:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ''):
            return value
    return None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_record(raw: Dict) -> Review:
    """Canonicalize a loosely-typed review document.

    Never raises: missing or wrongly-typed fields fall back to defaults.
    Both camelCase (stored document) and snake_case keys are accepted.
    """
    raw = raw if isinstance(raw, dict) else {}
    title = _text(raw.get('title'))
    content = _text(raw.get('content'))
    author = _text(raw.get('author'))

    slug = _text(_first(raw, 'slug', 'id')) or generate_slug(title)
    review_id = _text(_first(raw, 'id', 'slug')) or slug

    excerpt = raw.get('excerpt')
    excerpt = _text(excerpt) if excerpt else generate_excerpt(content)

    return Review(
        id=review_id,
        slug=slug,
        title=title,
        genre=_text(raw.get('genre')),
        platform=coerce_platforms(raw.get('platform')),
        rating=coerce_rating(raw.get('rating')),
        author=author,
        date=parse_date(raw.get('date')),
        featured=raw.get('featured') is True,
        cover_image=_text(_first(raw, 'coverImage', 'cover_image')) or DEFAULT_COVER_IMAGE,
        header_image=_text(_first(raw, 'headerImage', 'header_image')) or DEFAULT_HEADER_IMAGE,
        tags=coerce_list(raw.get('tags')),
        excerpt=excerpt,
        content=content,
        author_avatar=_text(_first(raw, 'authorAvatar', 'author_avatar')) or author_avatar(author),
        developers=coerce_list(raw.get('developers')),
        publishers=coerce_list(raw.get('publishers')),
        modes=coerce_list(raw.get('modes')),
    )


def normalize_records(raws: Iterable[Dict]) -> List[Review]:
    return [normalize_record(raw) for raw in raws or []]
