"""Normalized review record.

Everything past :func:`app.services.normalizer.normalize_record` works with
:class:`Review` instances; raw documents (camelCase dicts as stored in the
document store) never travel further than the normalizer.
"""
import datetime
from dataclasses import asdict, dataclass, field
from typing import Dict, List

EPOCH_DATE = datetime.date(1970, 1, 1)


@dataclass(frozen=True)
class Review:
    """A game review with every optional field resolved to a concrete value."""
    id: str
    slug: str
    title: str
    genre: str
    platform: List[str]
    rating: int
    author: str
    date: datetime.date
    featured: bool
    cover_image: str
    header_image: str
    tags: List[str]
    excerpt: str
    content: str
    author_avatar: str
    developers: List[str] = field(default_factory=list)
    publishers: List[str] = field(default_factory=list)
    modes: List[str] = field(default_factory=list)

    @property
    def primary_platform(self) -> str:
        return self.platform[0]

    @property
    def identity(self) -> str:
        """Key used to tell two reviews apart (id, falling back to slug)."""
        return self.id or self.slug

    def to_document(self) -> Dict:
        """Return the camelCase document shape used by the stores."""
        data = asdict(self)
        return {
            'id': data['id'],
            'slug': data['slug'],
            'title': data['title'],
            'genre': data['genre'],
            'platform': list(data['platform']),
            'rating': data['rating'],
            'author': data['author'],
            'date': self.date.isoformat(),
            'featured': data['featured'],
            'coverImage': data['cover_image'],
            'headerImage': data['header_image'],
            'tags': list(data['tags']),
            'excerpt': data['excerpt'],
            'content': data['content'],
            'authorAvatar': data['author_avatar'],
            'developers': list(data['developers']),
            'publishers': list(data['publishers']),
            'modes': list(data['modes']),
        }
