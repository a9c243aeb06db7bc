"""Game-metadata lookup used to auto-fill the admin review form."""
import logging
from typing import Dict, List, Optional

logger = logging.getLogger('reviewhub.metadata')

MIN_QUERY_LENGTH = 2
NO_IMAGE = 'https://via.placeholder.com/60x80?text=No+Image'

GENRE_MAP = {
    'action': 'Action Adventure',
    'adventure': 'Action Adventure',
    'rpg': 'RPG',
    'shooter': 'FPS',
    'strategy': 'Strategy',
    'sports': 'Sports',
    'racing': 'Racing',
    'puzzle': 'Puzzle',
    'simulation': 'Simulation',
    'indie': 'Indie',
    'horror': 'Horror',
}

PLATFORM_MAP = {
    'pc': 'PC',
    'playstation5': 'PS5',
    'playstation4': 'PS4',
    'xbox-series-x': 'Xbox Series X',
    'xbox-one': 'Xbox One',
    'nintendo-switch': 'Nintendo Switch',
    'ios': 'Mobile',
    'android': 'Mobile',
}

MODE_KEYWORDS = {
    'singleplayer': 'Singleplayer',
    'multiplayer': 'Multiplayer',
    'co-op': 'Co-op',
    'coop': 'Co-op',
    'cooperative': 'Co-op',
    'local multiplayer': 'Local Multiplayer',
    'online multiplayer': 'Online Multiplayer',
    'split-screen': 'Split-screen',
    'split screen': 'Split-screen',
}

MAX_TAGS = 5

# Choices offered by the admin review form
PLATFORM_CHOICES = list(dict.fromkeys(PLATFORM_MAP.values()))
GENRE_CHOICES = sorted(set(GENRE_MAP.values()) | {'Action RPG', 'Other'})


# ---------------------------------------------------------------------------
# RAWG -> site mappings
# ---------------------------------------------------------------------------

def map_genre(genres: Optional[List[Dict]]) -> str:
    """Pick the site genre for a RAWG genre list.

    Action + RPG together map to ``Action RPG``; otherwise the first RAWG
    genre with a mapping wins, and ``Other`` covers the rest.  An empty list
    maps to ``""``.
    """
    if not genres:
        return ''
    slugs = [str(g.get('slug', '')).lower() for g in genres]
    if 'action' in slugs and 'rpg' in slugs:
        return 'Action RPG'
    for slug in slugs:
        if slug in GENRE_MAP:
            return GENRE_MAP[slug]
    return 'Other'


def map_platforms(platforms: Optional[List[Dict]]) -> List[str]:
    """Site platform names for a RAWG ``platforms`` list, first-seen order."""
    mapped: List[str] = []
    for entry in platforms or []:
        slug = ((entry or {}).get('platform') or {}).get('slug', '')
        name = PLATFORM_MAP.get(slug)
        if name and name not in mapped:
            mapped.append(name)
    return mapped


def generate_tags(game: Dict) -> List[str]:
    """Up to five tags: three genre names, then three English RAWG tags."""
    tags = [g.get('name') for g in (game.get('genres') or [])[:3]]
    english = [t.get('name') for t in (game.get('tags') or []) if t.get('language') == 'eng']
    tags.extend(english[:3])
    unique: List[str] = []
    for tag in tags:
        if tag and tag not in unique:
            unique.append(tag)
    return unique[:MAX_TAGS]


def map_modes(game: Optional[Dict]) -> List[str]:
    """Game modes from ``game_modes`` when RAWG provides them, otherwise a
    keyword scan over tags, genres, name and description."""
    if not game:
        return []

    game_modes = game.get('game_modes')
    if isinstance(game_modes, list) and game_modes:
        names = []
        for mode in game_modes:
            if isinstance(mode, str):
                names.append(mode)
            elif isinstance(mode, dict):
                names.append(mode.get('name') or mode.get('title') or '')
        return [n for n in names if n]

    found: List[str] = []

    def add(mode: str) -> None:
        if mode not in found:
            found.append(mode)

    for tag in game.get('tags') or []:
        name = str(tag.get('name') or tag.get('slug') or '').lower()
        for keyword, mode in MODE_KEYWORDS.items():
            if keyword in name:
                add(mode)

    for genre in game.get('genres') or []:
        name = str(genre.get('name') or genre.get('slug') or '').lower()
        if 'multiplayer' in name:
            add('Multiplayer')
        if 'co-op' in name or 'cooperative' in name:
            add('Co-op')

    text = ' '.join(str(game.get(k) or '') for k in ('name', 'description_raw', 'description')).lower()
    for keyword, mode in MODE_KEYWORDS.items():
        if keyword in text:
            add(mode)
    return found


def summarize(game: Dict) -> Dict:
    """Compact search-result entry for the admin game picker."""
    released = game.get('released') or ''
    return {
        'id': game.get('id'),
        'name': game.get('name', ''),
        'year': released[:4] if released else 'N/A',
        'image': game.get('background_image') or NO_IMAGE,
        'genres': [g.get('name') for g in (game.get('genres') or [])][:2],
        'platforms': [((p or {}).get('platform') or {}).get('name')
                      for p in (game.get('platforms') or [])][:3],
    }


def autofill(game: Dict) -> Dict:
    """Admin form values derived from a RAWG game detail record."""
    form = {
        'title': game.get('name') or '',
        'genre': map_genre(game.get('genres')),
        'platform': map_platforms(game.get('platforms')),
        'tags': generate_tags(game),
        'developers': [d.get('name') for d in (game.get('developers') or []) if d.get('name')],
        'publishers': [p.get('name') for p in (game.get('publishers') or []) if p.get('name')],
        'modes': map_modes(game),
    }
    if game.get('background_image'):
        form['coverImage'] = game['background_image']
        form['headerImage'] = game['background_image']
    return form


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MetadataService:
    """Best-effort enrichment on top of a RAWG client.

    Both operations make exactly one attempt; failures surface as an empty
    result list or ``None``.
    """

    def __init__(self, client) -> None:
        """
        Args:
            client: Object exposing ``search(query)`` and
                ``get_details(game_id)`` (see ``reviewhub.RawgAPIClient``);
                ``None`` disables lookups.
        """
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def search(self, query: str) -> List[Dict]:
        query = (query or '').strip()
        if not self._client or len(query) < MIN_QUERY_LENGTH:
            return []
        return [summarize(game) for game in self._client.search(query)]

    def autofill(self, game_id) -> Optional[Dict]:
        if not self._client:
            return None
        game = self._client.get_details(game_id)
        if not game:
            logger.info("No RAWG details for game %s", game_id)
            return None
        return autofill(game)
