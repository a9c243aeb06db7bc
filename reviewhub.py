#!/usr/bin/env python3
"""
GameReview Hub - game review site backend and command-line tool.
Browse, filter and manage game reviews stored in a document database, with
RAWG game metadata for auto-filling new reviews.
"""

import json
import logging
import os
import sys
import argparse
from typing import Dict, List, Optional
import requests
from colorama import init, Fore, Style
from dotenv import load_dotenv

import database
from app.repositories import DocumentReviewRepository, LocalReviewRepository
from app.services import LiveQuery, MetadataService, ReviewQueryService, ReviewService
from app.services import presentation_service as present
from app.services.sort_service import use_system_collation

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)
load_dotenv()

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root GameReview Hub logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logger = logging.getLogger('reviewhub')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout reviewhub.py
logger = setup_logging(os.getenv('REVIEWHUB_LOG_LEVEL', 'WARNING'))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG = {
    'rawg_api_key': '',
    'database_url': '',
    'local_store_path': '.reviewhub_local.json',
    'api_timeout_seconds': 10,
    'latest_count': 6,
    'search_debounce_ms': 300,
    'log_level': 'WARNING',
    'admin_accounts': {},
    'secret_key': '',
}

_ENV_OVERRIDES = {
    'RAWG_API_KEY': 'rawg_api_key',
    'DATABASE_URL': 'database_url',
    'REVIEWHUB_LOG_LEVEL': 'log_level',
    'REVIEWHUB_SECRET_KEY': 'secret_key',
}

_PLACEHOLDER_VALUES = {'DEMO_MODE', 'DEMO_KEY', 'YOUR_RAWG_API_KEY_HERE'}


def is_placeholder_value(value: str) -> bool:
    """Check if a value is a placeholder/demo sentinel that should not be used for real API calls."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_') or value in _PLACEHOLDER_VALUES


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from JSON file with environment variable support.

    A missing or unreadable file yields the defaults.  Environment variables
    take precedence over config file values:

    - RAWG_API_KEY overrides rawg_api_key
    - DATABASE_URL overrides database_url
    - REVIEWHUB_LOG_LEVEL overrides log_level
    - REVIEWHUB_SECRET_KEY overrides secret_key
    """
    config = dict(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if isinstance(data, dict):
                config.update(data)
            else:
                logger.warning("Config file %s is not a JSON object, ignoring it", config_path)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read config file %s: %s", config_path, e)

    for env_name, key in _ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)
    return config


# ---------------------------------------------------------------------------
# RAWG game metadata client
# ---------------------------------------------------------------------------

class RawgAPIClient:
    """Client for the RAWG video game database API"""

    BASE_URL = "https://api.rawg.io/api"
    PAGE_SIZE = 8

    def __init__(self, api_key: str, timeout: int = 10):
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()
        self.details_cache: Dict = {}
        self._log = logging.getLogger('reviewhub.rawg')

    def search(self, query: str) -> List[Dict]:
        """Search games by name.  Queries shorter than 2 characters return
        an empty list without a request."""
        if not query or len(query) < 2:
            return []
        params = {
            'key': self.api_key,
            'search': query,
            'page_size': self.PAGE_SIZE,
        }
        try:
            response = self.session.get(f"{self.BASE_URL}/games", params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json().get('results') or []
        except (requests.RequestException, ValueError) as e:
            self._log.error("RAWG search failed for %r: %s", query, e)
            return []

    def get_details(self, game_id) -> Optional[Dict]:
        """Get detailed information about a specific game"""
        if game_id in self.details_cache:
            return self.details_cache[game_id]
        try:
            response = self.session.get(f"{self.BASE_URL}/games/{game_id}",
                                        params={'key': self.api_key}, timeout=self.timeout)
            response.raise_for_status()
            details = response.json()
        except (requests.RequestException, ValueError) as e:
            self._log.warning("Could not fetch RAWG details for game %s: %s", game_id, e)
            return None
        self.details_cache[game_id] = details
        return details


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------

class ReviewHub:
    """Creates the repositories and services for one configuration."""

    def __init__(self, config: Optional[Dict] = None, session_factory=None,
                 rawg_client=None):
        self._log = logging.getLogger('reviewhub.hub')
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(config or {})
        setup_logging(self.config.get('log_level', 'WARNING'))

        if session_factory is None:
            url = self.config.get('database_url')
            if url and url != database.DATABASE_URL:
                session_factory = database.make_session_factory(url)
            else:
                database.init_db()
                session_factory = database.SessionLocal

        timeout = self.config.get('api_timeout_seconds', 10)
        if rawg_client is None and not is_placeholder_value(self.config.get('rawg_api_key', '')):
            rawg_client = RawgAPIClient(self.config['rawg_api_key'], timeout=timeout)

        self.documents = DocumentReviewRepository(database, session_factory)
        self.local = LocalReviewRepository(self.config.get('local_store_path') or '.reviewhub_local.json')
        self.queries = ReviewQueryService(self.documents, self.local, store_error=database.StoreError)
        self.reviews = ReviewService(self.documents, self.local, store_error=database.StoreError)
        self.metadata = MetadataService(rawg_client)
        if not self.documents.available:
            self._log.warning("Document store unavailable; serving the local fallback store")

    @property
    def latest_count(self) -> int:
        return int(self.config.get('latest_count', 6))

    def live_query(self, on_result) -> LiveQuery:
        """Interactive query controller using the configured debounce and
        fetch timeout.  Its triggers must run on an event loop."""
        return LiveQuery(
            self.queries, on_result,
            debounce_seconds=float(self.config.get('search_debounce_ms', 300)) / 1000.0,
            fetch_timeout=float(self.config.get('api_timeout_seconds', 10)),
        )


# ---------------------------------------------------------------------------
# Command-line interface
# ---------------------------------------------------------------------------

def _rating_color(rating: int) -> str:
    return {'high': Fore.GREEN, 'medium': Fore.YELLOW}.get(present.rating_class(rating), Fore.RED)


def print_card(review) -> None:
    view = present.card(review)
    color = _rating_color(review.rating)
    print(f"{color}{view['rating']:>2}/10{Style.RESET_ALL} "
          f"{Style.BRIGHT}{view['title']}{Style.RESET_ALL} "
          f"{Fore.CYAN}[{view['genre']}] {view['platform_label']}{Style.RESET_ALL} "
          f"- {view['date_display']} ({view['slug']})")


def print_detail(review, related) -> None:
    view = present.detail(review)
    print(f"\n{Style.BRIGHT}{view['title']}{Style.RESET_ALL}")
    print(f"{Fore.CYAN}By {view['author']} on {view['date_display']}")
    print(f"Genre: {view['genre']}  Platform: {view['platforms_display']}")
    stars = ''.join({'full': '★', 'half': '☆', 'empty': '·'}[s] for s in view['stars'])
    print(f"{_rating_color(review.rating)}{view['rating']}/10 {view['rating_label']} {stars}")
    if view['tags']:
        print(f"Tags: {', '.join(view['tags'])}")
    print(f"\n{view['excerpt']}\n")
    if related:
        print(f"{Style.BRIGHT}Related reviews:{Style.RESET_ALL}")
        for other in related:
            print_card(other)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(description='GameReview Hub - browse and manage game reviews')
    parser.add_argument('--config', default='config.json', help='Path to config file')
    sub = parser.add_subparsers(dest='command')

    list_cmd = sub.add_parser('list', help='List reviews with optional filters')
    list_cmd.add_argument('--genre', default='all')
    list_cmd.add_argument('--platform', default='all')
    list_cmd.add_argument('--rating', default='all', help='Inclusive range such as 8-10')
    list_cmd.add_argument('--search', default='')
    list_cmd.add_argument('--sort', default='date-desc')

    latest_cmd = sub.add_parser('latest', help='Show the newest reviews')
    latest_cmd.add_argument('-n', type=int, default=None)

    show_cmd = sub.add_parser('show', help='Show one review')
    show_cmd.add_argument('slug')

    games_cmd = sub.add_parser('search-games', help='Search RAWG for a game')
    games_cmd.add_argument('query')

    export_cmd = sub.add_parser('export', help='Export all reviews to JSON')
    export_cmd.add_argument('path', nargs='?', default=None)

    import_cmd = sub.add_parser('import', help='Import reviews from a JSON file')
    import_cmd.add_argument('path')

    sub.add_parser('stats', help='Show dashboard statistics')

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    use_system_collation()
    hub = ReviewHub(load_config(args.config))

    if args.command == 'list':
        reviews = hub.queries.search({
            'genre': args.genre, 'platform': args.platform,
            'rating': args.rating, 'search': args.search,
        }, args.sort)
        if not reviews:
            print(f"{Fore.YELLOW}No reviews found")
        for review in reviews:
            print_card(review)
        print(f"\n{len(reviews)} review{'s' if len(reviews) != 1 else ''} found")

    elif args.command == 'latest':
        reviews = hub.queries.latest(args.n or hub.latest_count)
        if not reviews:
            print(f"{Fore.YELLOW}No reviews yet")
        for review in reviews:
            print_card(review)

    elif args.command == 'show':
        review = hub.queries.get(args.slug)
        if review is None:
            print(f"{Fore.RED}Review not found: {args.slug}")
            return 1
        print_detail(review, hub.queries.related(review))

    elif args.command == 'search-games':
        if not hub.metadata.enabled:
            print(f"{Fore.RED}RAWG API key not configured")
            return 1
        games = hub.metadata.search(args.query)
        if not games:
            print(f"{Fore.YELLOW}No games found")
        for game in games:
            print(f"{Fore.CYAN}{game['id']:>8}{Style.RESET_ALL} {game['name']} "
                  f"({game['year']}) {', '.join(g for g in game['genres'] if g)}")

    elif args.command == 'export':
        path = args.path or hub.reviews.export_filename()
        try:
            payload = hub.reviews.export_json()
        except database.StoreError as e:
            print(f"{Fore.RED}Export failed: {e}")
            return 1
        with open(path, 'w', encoding='utf-8') as f:
            f.write(payload)
        print(f"{Fore.GREEN}Reviews exported to {path}")

    elif args.command == 'import':
        with open(args.path, 'r', encoding='utf-8') as f:
            ok, value = hub.reviews.import_records(f.read())
        if not ok:
            print(f"{Fore.RED}{value}")
            return 1
        print(f"{Fore.GREEN}Successfully imported {value} reviews!")

    elif args.command == 'stats':
        try:
            stats = hub.reviews.stats()
        except database.StoreError as e:
            print(f"{Fore.RED}Document store unavailable: {e}")
            return 1
        print(f"Total reviews:  {stats['total_reviews']}")
        print(f"Average rating: {stats['avg_rating']}")
        print(f"Featured:       {stats['featured_count']}")
        print(f"Genres:         {stats['genre_count']} ({', '.join(stats['genres'])})")
        print(f"Platforms:      {stats['platform_count']}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
