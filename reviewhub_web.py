#!/usr/bin/env python3
"""
GameReview Hub Web - public review site and admin API.
Serves the home page, the filterable review listing and individual review
pages, plus a JSON API for the admin panel.
"""

import logging
import argparse
import hashlib
import hmac
import os
import threading
from functools import wraps
from typing import Dict, Optional

from flask import Flask, Response, jsonify, render_template, request, session

import database
import reviewhub
from app.services import presentation_service as present
from app.services.metadata_service import GENRE_CHOICES, PLATFORM_CHOICES
from app.services.normalizer import AUTHOR_AVATARS
from app.services.query_service import latest, query
from app.services.review_service import MSG_NOT_FOUND
from app.services.sort_service import resolve_sort_key, use_system_collation

CONFIG_PATH = os.getenv('REVIEWHUB_CONFIG', 'config.json')

# Initialize logging early so database module logs are captured
log_level = os.getenv('REVIEWHUB_LOG_LEVEL', 'INFO')
reviewhub.setup_logging(log_level)
web_logger = logging.getLogger('reviewhub.web')
try:
    os.makedirs('logs', exist_ok=True)
    fh = logging.FileHandler('logs/reviewhub_web.log')
    fh.setFormatter(logging.Formatter('[%(asctime)s] %(levelname)s %(name)s: %(message)s'))
    fh.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    web_logger.addHandler(fh)
except OSError:
    web_logger.warning('Could not create log file handler')

app = Flask(__name__)
app.secret_key = os.getenv('REVIEWHUB_SECRET_KEY') or os.urandom(24)

# Global hub instance, created on first use
hub: Optional[reviewhub.ReviewHub] = None
hub_lock = threading.Lock()

SORT_LABELS = {
    'date-desc': 'Newest First',
    'date-asc': 'Oldest First',
    'rating-desc': 'Highest Rated',
    'rating-asc': 'Lowest Rated',
    'title-asc': 'Title A-Z',
    'title-desc': 'Title Z-A',
}
RATING_RANGES = (
    ('9-10', '9+ Masterpiece'),
    ('8-10', '8+ Great'),
    ('7-10', '7+ Good'),
    ('5-10', '5+ Average'),
    ('0-4', 'Below 5'),
)
FILTER_KEYS = ('genre', 'platform', 'rating', 'search')


def get_hub() -> reviewhub.ReviewHub:
    """Return the shared :class:`reviewhub.ReviewHub`, creating it on first use."""
    global hub
    with hub_lock:
        if hub is None:
            config = reviewhub.load_config(CONFIG_PATH)
            hub = reviewhub.ReviewHub(config)
            if config.get('secret_key'):
                app.secret_key = config['secret_key']
            web_logger.info('ReviewHub initialized (document store available: %s)',
                            hub.documents.available)
        return hub


def _filters_from_args() -> Dict[str, str]:
    return {key: request.args.get(key, '' if key == 'search' else 'all') for key in FILTER_KEYS}


def _results_label(count: int) -> str:
    return f"{count} review{'s' if count != 1 else ''} found"


# ===========================================================================================
# Authentication
# ===========================================================================================

def hash_password(password: str) -> str:
    """SHA256 hex digest, the format stored in ``admin_accounts``."""
    return hashlib.sha256(password.encode('utf-8')).hexdigest()


def is_admin(email: Optional[str]) -> bool:
    if not email:
        return False
    return email in (get_hub().config.get('admin_accounts') or {})


def current_user() -> Optional[str]:
    return session.get('user')


def require_admin(f):
    """Decorator to require admin privileges"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = current_user()
        if not user:
            return jsonify({'error': 'Not logged in'}), 401
        if not is_admin(user):
            return jsonify({'error': 'Admin privileges required'}), 403
        return f(*args, **kwargs)
    return decorated_function


@app.route('/api/auth/login', methods=['POST'])
def api_auth_login():
    """Log an admin in.

    Body JSON: {"email": "...", "password": "..."}
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get('email') or '').strip()
    password = str(data.get('password') or '')
    if not email or not password:
        return jsonify({'error': 'Email and password are required'}), 400

    accounts: Dict[str, str] = get_hub().config.get('admin_accounts') or {}
    expected = accounts.get(email)
    if not expected or not hmac.compare_digest(str(expected), hash_password(password)):
        web_logger.warning('Failed login for %s', email)
        return jsonify({'error': 'Invalid email or password'}), 401

    session['user'] = email
    web_logger.info('Admin %s logged in', email)
    return jsonify({'success': True, 'user': email})


@app.route('/api/auth/logout', methods=['POST'])
def api_auth_logout():
    session.pop('user', None)
    return jsonify({'success': True})


@app.route('/api/auth/current', methods=['GET'])
def api_auth_current():
    """Get current logged-in user"""
    user = current_user()
    if not user:
        return jsonify({'user': None}), 401
    return jsonify({'user': user, 'is_admin': is_admin(user)})


# ===========================================================================================
# Public pages
# ===========================================================================================

@app.route('/')
def index():
    """Home page: featured carousel and latest reviews"""
    h = get_hub()
    collection = h.queries.fetch()
    carousel = present.FeaturedCarousel(present.featured_lineup(collection))
    cards = [present.card(r) for r in latest(collection, h.latest_count)]
    return render_template('index.html', slides=carousel.slides(), dots=carousel.dots(), latest=cards)


@app.route('/reviews')
def reviews_page():
    """Filterable review listing"""
    h = get_hub()
    filters = _filters_from_args()
    sort_key = resolve_sort_key(request.args.get('sort'))
    collection = h.queries.fetch()
    cards = [present.card(r) for r in query(collection, filters, sort_key)]
    return render_template(
        'reviews.html',
        reviews=cards,
        results_label=_results_label(len(cards)),
        filters=filters,
        sort=sort_key,
        genres=h.queries.unique_genres(collection),
        platforms=h.queries.unique_platforms(collection),
        sort_labels=SORT_LABELS,
        rating_ranges=RATING_RANGES,
    )


@app.route('/review')
@app.route('/review/<slug>')
def review_page(slug: Optional[str] = None):
    """Individual review page"""
    slug = slug or request.args.get('slug')
    h = get_hub()
    review = h.queries.get(slug) if slug else None
    if review is None:
        return render_template('not_found.html'), 404
    related = [present.card(r) for r in h.queries.related(review)]
    return render_template('review.html', review=present.detail(review), related=related)


@app.route('/admin')
def admin_page():
    """Admin dashboard: stats and recent reviews"""
    user = current_user()
    if not is_admin(user):
        return render_template('admin.html', user=None, stats=None, recent=[])
    h = get_hub()
    try:
        stats = h.reviews.stats()
        recent = [present.card(r) for r in h.queries.latest(5)]
    except database.StoreError as e:
        web_logger.warning('Admin dashboard without document store: %s', e)
        stats, recent = None, []
    return render_template('admin.html', user=user, stats=stats, recent=recent,
                           platforms=PLATFORM_CHOICES, genres=GENRE_CHOICES,
                           authors=list(AUTHOR_AVATARS), rawg_enabled=h.metadata.enabled)


# ===========================================================================================
# Public API
# ===========================================================================================

@app.route('/api/reviews', methods=['GET'])
def api_reviews():
    """Filtered, sorted review cards.

    Query args: genre, platform, rating ("min-max"), search, sort.
    """
    filters = _filters_from_args()
    sort_key = resolve_sort_key(request.args.get('sort'))
    reviews = get_hub().queries.search(filters, sort_key)
    return jsonify({
        'count': len(reviews),
        'label': _results_label(len(reviews)),
        'sort': sort_key,
        'filters': filters,
        'reviews': [present.card(r) for r in reviews],
    })


@app.route('/api/reviews/latest', methods=['GET'])
def api_latest_reviews():
    h = get_hub()
    n = request.args.get('n', default=h.latest_count, type=int)
    return jsonify([present.card(r) for r in h.queries.latest(n)])


@app.route('/api/reviews/featured', methods=['GET'])
def api_featured_reviews():
    """Featured carousel state (newest first).

    Query args: slide (current index, default 0), step ("next" or "prev")
    to move from that slide before rendering.
    """
    carousel = present.FeaturedCarousel(get_hub().queries.featured())
    carousel.go_to(request.args.get('slide', default=0, type=int))
    step = request.args.get('step')
    if step == 'next':
        carousel.next()
    elif step == 'prev':
        carousel.prev()
    return jsonify({
        'count': len(carousel),
        'index': carousel.index,
        'current': carousel.slide(),
        'dots': carousel.dots(),
        'slides': carousel.slides(),
    })


@app.route('/api/reviews/<slug>', methods=['GET'])
def api_review(slug: str):
    """Full review view model plus up to three related review cards."""
    h = get_hub()
    review = h.queries.get(slug)
    if review is None:
        return jsonify({'error': 'Review not found'}), 404
    view = present.detail(review)
    view['related'] = [present.card(r) for r in h.queries.related(review)]
    return jsonify(view)


@app.route('/api/filters', methods=['GET'])
def api_filter_options():
    """Options for the listing page dropdowns."""
    h = get_hub()
    collection = h.queries.fetch()
    return jsonify({
        'genres': h.queries.unique_genres(collection),
        'platforms': h.queries.unique_platforms(collection),
        'ratings': [{'value': v, 'label': label} for v, label in RATING_RANGES],
        'sorts': [{'value': v, 'label': label} for v, label in SORT_LABELS.items()],
    })


# ===========================================================================================
# Admin API
# ===========================================================================================

def _store_unavailable(e):
    web_logger.error('Document store unavailable: %s', e)
    return jsonify({'error': 'Review database is unavailable, please try again later'}), 503


@app.route('/api/admin/stats', methods=['GET'])
@require_admin
def api_admin_stats():
    try:
        return jsonify(get_hub().reviews.stats())
    except database.StoreError as e:
        return _store_unavailable(e)


@app.route('/api/admin/reviews', methods=['GET'])
@require_admin
def api_admin_reviews():
    """Admin table rows, optionally searched by title, genre or author."""
    try:
        documents = get_hub().reviews.admin_search(request.args.get('search', ''))
    except database.StoreError as e:
        return _store_unavailable(e)
    return jsonify({'count': len(documents), 'reviews': documents})


@app.route('/api/admin/reviews/<review_id>', methods=['GET'])
@require_admin
def api_admin_get_review(review_id: str):
    """Raw review document for the edit form."""
    try:
        document = get_hub().reviews.get(review_id)
    except database.StoreError as e:
        return _store_unavailable(e)
    if document is None:
        return jsonify({'error': 'Review not found'}), 404
    return jsonify(document)


@app.route('/api/admin/reviews', methods=['POST'])
@require_admin
def api_admin_add_review():
    """Create a review from the admin form (JSON body)."""
    data = request.get_json(silent=True) or {}
    ok, value = get_hub().reviews.add(data, actor=current_user())
    if not ok:
        return jsonify({'error': value}), 400
    return jsonify({'success': True, 'id': value, 'message': 'Review added successfully!'}), 201


@app.route('/api/admin/reviews/<review_id>', methods=['PUT'])
@require_admin
def api_admin_update_review(review_id: str):
    data = request.get_json(silent=True) or {}
    ok, value = get_hub().reviews.update(review_id, data, actor=current_user())
    if not ok:
        status = 404 if value == MSG_NOT_FOUND else 400
        return jsonify({'error': value}), status
    return jsonify({'success': True, 'id': value, 'message': 'Review updated successfully!'})


@app.route('/api/admin/reviews/<review_id>', methods=['DELETE'])
@require_admin
def api_admin_delete_review(review_id: str):
    ok, value = get_hub().reviews.remove(review_id)
    if not ok:
        status = 404 if value == MSG_NOT_FOUND else 503
        return jsonify({'error': value}), status
    return jsonify({'success': True, 'message': 'Review deleted successfully.'})


@app.route('/api/admin/export', methods=['GET'])
@require_admin
def api_admin_export():
    """Download every review as a JSON file."""
    h = get_hub()
    try:
        payload = h.reviews.export_json()
    except database.StoreError as e:
        return _store_unavailable(e)
    filename = h.reviews.export_filename()
    return Response(payload, mimetype='application/json',
                    headers={'Content-Disposition': f'attachment; filename={filename}'})


@app.route('/api/admin/import', methods=['POST'])
@require_admin
def api_admin_import():
    """Import reviews from an uploaded JSON file or a JSON array body."""
    upload = request.files.get('file')
    payload = upload.read() if upload else request.get_json(silent=True)
    ok, value = get_hub().reviews.import_records(payload, actor=current_user())
    if not ok:
        return jsonify({'error': value}), 400
    return jsonify({'success': True, 'imported': value,
                    'message': f'Successfully imported {value} reviews!'})


@app.route('/api/admin/reset', methods=['POST'])
@require_admin
def api_admin_reset():
    """Clear the local fallback store."""
    get_hub().reviews.reset_local()
    return jsonify({'success': True, 'message': 'All data has been reset to defaults.'})


@app.route('/api/admin/games/search', methods=['GET'])
@require_admin
def api_admin_game_search():
    """RAWG game search for the auto-fill picker."""
    h = get_hub()
    if not h.metadata.enabled:
        return jsonify({'error': 'RAWG API key not configured'}), 503
    games = h.metadata.search(request.args.get('q', ''))
    return jsonify({'count': len(games), 'games': games})


@app.route('/api/admin/games/<game_id>/autofill', methods=['GET'])
@require_admin
def api_admin_game_autofill(game_id: str):
    """Form values derived from one RAWG game."""
    h = get_hub()
    if not h.metadata.enabled:
        return jsonify({'error': 'RAWG API key not configured'}), 503
    form = h.metadata.autofill(game_id)
    if form is None:
        return jsonify({'error': 'Failed to load game details'}), 502
    return jsonify(form)


def main():
    """Main entry point for the web server"""
    global CONFIG_PATH
    parser = argparse.ArgumentParser(description='GameReview Hub Web')
    parser.add_argument('--config', default=CONFIG_PATH, help='Path to config file')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    args = parser.parse_args()

    CONFIG_PATH = args.config
    use_system_collation()
    get_hub()

    print("\n" + "=" * 60)
    print("GameReview Hub is starting...")
    print("=" * 60)
    print(f"\nOpen your browser and go to:\n  http://{args.host}:{args.port}")
    print("\nPress Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    try:
        app.run(host=args.host, port=args.port, debug=False)
    except KeyboardInterrupt:
        print("\nGameReview Hub stopped")


if __name__ == "__main__":
    main()
