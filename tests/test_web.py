#!/usr/bin/env python3
"""
Flask route tests for the public site and the admin API.

Run with:
    python -m pytest tests/test_web.py
"""
import io
import json
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import database
import reviewhub
import reviewhub_web
from app.services import MetadataService

ADMIN = 'admin@example.com'
PASSWORD = 'hunter2'


def review_form(**overrides):
    data = {
        'title': 'Elden Ring',
        'genre': 'Action RPG',
        'platform': ['PC', 'PS5'],
        'rating': 10,
        'author': 'Alex',
        'date': '2024-02-01',
        'content': '<p>FromSoftware at its peak.</p>',
        'featured': True,
    }
    data.update(overrides)
    return data


class WebTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        engine = create_engine('sqlite:///:memory:',
                               connect_args={'check_same_thread': False},
                               poolclass=StaticPool)
        database.Base.metadata.create_all(engine)
        self.rawg = MagicMock()
        config = {
            'local_store_path': os.path.join(self.tmp, 'local.json'),
            'admin_accounts': {ADMIN: reviewhub_web.hash_password(PASSWORD)},
        }
        self.hub = reviewhub.ReviewHub(config, session_factory=sessionmaker(bind=engine),
                                       rawg_client=self.rawg)
        self.hub.reviews.add(review_form())
        self.hub.reviews.add(review_form(title="Baldur's Gate 3", genre='RPG', platform=['PC'],
                                         rating=9, date='2024-03-15', featured=False))
        self.hub.reviews.add(review_form(title='FIFA 24', genre='Sports', platform=['PS5'],
                                         rating=5, date='2024-01-10', featured=False))

        patcher = patch.object(reviewhub_web, 'hub', self.hub)
        patcher.start()
        self.addCleanup(patcher.stop)
        reviewhub_web.app.config['TESTING'] = True
        self.client = reviewhub_web.app.test_client()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def login(self, email=ADMIN, password=PASSWORD):
        return self.client.post('/api/auth/login', json={'email': email, 'password': password})


class TestPublicRoutes(WebTestCase):

    def test_home_page(self):
        resp = self.client.get('/')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Elden Ring', resp.data)
        self.assertIn(b'Featured Review', resp.data)

    def test_reviews_page_filters(self):
        resp = self.client.get('/reviews?genre=RPG')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'1 review found', resp.data)

    def test_review_page_and_not_found(self):
        resp = self.client.get('/review/elden-ring')
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Elden Ring Review - GameReview Hub', resp.data)
        self.assertIn(b'<p>FromSoftware at its peak.</p>', resp.data)
        self.assertEqual(self.client.get('/review?slug=elden-ring').status_code, 200)
        self.assertEqual(self.client.get('/review/nope').status_code, 404)
        self.assertEqual(self.client.get('/review').status_code, 404)

    def test_api_reviews(self):
        data = self.client.get('/api/reviews?platform=PC&sort=rating-asc').get_json()
        self.assertEqual(data['count'], 2)
        self.assertEqual([r['slug'] for r in data['reviews']], ['baldur-s-gate-3', 'elden-ring'])
        self.assertEqual(data['label'], '2 reviews found')

    def test_api_reviews_rating_range(self):
        data = self.client.get('/api/reviews?rating=0-6').get_json()
        self.assertEqual([r['slug'] for r in data['reviews']], ['fifa-24'])

    def test_api_latest(self):
        data = self.client.get('/api/reviews/latest?n=2').get_json()
        self.assertEqual([r['slug'] for r in data], ['baldur-s-gate-3', 'elden-ring'])

    def test_api_featured(self):
        data = self.client.get('/api/reviews/featured').get_json()
        self.assertEqual(data['count'], 1)
        self.assertEqual(data['slides'][0]['badge'], 'Featured Review')

    def test_carousel_navigation(self):
        self.hub.reviews.import_records([review_form(title='Hades', date='2024-05-01')])
        data = self.client.get('/api/reviews/featured?slide=0&step=next').get_json()
        self.assertEqual(data['count'], 2)
        self.assertEqual(data['index'], 1)
        self.assertEqual(data['current']['slug'], 'elden-ring')
        self.assertEqual(data['current']['badge'], 'Featured Review 2 of 2')
        self.assertEqual([d['active'] for d in data['dots']], [False, True])
        data = self.client.get('/api/reviews/featured?step=prev').get_json()
        self.assertEqual(data['current']['slug'], 'elden-ring')

        page = self.client.get('/').data
        self.assertEqual(page.count(b'class="dot active"'), 1)
        self.assertEqual(page.count(b'class="dot"'), 1)

    def test_api_review_detail(self):
        data = self.client.get('/api/reviews/baldur-s-gate-3').get_json()
        self.assertEqual(data['rating_label'], 'Masterpiece')
        self.assertEqual([r['slug'] for r in data['related']], ['elden-ring'])
        resp = self.client.get('/api/reviews/missing')
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.get_json()['error'], 'Review not found')

    def test_api_filters(self):
        data = self.client.get('/api/filters').get_json()
        self.assertEqual(data['genres'], ['Action RPG', 'RPG', 'Sports'])
        self.assertEqual(data['platforms'], ['PC', 'PS5'])

    def test_store_outage_serves_local_copy(self):
        self.client.get('/api/reviews')
        self.hub.documents._session_factory = None
        data = self.client.get('/api/reviews').get_json()
        self.assertEqual(data['count'], 3)


class TestAuth(WebTestCase):

    def test_login_logout(self):
        self.assertEqual(self.login().status_code, 200)
        self.assertEqual(self.client.get('/api/auth/current').get_json()['user'], ADMIN)
        self.client.post('/api/auth/logout')
        self.assertEqual(self.client.get('/api/auth/current').status_code, 401)

    def test_bad_password(self):
        self.assertEqual(self.login(password='wrong').status_code, 401)
        self.assertEqual(self.client.post('/api/auth/login', json={}).status_code, 400)

    def test_admin_api_requires_login(self):
        self.assertEqual(self.client.get('/api/admin/stats').status_code, 401)
        with self.client.session_transaction() as sess:
            sess['user'] = 'someone@example.com'
        self.assertEqual(self.client.get('/api/admin/stats').status_code, 403)

    def test_admin_page(self):
        page = self.client.get('/admin').data
        self.assertIn(b'Admin Login', page)
        self.assertNotIn(b'id="review-form"', page)
        self.login()
        page = self.client.get('/admin').data.decode('utf-8')
        self.assertIn('Total Reviews', page)
        self.assertIn('<strong id="stat-platforms">2</strong>', page)
        for element in ('id="review-form"', 'id="review-featured"', 'id="admin-search"',
                        'id="reviews-table-body"', 'id="import-form"', 'id="reset-local"',
                        'id="rawg-search"'):
            self.assertIn(element, page)
        self.assertIn('<input type="checkbox" name="platform" value="PC">', page)
        self.assertIn('<option value="Action RPG">', page)
        for endpoint in ('/api/admin/reviews', '/api/admin/import', '/api/admin/reset',
                         '/api/admin/games/search'):
            self.assertIn(endpoint, page)

    def test_admin_page_without_rawg(self):
        self.hub.metadata = MetadataService(None)
        self.login()
        self.assertNotIn(b'id="rawg-search"', self.client.get('/admin').data)


class TestAdminAPI(WebTestCase):

    def setUp(self):
        super().setUp()
        self.login()

    def test_stats(self):
        data = self.client.get('/api/admin/stats').get_json()
        self.assertEqual(data['total_reviews'], 3)
        self.assertEqual(data['avg_rating'], 8.0)
        self.assertEqual(data['featured_count'], 1)

    def test_create_validation_error(self):
        resp = self.client.post('/api/admin/reviews', json=review_form(platform=[]))
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()['error'], 'Please select at least one platform.')

    def test_create_featured_clears_previous(self):
        resp = self.client.post('/api/admin/reviews', json=review_form(title='Hades', featured=True))
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.get_json()['id'], 'hades')
        featured = self.client.get('/api/reviews/featured').get_json()['slides']
        self.assertEqual([s['slug'] for s in featured], ['hades'])

    def test_update_and_delete(self):
        resp = self.client.put('/api/admin/reviews/fifa-24', json=review_form(
            title='FIFA 24', genre='Sports', platform=['PS5'], rating=6, featured=False))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get('/api/admin/reviews/fifa-24').get_json()['rating'], 6)
        self.assertEqual(self.client.delete('/api/admin/reviews/fifa-24').status_code, 200)
        self.assertEqual(self.client.delete('/api/admin/reviews/fifa-24').status_code, 404)
        self.assertEqual(self.client.put('/api/admin/reviews/fifa-24',
                                         json=review_form()).status_code, 404)

    def test_admin_search(self):
        data = self.client.get('/api/admin/reviews?search=sports').get_json()
        self.assertEqual([d['id'] for d in data['reviews']], ['fifa-24'])

    def test_export_import(self):
        resp = self.client.get('/api/admin/export')
        self.assertEqual(resp.status_code, 200)
        self.assertIn('attachment; filename=gamereviewhub-reviews-', resp.headers['Content-Disposition'])
        exported = json.loads(resp.data)
        self.assertEqual(len(exported), 3)

        upload = {'file': (io.BytesIO(resp.data), 'reviews.json')}
        resp = self.client.post('/api/admin/import', data=upload, content_type='multipart/form-data')
        self.assertEqual(resp.get_json()['imported'], 3)
        self.assertEqual(self.client.get('/api/admin/stats').get_json()['total_reviews'], 6)

    def test_import_invalid(self):
        resp = self.client.post('/api/admin/import', json={'not': 'a list'})
        self.assertEqual(resp.status_code, 400)

    def test_reset_local(self):
        self.client.get('/api/reviews')
        self.assertTrue(self.hub.local.get())
        self.client.post('/api/admin/reset')
        self.assertEqual(self.hub.local.get(), [])

    def test_game_search_and_autofill(self):
        self.rawg.search.return_value = [{'id': 1, 'name': 'Hades', 'released': '2020-09-17'}]
        data = self.client.get('/api/admin/games/search?q=hades').get_json()
        self.assertEqual(data['games'][0]['year'], '2020')

        self.rawg.get_details.return_value = {'name': 'Hades', 'genres': [{'slug': 'indie', 'name': 'Indie'}]}
        self.assertEqual(self.client.get('/api/admin/games/1/autofill').get_json()['genre'], 'Indie')

        self.rawg.get_details.return_value = None
        self.assertEqual(self.client.get('/api/admin/games/1/autofill').status_code, 502)

    def test_store_outage_returns_503(self):
        self.hub.documents._session_factory = None
        self.assertEqual(self.client.get('/api/admin/stats').status_code, 503)


if __name__ == '__main__':
    unittest.main()
