#!/usr/bin/env python3
"""
Tests for the document store, the local fallback store and the admin
review service.

Run with:
    python -m pytest tests/test_stores.py
"""
import datetime
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
from app.repositories import DocumentReviewRepository, LocalReviewRepository
from app.services import ReviewQueryService, ReviewService
from app.services.review_service import (
    MSG_INVALID_IMPORT, MSG_NO_PLATFORM, MSG_NOT_FOUND, MSG_RATING, MSG_REQUIRED, MSG_TITLE,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_session_factory():
    engine = create_engine('sqlite:///:memory:',
                           connect_args={'check_same_thread': False},
                           poolclass=StaticPool)
    database.Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


def form(**overrides):
    data = {
        'title': 'Hollow Knight',
        'genre': 'Metroidvania',
        'platform': ['PC', 'Nintendo Switch'],
        'rating': '9',
        'author': 'Jordan',
        'date': '2024-04-01',
        'content': '<p>A haunting descent into Hallownest.</p>',
        'tags': 'Indie, Hard',
    }
    data.update(overrides)
    return data


class TmpDirMixin(unittest.TestCase):
    """Creates a fresh temp directory for each test."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.tmp, name)


# ===========================================================================
# database module
# ===========================================================================

class TestDatabaseHelpers(unittest.TestCase):

    def setUp(self):
        self.Session = make_session_factory()
        self.db = self.Session()

    def tearDown(self):
        self.db.close()

    def test_put_and_get_round_trip_lists(self):
        database.put_review(self.db, 'halo', {'title': 'Halo', 'slug': 'halo',
                                              'platform': ['Xbox One', 'PC'], 'date': '2024-01-01'})
        doc = database.get_review(self.db, 'halo')
        self.assertEqual(doc['platform'], ['Xbox One', 'PC'])
        self.assertEqual(doc['title'], 'Halo')
        self.assertIsNotNone(doc['createdAt'])

    def test_get_by_slug(self):
        database.put_review(self.db, 'halo', {'title': 'Halo Infinite', 'slug': 'halo-infinite'})
        self.assertEqual(database.get_review(self.db, 'halo-infinite')['id'], 'halo')
        self.assertIsNone(database.get_review(self.db, 'missing'))

    def test_featured_is_exclusive(self):
        database.put_review(self.db, 'a', {'title': 'A', 'featured': True})
        database.put_review(self.db, 'b', {'title': 'B', 'featured': True})
        featured = [d['id'] for d in database.list_reviews(self.db) if d['featured']]
        self.assertEqual(featured, ['b'])

    def test_featured_not_exclusive_when_disabled(self):
        database.put_review(self.db, 'a', {'title': 'A', 'featured': True})
        database.put_review(self.db, 'b', {'title': 'B', 'featured': True}, exclusive_featured=False)
        self.assertEqual(sum(1 for d in database.list_reviews(self.db) if d['featured']), 2)

    def test_list_orders_by_date_desc(self):
        database.put_review(self.db, 'old', {'title': 'Old', 'date': '2020-01-01'})
        database.put_review(self.db, 'new', {'title': 'New', 'date': '2024-01-01'})
        self.assertEqual([d['id'] for d in database.list_reviews(self.db)], ['new', 'old'])
        self.assertEqual(len(database.list_reviews(self.db, limit=1)), 1)

    def test_delete(self):
        database.put_review(self.db, 'a', {'title': 'A'})
        self.assertTrue(database.delete_review(self.db, 'a'))
        self.assertFalse(database.delete_review(self.db, 'a'))

    def test_missing_session_raises_store_error(self):
        with self.assertRaises(database.StoreError):
            database.list_reviews(None)


class TestDocumentRepository(unittest.TestCase):

    def test_unavailable_store_raises(self):
        repo = DocumentReviewRepository(database, session_factory=None)
        repo._session_factory = None
        self.assertFalse(repo.available)
        with self.assertRaises(database.StoreError):
            repo.list()

    def test_session_open_failure_raises_store_error(self):
        repo = DocumentReviewRepository(database, MagicMock(side_effect=RuntimeError('boom')))
        with self.assertRaises(database.StoreError):
            repo.get('x')

    def test_taken_slugs(self):
        repo = DocumentReviewRepository(database, make_session_factory())
        repo.put('a', {'title': 'A', 'slug': 'a-renamed'})
        self.assertEqual(repo.taken_slugs(), {'a', 'a-renamed'})


# ===========================================================================
# Local store
# ===========================================================================

class TestLocalReviewRepository(TmpDirMixin):

    def test_starts_empty(self):
        self.assertEqual(LocalReviewRepository(self._path('local.json')).get(), [])

    def test_set_persists(self):
        path = self._path('local.json')
        LocalReviewRepository(path).set('gameReviews', [{'title': 'A'}])
        self.assertEqual(LocalReviewRepository(path).get('gameReviews'), [{'title': 'A'}])

    def test_corrupt_file_is_ignored(self):
        path = self._path('local.json')
        with open(path, 'w') as fh:
            fh.write('{not json')
        self.assertEqual(LocalReviewRepository(path).get(), [])

    def test_clear(self):
        repo = LocalReviewRepository(self._path('local.json'))
        repo.set('gameReviews', [{'title': 'A'}])
        self.assertTrue(repo.clear())
        self.assertFalse(repo.clear())
        self.assertEqual(repo.get(), [])


# ===========================================================================
# Query service
# ===========================================================================

class TestReviewQueryService(TmpDirMixin):

    def setUp(self):
        super().setUp()
        self.local = LocalReviewRepository(self._path('local.json'))
        self.documents = DocumentReviewRepository(database, make_session_factory())

    def _service(self, documents=None):
        return ReviewQueryService(documents or self.documents, self.local,
                                  store_error=database.StoreError)

    def test_fetch_refreshes_local_copy(self):
        self.documents.put('a', {'title': 'A', 'platform': ['PC']})
        reviews = self._service().fetch()
        self.assertEqual([r.title for r in reviews], ['A'])
        self.assertEqual(self.local.get()[0]['title'], 'A')

    def test_falls_back_to_local_store(self):
        self.local.set('gameReviews', [{'id': 'cached', 'title': 'Cached', 'platform': ['PC']}])
        broken = MagicMock()
        broken.list.side_effect = database.StoreError('offline')
        broken.get.side_effect = database.StoreError('offline')
        service = self._service(broken)
        self.assertEqual([r.title for r in service.fetch()], ['Cached'])
        self.assertEqual(service.get('cached').title, 'Cached')
        self.assertIsNone(service.get('nope'))

    def test_unchanged_collection_does_not_rewrite_local_copy(self):
        self.documents.put('a', {'title': 'A', 'platform': ['PC']})
        service = self._service()
        with patch.object(self.local, 'set', wraps=self.local.set) as local_set:
            service.fetch()
            service.fetch()
            self.assertEqual(local_set.call_count, 1)
            self.documents.put('b', {'title': 'B', 'platform': ['PC']})
            service.fetch()
            self.assertEqual(local_set.call_count, 2)

    def test_fallback_blob_with_out_of_range_rating(self):
        with open(self._path('blob.json'), 'w') as fh:
            fh.write('{"gameReviews": [{"id": "a", "title": "A", "rating": 1e999}]}')
        self.local = LocalReviewRepository(self._path('blob.json'))
        broken = MagicMock()
        broken.list.side_effect = database.StoreError('offline')
        reviews = self._service(broken).fetch()
        self.assertEqual([(r.id, r.rating) for r in reviews], [('a', 0)])

    def test_search_and_filter_options(self):
        self.documents.put('a', {'title': 'A', 'genre': 'RPG', 'platform': ['PC'], 'rating': 9})
        self.documents.put('b', {'title': 'B', 'genre': 'Sports', 'platform': ['PS5'], 'rating': 4})
        service = self._service()
        self.assertEqual([r.title for r in service.search({'rating': '8-10'})], ['A'])
        self.assertEqual(service.unique_genres(), ['RPG', 'Sports'])
        self.assertEqual(service.unique_platforms(), ['PC', 'PS5'])


# ===========================================================================
# Review service
# ===========================================================================

class TestReviewService(TmpDirMixin):

    def setUp(self):
        super().setUp()
        self.local = LocalReviewRepository(self._path('local.json'))
        self.repo = DocumentReviewRepository(database, make_session_factory())
        self.service = ReviewService(self.repo, self.local, store_error=database.StoreError)

    def test_validation_messages(self):
        self.assertEqual(self.service.add(form(platform=[]))[1], MSG_NO_PLATFORM)
        self.assertEqual(self.service.add(form(author=''))[1], MSG_REQUIRED)
        self.assertEqual(self.service.add(form(rating=''))[1], MSG_REQUIRED)
        self.assertEqual(self.service.add(form(rating='11'))[1], MSG_RATING)
        self.assertEqual(self.service.add(form(rating='7.5'))[1], MSG_RATING)
        self.assertEqual(self.service.add(form(title='???'))[1], MSG_TITLE)
        self.assertEqual(self.repo.list(), [])

    def test_add_builds_record(self):
        ok, slug = self.service.add(form(), actor='admin@example.com')
        self.assertTrue(ok)
        self.assertEqual(slug, 'hollow-knight')
        doc = self.service.get(slug)
        self.assertEqual(doc['rating'], 9)
        self.assertEqual(doc['tags'], ['Indie', 'Hard'])
        self.assertEqual(doc['excerpt'], 'A haunting descent into Hallownest.')
        self.assertFalse(doc['featured'])

    def test_add_defaults_date_to_today(self):
        ok, slug = self.service.add(form(date=''))
        self.assertTrue(ok)
        self.assertEqual(self.service.get(slug)['date'], datetime.date.today().isoformat())

    def test_duplicate_titles_get_unique_slugs(self):
        self.assertEqual(self.service.add(form())[1], 'hollow-knight')
        self.assertEqual(self.service.add(form())[1], 'hollow-knight-2')

    def test_update_keeps_id_and_regenerates_slug(self):
        _, review_id = self.service.add(form())
        ok, value = self.service.update(review_id, form(title='Hollow Knight Silksong'))
        self.assertTrue(ok)
        self.assertEqual(value, review_id)
        doc = self.service.get(review_id)
        self.assertEqual(doc['slug'], 'hollow-knight-silksong')
        self.assertEqual(self.service.get('hollow-knight-silksong')['id'], review_id)

    def test_update_missing(self):
        self.assertEqual(self.service.update('nope', form()), (False, MSG_NOT_FOUND))

    def test_featured_add_clears_others(self):
        self.service.add(form(title='First', featured=True))
        self.service.add(form(title='Second', featured='on'))
        featured = [d['title'] for d in self.service.all_documents() if d['featured']]
        self.assertEqual(featured, ['Second'])

    def test_remove(self):
        _, review_id = self.service.add(form())
        self.assertEqual(self.service.remove(review_id), (True, review_id))
        self.assertEqual(self.service.remove(review_id), (False, MSG_NOT_FOUND))

    def test_stats(self):
        self.service.add(form(rating=9, genre='RPG', featured=True))
        self.service.add(form(title='Other', rating=6, genre='Puzzle', platform=['PC']))
        stats = self.service.stats()
        self.assertEqual(stats['total_reviews'], 2)
        self.assertEqual(stats['avg_rating'], 7.5)
        self.assertEqual(stats['featured_count'], 1)
        self.assertEqual(stats['genres'], ['Puzzle', 'RPG'])
        self.assertEqual(stats['platform_count'], 2)

    def test_stats_empty(self):
        self.assertEqual(self.service.stats()['avg_rating'], 0)

    def test_recent_and_admin_search(self):
        for day in range(1, 8):
            self.service.add(form(title=f'Game {day}', date=f'2024-01-0{day}'))
        recent = self.service.recent()
        self.assertEqual(len(recent), 5)
        self.assertEqual(recent[0]['title'], 'Game 7')
        self.assertEqual([d['title'] for d in self.service.admin_search('game 3')], ['Game 3'])
        self.assertEqual(len(self.service.admin_search('jordan')), 7)

    def test_export_filename(self):
        self.assertEqual(ReviewService.export_filename(datetime.date(2024, 5, 17)),
                         'gamereviewhub-reviews-2024-05-17.json')

    def test_export_then_import(self):
        self.service.add(form(featured=True))
        self.service.add(form(title='Celeste', featured=True))
        payload = self.service.export_json()
        self.assertEqual(len(json.loads(payload)), 2)

        other = ReviewService(DocumentReviewRepository(database, make_session_factory()))
        ok, count = other.import_records(payload)
        self.assertTrue(ok)
        self.assertEqual(count, 2)
        self.assertEqual(len(other.all_documents()), 2)

    def test_import_invalid(self):
        self.assertEqual(self.service.import_records('{"not": "a list"}'), (False, MSG_INVALID_IMPORT))
        self.assertEqual(self.service.import_records('garbage'), (False, MSG_INVALID_IMPORT))

    def test_import_skips_invalid_entries(self):
        ok, count = self.service.import_records([form(), {'title': 'Incomplete'}, 'junk'])
        self.assertEqual((ok, count), (True, 1))

    def test_reset_local(self):
        self.local.set('gameReviews', [{'title': 'A'}])
        self.assertTrue(self.service.reset_local())
        self.assertEqual(self.local.get(), [])

    def test_store_failure_is_reported(self):
        broken = MagicMock()
        broken.taken_slugs.side_effect = database.StoreError('offline')
        service = ReviewService(broken, store_error=database.StoreError)
        self.assertEqual(service.add(form()), (False, 'offline'))


if __name__ == '__main__':
    unittest.main()
