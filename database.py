#!/usr/bin/env python3
"""
Database models and configuration for GameReview Hub.
Holds the review documents in a single ``reviews`` table (SQLite by default,
PostgreSQL or any other SQLAlchemy URL via ``DATABASE_URL``).
"""

import os
import json
from sqlalchemy import create_engine, Column, String, Boolean, DateTime, Text, Integer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
import logging

logger = logging.getLogger('reviewhub.database')

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///reviewhub.db')
DB_CONNECT_TIMEOUT = int(os.getenv('DB_CONNECT_TIMEOUT', '10'))

Base = declarative_base()


def _connect_args(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'check_same_thread': False}
    if url.startswith('postgresql'):
        return {'connect_timeout': DB_CONNECT_TIMEOUT}
    return {}


try:
    engine = create_engine(DATABASE_URL, echo=False, pool_pre_ping=True,
                           connect_args=_connect_args(DATABASE_URL))
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
except Exception as e:
    logger.warning(f"Database not available, falling back to local store: {e}")
    engine = None
    SessionLocal = None


class StoreError(Exception):
    """Raised when the document store cannot be read or written."""


class ReviewDocument(Base):
    """One review document.  ``id`` is the slug assigned at creation."""
    __tablename__ = "reviews"

    id = Column(String(255), primary_key=True)
    slug = Column(String(255), index=True)
    title = Column(String(500), nullable=False)
    genre = Column(String(100), index=True)
    platform = Column(Text, default='[]')  # JSON array
    rating = Column(Integer, default=0)
    author = Column(String(255))
    date = Column(String(10), index=True)  # ISO YYYY-MM-DD
    featured = Column(Boolean, default=False, index=True)
    cover_image = Column(String(1000), nullable=True)
    header_image = Column(String(1000), nullable=True)
    tags = Column(Text, default='[]')  # JSON array
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    author_avatar = Column(String(1000), nullable=True)
    developers = Column(Text, default='[]')  # JSON array
    publishers = Column(Text, default='[]')  # JSON array
    modes = Column(Text, default='[]')  # JSON array
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(255), nullable=True)
    updated_at = Column(DateTime, nullable=True)
    updated_by = Column(String(255), nullable=True)


# document key -> column attribute
_FIELDS = {
    'slug': 'slug',
    'title': 'title',
    'genre': 'genre',
    'rating': 'rating',
    'author': 'author',
    'date': 'date',
    'featured': 'featured',
    'coverImage': 'cover_image',
    'headerImage': 'header_image',
    'excerpt': 'excerpt',
    'content': 'content',
    'authorAvatar': 'author_avatar',
}
_LIST_FIELDS = ('platform', 'tags', 'developers', 'publishers', 'modes')

_ORDER_COLUMNS = {
    'date': ReviewDocument.date,
    'rating': ReviewDocument.rating,
    'title': ReviewDocument.title,
}


def _load_list(value):
    if not value:
        return []
    try:
        data = json.loads(value)
    except (TypeError, ValueError):
        return [value]
    return data if isinstance(data, list) else [data]


def to_document(row: ReviewDocument) -> dict:
    """Convert a table row into the raw camelCase document shape."""
    doc = {'id': row.id}
    for key, attr in _FIELDS.items():
        doc[key] = getattr(row, attr)
    for key in _LIST_FIELDS:
        doc[key] = _load_list(getattr(row, key))
    doc['slug'] = row.slug or row.id
    doc['createdAt'] = row.created_at.isoformat() if row.created_at else None
    doc['createdBy'] = row.created_by
    doc['updatedAt'] = row.updated_at.isoformat() if row.updated_at else None
    doc['updatedBy'] = row.updated_by
    return doc


def _apply(row: ReviewDocument, record: dict) -> None:
    for key, attr in _FIELDS.items():
        if key in record:
            setattr(row, attr, record[key])
    for key in _LIST_FIELDS:
        if key in record:
            value = record[key]
            if isinstance(value, str):
                value = [value]
            setattr(row, key, json.dumps(list(value or [])))


def _require(db):
    if not db:
        raise StoreError("Database not available")


def make_session_factory(url: str):
    """Create an engine for *url*, make sure the tables exist and return a
    session maker bound to it (``None`` when the database is unreachable)."""
    try:
        bound = create_engine(url, echo=False, pool_pre_ping=True,
                              connect_args=_connect_args(url))
        Base.metadata.create_all(bind=bound)
        return sessionmaker(autocommit=False, autoflush=False, bind=bound)
    except Exception as e:
        logger.warning(f"Database {url} not available: {e}")
        return None


def init_db():
    """Initialize database tables."""
    if engine:
        try:
            Base.metadata.create_all(bind=engine)
            logger.info("Database tables initialized successfully")
            return True
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            return False
    return False


def list_reviews(db, order_by: str = 'date', descending: bool = True, limit: int = None):
    """Return review documents ordered by *order_by*.

    Raises:
        StoreError: when the database is unavailable or the query fails.
    """
    _require(db)
    try:
        column = _ORDER_COLUMNS.get(order_by, ReviewDocument.date)
        query = db.query(ReviewDocument).order_by(column.desc() if descending else column.asc())
        if limit:
            query = query.limit(limit)
        return [to_document(row) for row in query.all()]
    except SQLAlchemyError as e:
        logger.error(f"Error listing reviews: {e}")
        raise StoreError(str(e)) from e


def get_review(db, review_id: str):
    """Return the document for *review_id*, or ``None`` when it does not exist."""
    _require(db)
    try:
        row = db.query(ReviewDocument).filter(ReviewDocument.id == review_id).first()
        if row is None:
            row = db.query(ReviewDocument).filter(ReviewDocument.slug == review_id).first()
        return to_document(row) if row else None
    except SQLAlchemyError as e:
        logger.error(f"Error getting review {review_id}: {e}")
        raise StoreError(str(e)) from e


def put_review(db, review_id: str, record: dict, actor: str = None,
               exclusive_featured: bool = True):
    """Create or update the document *review_id* from *record*.

    When the record is featured and *exclusive_featured* is set, every other
    featured flag is cleared in the same transaction, so the new flag and the
    cleared ones commit together.
    """
    _require(db)
    try:
        row = db.query(ReviewDocument).filter(ReviewDocument.id == review_id).first()
        now = datetime.utcnow()
        if row is None:
            row = ReviewDocument(id=review_id, created_at=now, created_by=actor)
            db.add(row)
        else:
            row.updated_at = now
            row.updated_by = actor
        _apply(row, record)
        if exclusive_featured and record.get('featured') is True:
            cleared = db.query(ReviewDocument).filter(
                ReviewDocument.featured.is_(True),
                ReviewDocument.id != review_id
            ).update({ReviewDocument.featured: False}, synchronize_session=False)
            if cleared:
                logger.info(f"Cleared featured flag on {cleared} review(s)")
        db.commit()
        return True
    except SQLAlchemyError as e:
        logger.error(f"Error saving review {review_id}: {e}")
        db.rollback()
        raise StoreError(str(e)) from e


def delete_review(db, review_id: str):
    """Delete *review_id*.  Returns ``False`` when it did not exist."""
    _require(db)
    try:
        row = db.query(ReviewDocument).filter(ReviewDocument.id == review_id).first()
        if not row:
            return False
        db.delete(row)
        db.commit()
        return True
    except SQLAlchemyError as e:
        logger.error(f"Error deleting review {review_id}: {e}")
        db.rollback()
        raise StoreError(str(e)) from e


def review_ids(db):
    """Return the set of every id and slug in use."""
    _require(db)
    try:
        taken = set()
        for review_id, slug in db.query(ReviewDocument.id, ReviewDocument.slug).all():
            taken.add(review_id)
            if slug:
                taken.add(slug)
        return taken
    except SQLAlchemyError as e:
        logger.error(f"Error listing review ids: {e}")
        raise StoreError(str(e)) from e
