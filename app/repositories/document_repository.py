"""Repository over the SQLAlchemy-backed review document store."""
import logging
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Set


class DocumentReviewRepository:
    """Opens one session per call and delegates to the ``database`` module's
    helper functions.

    Every method raises ``database.StoreError`` when the store is unreachable
    so that callers can decide whether to fall back.
    """

    def __init__(self, db_module, session_factory: Optional[Callable] = None) -> None:
        """
        Args:
            db_module:       The imported ``database`` module (or any object
                             exposing ``list_reviews``, ``get_review``,
                             ``put_review``, ``delete_review``, ``review_ids``
                             and ``StoreError``).
            session_factory: Session maker; defaults to
                             ``db_module.SessionLocal``.
        """
        self._db = db_module
        self._session_factory = session_factory if session_factory is not None \
            else getattr(db_module, 'SessionLocal', None)
        self._log = logging.getLogger('reviewhub.repository.DocumentReviewRepository')

    @property
    def available(self) -> bool:
        return self._session_factory is not None

    @contextmanager
    def _session(self):
        if self._session_factory is None:
            raise self._db.StoreError("Database not available")
        try:
            db = self._session_factory()
        except Exception as exc:
            self._log.error("Could not open database session: %s", exc)
            raise self._db.StoreError(str(exc)) from exc
        try:
            yield db
        finally:
            db.close()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def list(self, order_by: str = 'date', limit: Optional[int] = None) -> List[Dict]:
        """Return every review document, newest *order_by* first."""
        with self._session() as db:
            return self._db.list_reviews(db, order_by=order_by, limit=limit)

    def get(self, review_id: str) -> Optional[Dict]:
        """Return the document for *review_id* (id or slug), or ``None``."""
        with self._session() as db:
            return self._db.get_review(db, review_id)

    def put(self, review_id: str, record: Dict, actor: Optional[str] = None,
            exclusive_featured: bool = True) -> bool:
        with self._session() as db:
            return self._db.put_review(db, review_id, record, actor=actor,
                                       exclusive_featured=exclusive_featured)

    def delete(self, review_id: str) -> bool:
        """Remove *review_id*.  Returns ``True`` if it existed."""
        with self._session() as db:
            return self._db.delete_review(db, review_id)

    def taken_slugs(self) -> Set[str]:
        with self._session() as db:
            return self._db.review_ids(db)
