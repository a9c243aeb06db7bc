"""Review query orchestration.

Three layers live here:

* :func:`query` / :func:`latest` - pure functions over an in-memory
  collection (filter, then stable sort, then optional prefix-take).
* :class:`ReviewQueryService` - synchronous access used by the web layer and
  the CLI.  Prefers the document store and silently falls back to the local
  store when the document store raises ``StoreError``.
* :class:`LiveQuery` - asyncio controller for interactive re-querying with a
  debounced search field and "last triggered wins" result delivery.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional, Sequence

from ..models import Review
from ..repositories.local_repository import DEFAULT_KEY
from .filter_service import FilterSpec, filter_reviews
from .normalizer import normalize_record, normalize_records
from .presentation_service import featured_lineup
from .presentation_service import related as related_reviews
from .sort_service import DEFAULT_SORT, resolve_sort_key, sort_reviews

logger = logging.getLogger('reviewhub.query')

DEFAULT_LATEST_COUNT = 6
DEFAULT_DEBOUNCE_SECONDS = 0.3
DEFAULT_FETCH_TIMEOUT = 10.0


# ---------------------------------------------------------------------------
# Pure pipeline
# ---------------------------------------------------------------------------

def query(collection: Sequence[Review], filter_spec=None,
          sort_key: Optional[str] = None) -> List[Review]:
    """Filter *collection* with *filter_spec* and order it by *sort_key*."""
    return sort_reviews(filter_reviews(collection, filter_spec), sort_key)


def latest(collection: Sequence[Review], n: int = DEFAULT_LATEST_COUNT) -> List[Review]:
    """The *n* newest reviews: a full ``date-desc`` sort truncated to *n*."""
    return query(collection, None, DEFAULT_SORT)[:max(n, 0)]


# ---------------------------------------------------------------------------
# Synchronous service
# ---------------------------------------------------------------------------

class ReviewQueryService:
    """Read side of the site: fetch, search, latest, featured, related.

    Args:
        documents:    :class:`~app.repositories.document_repository.DocumentReviewRepository`.
        local:        :class:`~app.repositories.local_repository.LocalReviewRepository`.
        store_error:  Exception type raised by *documents* when unreachable.
        fallback_key: Key of the collection blob in the local store.
    """

    def __init__(self, documents, local, store_error=Exception,
                 fallback_key: str = DEFAULT_KEY) -> None:
        self._documents = documents
        self._local = local
        self._store_error = store_error
        self._key = fallback_key

    @property
    def store_error(self):
        return self._store_error

    def fetch_remote(self) -> List[Review]:
        """Read the whole collection from the document store.

        A successful read also refreshes the local fallback copy when the
        collection differs from what it holds.

        Raises:
            StoreError: when the document store is unreachable.
        """
        documents = self._documents.list(order_by='date')
        if self._local is not None and self._local.get(self._key) != documents:
            try:
                self._local.set(self._key, documents)
            except (IOError, OSError, TypeError, ValueError) as exc:
                logger.warning("Could not refresh local fallback store: %s", exc)
        return normalize_records(documents)

    def fetch_local(self) -> List[Review]:
        if self._local is None:
            return []
        return normalize_records(self._local.get(self._key))

    def fetch(self) -> List[Review]:
        """Best-effort collection: document store first, local store second."""
        try:
            return self.fetch_remote()
        except self._store_error as exc:
            logger.warning("Document store unavailable, using local fallback: %s", exc)
            return self.fetch_local()

    def get(self, slug: str) -> Optional[Review]:
        """Return the review whose id or slug is *slug*, or ``None``."""
        if not slug:
            return None
        try:
            document = self._documents.get(slug)
            return normalize_record(document) if document else None
        except self._store_error as exc:
            logger.warning("Document store unavailable, looking up %s locally: %s", slug, exc)
        for review in self.fetch_local():
            if slug in (review.id, review.slug):
                return review
        return None

    def search(self, filters=None, sort_key: Optional[str] = None) -> List[Review]:
        return query(self.fetch(), filters, sort_key)

    def latest(self, n: int = DEFAULT_LATEST_COUNT) -> List[Review]:
        return latest(self.fetch(), n)

    def featured(self) -> List[Review]:
        return featured_lineup(self.fetch())

    def related(self, review: Review, collection: Optional[Sequence[Review]] = None) -> List[Review]:
        if collection is None:
            collection = self.fetch()
        return related_reviews(review, collection)

    def unique_genres(self, collection: Optional[Sequence[Review]] = None) -> List[str]:
        collection = self.fetch() if collection is None else collection
        return sorted({r.genre for r in collection if r.genre})

    def unique_platforms(self, collection: Optional[Sequence[Review]] = None) -> List[str]:
        collection = self.fetch() if collection is None else collection
        return sorted({p for r in collection for p in r.platform})


# ---------------------------------------------------------------------------
# Interactive re-querying
# ---------------------------------------------------------------------------

class LiveQuery:
    """Interactive filter/sort state bound to one asyncio event loop.

    * :meth:`update_filters` re-runs the pipeline immediately.
    * :meth:`update_search` re-runs it after the debounce delay; a newer call
      replaces the pending timer.
    * :meth:`reload` re-runs it against a freshly fetched collection.

    Each run gets a sequence number.  A run whose number is no longer the
    latest when its fetch returns is discarded, so a slow fetch can never
    overwrite a newer result.  *on_result* is called as
    ``on_result(seq, reviews)`` for every run that is still current.
    """

    def __init__(self, source: ReviewQueryService,
                 on_result: Callable[[int, List[Review]], None],
                 debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
                 fetch_timeout: float = DEFAULT_FETCH_TIMEOUT) -> None:
        self._source = source
        self._on_result = on_result
        self._debounce = debounce_seconds
        self._timeout = fetch_timeout
        self._filters: Dict[str, Optional[str]] = {}
        self._sort = DEFAULT_SORT
        self._seq = 0
        self._collection: Optional[List[Review]] = None
        self._refetch = True
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks = set()

    @property
    def latest_seq(self) -> int:
        return self._seq

    @property
    def collection(self) -> Optional[List[Review]]:
        return self._collection

    @property
    def filters(self) -> Dict[str, Optional[str]]:
        return dict(self._filters)

    @property
    def sort_key(self) -> str:
        return self._sort

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def update_filters(self, sort: Optional[str] = None, **changes) -> asyncio.Task:
        """Apply filter control changes (genre/platform/rating) and re-run."""
        self._filters.update(changes)
        if sort is not None:
            self._sort = resolve_sort_key(sort)
        return self._schedule()

    def update_search(self, text: str) -> None:
        """Record the search text and re-run once the debounce delay passes."""
        self._filters['search'] = text
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._fire_timer)

    def reset(self) -> asyncio.Task:
        self._filters = {}
        self._sort = DEFAULT_SORT
        return self._schedule()

    def reload(self) -> asyncio.Task:
        """Re-fetch the collection and re-run."""
        self._refetch = True
        return self._schedule()

    async def wait(self) -> None:
        """Wait for the pending debounce timer and all in-flight runs."""
        while self._timer is not None or self._tasks:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._debounce / 4 or 0.001)

    def close(self) -> None:
        self._cancel_timer()
        for task in list(self._tasks):
            task.cancel()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire_timer(self) -> None:
        self._timer = None
        self._schedule()

    def _schedule(self) -> asyncio.Task:
        self._cancel_timer()
        self._seq += 1
        seq = self._seq
        spec = FilterSpec.from_mapping(self._filters)
        task = asyncio.get_running_loop().create_task(self._run(seq, spec, self._sort))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, seq: int, spec: FilterSpec, sort_key: str) -> Optional[List[Review]]:
        if self._refetch or self._collection is None:
            collection = await self._fetch()
            if seq != self._seq:
                logger.debug("Discarding fetch for superseded query #%d (latest #%d)", seq, self._seq)
                return None
            self._collection = collection
            self._refetch = False
        if seq != self._seq:
            return None
        results = query(self._collection, spec, sort_key)
        self._on_result(seq, results)
        return results

    async def _fetch(self) -> List[Review]:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._source.fetch_remote), self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Document store fetch timed out after %.1fs, using local fallback",
                           self._timeout)
        except self._source.store_error as exc:
            logger.warning("Document store unavailable, using local fallback: %s", exc)
        return self._source.fetch_local()
