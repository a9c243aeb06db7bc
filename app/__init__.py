"""
GameReview Hub application package.

Layered architecture:

  app/models.py      - the normalized ``Review`` record.
  app/repositories/  - pure I/O: the SQLAlchemy document store and the local
                       JSON fallback store.
  app/services/      - business logic: normalization, filtering, sorting,
                       query orchestration, presentation, admin writes and
                       game-metadata auto-fill.

``ReviewHub`` (in ``reviewhub.py``) is the integration point: it creates the
repository and service instances from the configuration and exposes them as
public attributes (e.g. ``hub.queries``).  Route handlers in
``reviewhub_web.py`` and the CLI use these services directly.
"""
