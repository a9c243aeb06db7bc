"""Local fallback store: whole review collections saved as JSON blobs."""
import json
import logging
import os
import tempfile
from typing import Dict, List

DEFAULT_KEY = 'gameReviews'


class LocalReviewRepository:
    """Key-based get/set of a complete review collection in one JSON file.

    Used only when the document store cannot be reached.  Schema::

        {
            "<key>": [<review document>, ...]
        }

    Writes go to a temp file in the same directory and are renamed over the
    target, so readers never see a half-written file.
    """

    def __init__(self, file_path: str = '.reviewhub_local.json') -> None:
        self._path = file_path
        self._log = logging.getLogger('reviewhub.repository.LocalReviewRepository')
        self.data: Dict[str, List[Dict]] = self._read()

    @property
    def path(self) -> str:
        return self._path

    def get(self, key: str = DEFAULT_KEY) -> List[Dict]:
        """Return a copy of the collection stored under *key* (empty if none)."""
        records = self.data.get(key)
        if not isinstance(records, list):
            return []
        return [dict(r) for r in records if isinstance(r, dict)]

    def set(self, key: str, records: List[Dict]) -> None:
        """Replace the collection under *key*, then persist."""
        self.data[key] = [dict(r) for r in records]
        self.save()

    def clear(self, key: str = DEFAULT_KEY) -> bool:
        """Drop the collection under *key*.  Returns ``True`` if it existed."""
        if key not in self.data:
            return False
        del self.data[key]
        self.save()
        return True

    def save(self) -> None:
        dir_name = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(dir_name, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dir_name, prefix='.reviews-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as fh:
                json.dump(self.data, fh, indent=2)
            os.replace(tmp_path, self._path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _read(self) -> Dict[str, List[Dict]]:
        # A missing or corrupt file is treated as an empty store
        if not os.path.exists(self._path):
            return {}
        try:
            with open(self._path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            self._log.warning("Could not load local store %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}
