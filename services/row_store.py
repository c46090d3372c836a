import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from models.inventory_rows import ResultRow

logger = logging.getLogger(__name__)

STORAGE_KEY = "mpl_rows"


class RowStore:
    """Hand-off of filtered rows from the upload flow to the table and label views.

    Write-once per extraction, read-many, absence reads as an empty list.
    Entries expire after ``ttl`` seconds; nothing is written to disk.
    """

    def __init__(self, ttl: int = 86400):
        self.ttl = ttl
        self._rows: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(session_id: Optional[str]) -> str:
        return f"{STORAGE_KEY}:{session_id or 'anonymous'}"

    def put(self, session_id: Optional[str], rows: List[ResultRow]):
        """Replace the rows held for ``session_id``"""
        key = self.key_for(session_id)
        payload = [row.to_dict() for row in rows]
        with self._lock:
            self._rows[key] = (time.time(), payload)
        logger.debug(f"Row store set: {key} ({len(payload)} rows)")

    def get(self, session_id: Optional[str]) -> List[ResultRow]:
        """Rows for ``session_id``; empty when nothing was stored or it expired"""
        key = self.key_for(session_id)
        with self._lock:
            item = self._rows.get(key)
            if item is None:
                return []
            stored_at, payload = item
            if self._is_expired(stored_at):
                del self._rows[key]
                logger.debug(f"Row store expired: {key}")
                return []

        rows: List[ResultRow] = []
        for entry in payload:
            row = ResultRow.from_dict(entry)
            if row is not None:
                rows.append(row)
        return rows

    def delete(self, session_id: Optional[str]):
        with self._lock:
            self._rows.pop(self.key_for(session_id), None)

    def clear(self):
        with self._lock:
            self._rows.clear()

    def _is_expired(self, stored_at: float) -> bool:
        return self.ttl > 0 and time.time() - stored_at > self.ttl


__all__ = ["RowStore", "STORAGE_KEY"]
