import logging
import os
import re
import sqlite3
import threading
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_STORE_PATTERNS = (
    re.compile(r"Store\s*#?\s*(\d{3,6})\s*[-–—]\s*([A-Za-z0-9 &'()./+-]+)", re.I),
    re.compile(r"Store\s*No\.?\s*(\d{3,6})\s*[:\-]?\s*([A-Za-z0-9 &'()./+-]+)", re.I),
    re.compile(r"([A-Za-z0-9 &'()./+-]+)\s*\(\s*Store\s*(\d{3,6})\s*\)", re.I),
    re.compile(r"([A-Za-z0-9 &'()./+-]+)\s*[-–—]\s*Store\s*(\d{3,6})", re.I),
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS uploads (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ','now')),
    filename TEXT,
    store_number TEXT,
    store_name TEXT,
    pages_scanned INTEGER,
    pages_total INTEGER,
    rows_returned INTEGER,
    rows_considered INTEGER,
    limit_pages INTEGER,
    provider TEXT,
    client_ip TEXT
);
CREATE INDEX IF NOT EXISTS idx_uploads_store ON uploads(store_number, store_name);
CREATE INDEX IF NOT EXISTS idx_uploads_created ON uploads(created_at);
"""


def _int_or_none(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def guess_store(meta: Optional[Dict[str, Any]]) -> Dict[str, Optional[str]]:
    """Best-effort store number/name from provider metadata."""
    if not meta:
        return {"store_number": None, "store_name": None}
    store = meta.get("store") if isinstance(meta.get("store"), dict) else {}
    store_number = store.get("number") or meta.get("store_number")
    store_name = store.get("name") or meta.get("store_name")

    header = meta.get("header") or meta.get("title") or meta.get("report_header") or ""
    if (not store_number or not store_name) and isinstance(header, str) and header:
        for pattern in _STORE_PATTERNS:
            match = pattern.search(header)
            if not match:
                continue
            first, second = match.group(1), match.group(2)
            number, name = (first, second) if first.strip().isdigit() else (second, first)
            store_number = store_number or number.strip()
            store_name = store_name or name.strip()
            break

    return {
        "store_number": str(store_number) if store_number else None,
        "store_name": str(store_name) if store_name else None,
    }


class UploadAuditService:
    """Counts-only audit trail of uploads. Failures never reach the caller."""

    def __init__(self, settings):
        self.settings = settings
        self.db_path = settings.audit_db_path
        self._lock = threading.Lock()
        self._ready = False

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        if not self._ready:
            conn.executescript(_SCHEMA)
            self._ready = True
        return conn

    def log_upload(self, *, filename: Optional[str], meta: Optional[Dict[str, Any]],
                   rows_returned: Optional[int], limit_pages: Optional[int],
                   client_ip: Optional[str], store_number: Optional[str] = None,
                   store_name: Optional[str] = None) -> Optional[int]:
        """Record one upload attempt; returns the row id or ``None``"""
        if not self.settings.audit_enabled:
            return None

        meta = meta or {}
        guessed = guess_store(meta)
        record = (
            filename,
            store_number or guessed["store_number"],
            store_name or guessed["store_name"],
            _int_or_none(meta.get("pages_scanned")),
            _int_or_none(meta.get("pages_total")),
            _int_or_none(meta.get("rows_returned")) if meta.get("rows_returned") is not None else rows_returned,
            _int_or_none(meta.get("rows_considered")),
            limit_pages,
            meta.get("provider"),
            client_ip,
        )
        try:
            with self._lock:
                conn = self._connect()
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO uploads (
                            filename, store_number, store_name,
                            pages_scanned, pages_total, rows_returned, rows_considered,
                            limit_pages, provider, client_ip
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        record,
                    )
                    conn.commit()
                    return cursor.lastrowid
                finally:
                    conn.close()
        except Exception as e:
            logger.error(f"Upload audit insert failed: {e}")
            return None

    def summary(self) -> Dict[str, Any]:
        """Upload totals for the stats endpoint"""
        empty = {"uploads": 0, "rows_returned": 0}
        if not self.settings.audit_enabled:
            return empty
        try:
            with self._lock:
                conn = self._connect()
                try:
                    row = conn.execute(
                        "SELECT COUNT(*) AS uploads, IFNULL(SUM(rows_returned), 0) AS rows_returned FROM uploads"
                    ).fetchone()
                finally:
                    conn.close()
        except Exception as e:
            logger.error(f"Upload audit summary failed: {e}")
            return empty
        return {"uploads": row["uploads"], "rows_returned": row["rows_returned"]}


__all__ = ["UploadAuditService", "guess_store"]
