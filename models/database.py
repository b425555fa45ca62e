"""SQLite database for storing alert history used by the analyzer."""
import sqlite3
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from models.alerts import AlertEvent

logger = logging.getLogger("crewalerts.db")


def _to_utc(value):
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_ts(raw):
    if raw is None:
        return None
    return _to_utc(datetime.fromisoformat(raw))


class Database:
    def __init__(self, db_path="data/alerts.db"):
        self.db_path = db_path
        self.conn = None

    def connect(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alert_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_key TEXT NOT NULL,
                triggered_at TEXT NOT NULL,
                resolved_at TEXT,
                note TEXT DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_triggered
                ON alert_history(triggered_at);

            CREATE INDEX IF NOT EXISTS idx_alerts_rule
                ON alert_history(rule_key);
        """)
        self.conn.commit()

    # --- Alert History ---

    def record_alert(self, rule_key, triggered_at=None, resolved_at=None, note=""):
        triggered_at = _to_utc(triggered_at or datetime.now(timezone.utc))
        if resolved_at is not None:
            resolved_at = _to_utc(resolved_at)
            if resolved_at < triggered_at:
                raise ValueError("resolved_at must not be earlier than triggered_at")
        cur = self.conn.execute("""
            INSERT INTO alert_history (rule_key, triggered_at, resolved_at, note)
            VALUES (?, ?, ?, ?)
        """, (
            rule_key, triggered_at.isoformat(),
            resolved_at.isoformat() if resolved_at else None, note,
        ))
        self.conn.commit()
        return cur.lastrowid

    def resolve_alert(self, alert_id, resolved_at=None):
        """Mark an alert resolved. Returns False if it is unknown or already resolved."""
        row = self.conn.execute(
            "SELECT triggered_at, resolved_at FROM alert_history WHERE id = ?", (alert_id,)
        ).fetchone()
        if row is None or row["resolved_at"] is not None:
            return False
        resolved_at = _to_utc(resolved_at or datetime.now(timezone.utc))
        if resolved_at < _parse_ts(row["triggered_at"]):
            raise ValueError("resolved_at must not be earlier than triggered_at")
        self.conn.execute(
            "UPDATE alert_history SET resolved_at = ? WHERE id = ?",
            (resolved_at.isoformat(), alert_id),
        )
        self.conn.commit()
        return True

    def get_alert_history(self, since=None, rule_key=None):
        query = "SELECT * FROM alert_history WHERE 1=1"
        params = []
        if since is not None:
            query += " AND triggered_at >= ?"
            params.append(_to_utc(since).isoformat())
        if rule_key:
            query += " AND rule_key = ?"
            params.append(rule_key)
        query += " ORDER BY triggered_at"
        rows = self.conn.execute(query, params).fetchall()
        return [
            AlertEvent(
                id=r["id"],
                rule_key=r["rule_key"],
                triggered_at=_parse_ts(r["triggered_at"]),
                resolved_at=_parse_ts(r["resolved_at"]),
                note=r["note"] or "",
            )
            for r in rows
        ]

    def get_recent_alerts(self, limit=50):
        rows = self.conn.execute("""
            SELECT * FROM alert_history ORDER BY triggered_at DESC LIMIT ?
        """, (limit,)).fetchall()
        return [dict(r) for r in rows]

    def get_alert_counts(self, days=90):
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        rows = self.conn.execute("""
            SELECT rule_key, COUNT(*) as count
            FROM alert_history
            WHERE triggered_at >= ?
            GROUP BY rule_key
        """, (since,)).fetchall()
        return {r["rule_key"]: r["count"] for r in rows}
