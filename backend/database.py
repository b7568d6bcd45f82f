import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set, Tuple

import config

PATH_LOOKUP_CHUNK = 500


def get_connection():
    """Get a SQLite connection with appropriate settings."""
    conn = sqlite3.connect(config.DATABASE_URL)
    conn.row_factory = sqlite3.Row
    return conn

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS component_paths (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            path TEXT NOT NULL UNIQUE
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS measurements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            time_ms INTEGER NOT NULL,
            metric TEXT NOT NULL,
            component_path_id INTEGER NOT NULL REFERENCES component_paths(id),
            value REAL NOT NULL
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS links (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            time_ms INTEGER NOT NULL,
            parent_path TEXT NOT NULL,
            from_element TEXT NOT NULL,
            to_element TEXT NOT NULL,
            pad_from TEXT NOT NULL,
            pad_to TEXT NOT NULL
        )
        ''')

        cursor.execute('''
        CREATE TABLE IF NOT EXISTS elements (
            path TEXT PRIMARY KEY,
            created_ms INTEGER NOT NULL,
            terminated_ms INTEGER
        )
        ''')

        # Charts always query a single metric over a time range
        cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_measurements_metric_time ON measurements(metric, time_ms)
        ''')
        cursor.execute('''
        CREATE INDEX IF NOT EXISTS idx_links_time ON links(time_ms)
        ''')

        conn.commit()

def _path_ids(cursor, paths: Iterable[str]) -> Dict[str, int]:
    unique = sorted(set(paths))
    cursor.executemany(
        "INSERT OR IGNORE INTO component_paths (path) VALUES (?)",
        [(path,) for path in unique]
    )
    ids = {}
    # Stay under SQLite's host parameter limit
    for start in range(0, len(unique), PATH_LOOKUP_CHUNK):
        chunk = unique[start:start + PATH_LOOKUP_CHUNK]
        placeholders = ", ".join("?" * len(chunk))
        cursor.execute(f"SELECT id, path FROM component_paths WHERE path IN ({placeholders})", chunk)
        for path_id, path in cursor.fetchall():
            ids[path] = path_id
    return ids

def insert_measurements(conn, rows: List[Tuple[int, str, str, float]]) -> int:
    """
    Insert raw measurements.

    Args:
        conn: Database connection
        rows: List of (time_ms, metric, path, value) tuples

    Returns:
        int: Number of inserted rows
    """
    if not rows:
        return 0

    cursor = conn.cursor()
    ids = _path_ids(cursor, (path for _time, _metric, path, _value in rows))
    cursor.executemany(
        "INSERT INTO measurements (time_ms, metric, component_path_id, value) VALUES (?, ?, ?, ?)",
        [(time_ms, metric, ids[path], value) for time_ms, metric, path, value in rows]
    )
    conn.commit()
    return len(rows)

def insert_links(conn, time_ms: int, links: List[Dict[str, str]]):
    """Insert link records reported at `time_ms`."""
    conn.cursor().executemany(
        """
        INSERT INTO links (time_ms, parent_path, from_element, to_element, pad_from, pad_to)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            (time_ms, link["parent_path"], link["from"], link["to"], link["pad_from"], link["pad_to"])
            for link in links
        ]
    )
    conn.commit()

def upsert_element(conn, path: str, created_ms: int, terminated_ms: Optional[int] = None):
    """Record an element's lifetime, replacing any previous record for the same path."""
    conn.execute(
        "INSERT OR REPLACE INTO elements (path, created_ms, terminated_ms) VALUES (?, ?, ?)",
        (path, created_ms, terminated_ms)
    )
    conn.commit()

def fetch_measurements(conn, metric: str, time_from: int, time_to: int, accuracy: int):
    """
    Get measurements of a single metric bucketed by accuracy.

    Args:
        conn: Database connection
        metric: Metric name
        time_from: Start timestamp in milliseconds
        time_to: End timestamp in milliseconds
        accuracy: Bucket width in milliseconds

    Returns:
        list: (time_s, path, value) tuples ordered by time
    """
    cursor = conn.cursor()

    # Integer division buckets the timestamp, the division by 1000.0 turns it into seconds
    cursor.execute("""
        SELECT (m.time_ms / ?) * ? / 1000.0 AS time, p.path, m.value
        FROM measurements m JOIN component_paths p ON m.component_path_id = p.id
        WHERE m.metric = ? AND m.time_ms >= ? AND m.time_ms <= ?
        ORDER BY time, m.id
    """, (accuracy, accuracy, metric, time_from, time_to))

    return [(row[0], row[1], row[2]) for row in cursor.fetchall()]

def fetch_links(conn, time_from: int, time_to: int) -> List[Dict[str, str]]:
    """Get link records reported between `time_from` and `time_to` (milliseconds)."""
    cursor = conn.cursor()
    cursor.execute("""
        SELECT parent_path, from_element, to_element, pad_from, pad_to
        FROM links
        WHERE time_ms >= ? AND time_ms <= ?
        ORDER BY id
    """, (time_from, time_to))

    return [
        {
            "parent_path": row[0],
            "from": row[1],
            "to": row[2],
            "pad_from": row[3],
            "pad_to": row[4],
        }
        for row in cursor.fetchall()
    ]

def fetch_liveness(conn, time_from: int, time_to: int) -> Dict[str, Set[str]]:
    """
    Classify elements relative to the `time_from`..`time_to` window.

    Returns:
        dict: `new` elements were created inside the window, `dead` ones terminated
        inside it and `existing` ones were created before and are still alive after it.
    """
    cursor = conn.cursor()
    cursor.execute("SELECT path, created_ms, terminated_ms FROM elements")

    liveness = {"new": set(), "dead": set(), "existing": set()}
    for path, created_ms, terminated_ms in cursor.fetchall():
        if terminated_ms is not None and time_from <= terminated_ms <= time_to:
            liveness["dead"].add(path)
        elif time_from <= created_ms <= time_to:
            liveness["new"].add(path)
        elif created_ms < time_from and (terminated_ms is None or terminated_ms > time_to):
            liveness["existing"].add(path)

    return liveness

def fetch_stats(conn) -> Dict[str, object]:
    """Get basic statistics about stored measurements."""
    cursor = conn.cursor()
    cursor.execute("""
        SELECT
            COUNT(*) as count,
            MIN(time_ms) as min_time,
            MAX(time_ms) as max_time
        FROM measurements
    """)
    count, min_time, max_time = cursor.fetchone()

    cursor.execute("SELECT DISTINCT metric FROM measurements ORDER BY metric")
    metrics = [row[0] for row in cursor.fetchall()]

    return {
        "count": count,
        "min_time_ms": min_time,
        "max_time_ms": max_time,
        "metrics": metrics,
    }
