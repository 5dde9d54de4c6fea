"""
Selector learning store: remembers which locator worked for a label on a platform.

Each (scope_key, raw_label) pair gets one row. Confidence moves up on every
successful fill and down on every failure, and always stays inside
[MIN_CONFIDENCE, MAX_CONFIDENCE]. Rows are never deleted.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .field_mapping import CanonicalField

MIN_CONFIDENCE = 0.5
MAX_CONFIDENCE = 1.0
INITIAL_CONFIDENCE = 0.75
SUCCESS_STEP = 0.05
FAILURE_STEP = 0.1


@dataclass
class LabelMapping:
    """A learned label -> field -> locator association."""
    raw_label: str
    canonical_field: CanonicalField
    scope_key: str
    learned_locator: Optional[str] = None
    success_count: int = 0
    failure_count: int = 0
    confidence: float = INITIAL_CONFIDENCE
    last_used_at: Optional[str] = None


@dataclass
class LearningStats:
    """Aggregate view of what the store has learned."""
    mappings: int
    with_locator: int
    successes: int
    failures: int


_COLUMNS = (
    "raw_label, canonical_field, scope_key, learned_locator, "
    "success_count, failure_count, confidence, last_used_at"
)


class SelectorStore:
    """SQLite-backed store of learned label mappings."""

    def __init__(self, db_path: str = "data/formpilot.db"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._init_db()

    def _init_db(self):
        """Create the label_map table if needed."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS label_map (
                scope_key TEXT NOT NULL,
                raw_label TEXT NOT NULL,
                canonical_field TEXT NOT NULL,
                learned_locator TEXT,
                success_count INTEGER NOT NULL DEFAULT 0,
                failure_count INTEGER NOT NULL DEFAULT 0,
                confidence REAL NOT NULL,
                last_used_at TEXT,
                use_seq INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (scope_key, raw_label)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_label_map_field
            ON label_map(scope_key, canonical_field)
        """)
        self._conn.commit()

    @staticmethod
    def _row_to_mapping(row) -> LabelMapping:
        return LabelMapping(
            raw_label=row[0],
            canonical_field=CanonicalField(row[1]),
            scope_key=row[2],
            learned_locator=row[3],
            success_count=row[4],
            failure_count=row[5],
            confidence=row[6],
            last_used_at=row[7],
        )

    def lookup(self, canonical_field: CanonicalField, scope_key: str) -> Optional[LabelMapping]:
        """Best learned mapping for a field within a scope, or None.

        Highest confidence wins; ties go to more successes, then to the most
        recently used. A database error is reported and treated as a miss.
        """
        try:
            row = self._conn.execute(
                f"""SELECT {_COLUMNS} FROM label_map
                    WHERE canonical_field = ? AND scope_key = ?
                    ORDER BY confidence DESC, success_count DESC, use_seq DESC
                    LIMIT 1""",
                (canonical_field.value, scope_key),
            ).fetchone()
        except sqlite3.Error as e:
            print(f"  Selector store read failed: {e}")
            return None
        return self._row_to_mapping(row) if row else None

    def get(self, scope_key: str, raw_label: str) -> Optional[LabelMapping]:
        """Mapping stored for an exact (scope_key, raw_label) pair."""
        try:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM label_map WHERE scope_key = ? AND raw_label = ?",
                (scope_key, raw_label),
            ).fetchone()
        except sqlite3.Error as e:
            print(f"  Selector store read failed: {e}")
            return None
        return self._row_to_mapping(row) if row else None

    def all_mappings(self, scope_key: Optional[str] = None) -> List[LabelMapping]:
        """Every stored mapping, optionally limited to one scope."""
        query = f"SELECT {_COLUMNS} FROM label_map"
        params = ()
        if scope_key is not None:
            query += " WHERE scope_key = ?"
            params = (scope_key,)
        try:
            rows = self._conn.execute(query + " ORDER BY scope_key, raw_label", params).fetchall()
        except sqlite3.Error as e:
            print(f"  Selector store read failed: {e}")
            return []
        return [self._row_to_mapping(r) for r in rows]

    def record_success(self, mapping: LabelMapping, locator_used: str) -> LabelMapping:
        """Count a successful fill and remember the locator that did it.

        Creates the row on first success. The increment and clamp happen in a
        single statement so concurrent writers cannot lose updates.
        """
        now = datetime.now().isoformat()
        self._conn.execute(
            """INSERT INTO label_map (
                   scope_key, raw_label, canonical_field, learned_locator,
                   success_count, failure_count, confidence, last_used_at, use_seq
               ) VALUES (?, ?, ?, ?, 1, 0, MIN(?, ROUND(? + ?, 6)), ?,
                         (SELECT COALESCE(MAX(use_seq), 0) + 1 FROM label_map))
               ON CONFLICT(scope_key, raw_label) DO UPDATE SET
                   canonical_field = excluded.canonical_field,
                   learned_locator = excluded.learned_locator,
                   success_count = success_count + 1,
                   confidence = MIN(?, ROUND(confidence + ?, 6)),
                   last_used_at = excluded.last_used_at,
                   use_seq = excluded.use_seq""",
            (
                mapping.scope_key, mapping.raw_label, mapping.canonical_field.value, locator_used,
                MAX_CONFIDENCE, INITIAL_CONFIDENCE, SUCCESS_STEP, now,
                MAX_CONFIDENCE, SUCCESS_STEP,
            ),
        )
        self._conn.commit()
        return self._refresh(mapping)

    def record_failure(self, mapping: LabelMapping) -> LabelMapping:
        """Count a failed attempt with this mapping's locator.

        Confidence never drops below MIN_CONFIDENCE; the locator is kept.
        Rows only come into existence on a success, so a mapping that was
        never persisted is only updated in memory.
        """
        now = datetime.now().isoformat()
        cursor = self._conn.execute(
            """UPDATE label_map SET
                   failure_count = failure_count + 1,
                   confidence = MAX(?, ROUND(confidence - ?, 6)),
                   last_used_at = ?,
                   use_seq = (SELECT COALESCE(MAX(use_seq), 0) + 1 FROM label_map)
               WHERE scope_key = ? AND raw_label = ?""",
            (MIN_CONFIDENCE, FAILURE_STEP, now, mapping.scope_key, mapping.raw_label),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            mapping.failure_count += 1
            mapping.confidence = max(MIN_CONFIDENCE, round(mapping.confidence - FAILURE_STEP, 6))
            mapping.last_used_at = now
            return mapping
        return self._refresh(mapping)

    def _refresh(self, mapping: LabelMapping) -> LabelMapping:
        """Copy the persisted counters back onto the caller's object."""
        stored = self.get(mapping.scope_key, mapping.raw_label)
        if stored:
            mapping.canonical_field = stored.canonical_field
            mapping.learned_locator = stored.learned_locator
            mapping.success_count = stored.success_count
            mapping.failure_count = stored.failure_count
            mapping.confidence = stored.confidence
            mapping.last_used_at = stored.last_used_at
        return mapping

    def stats(self) -> LearningStats:
        """Learning summary for the end-of-run report."""
        try:
            row = self._conn.execute(
                """SELECT COUNT(*),
                          SUM(CASE WHEN learned_locator IS NOT NULL THEN 1 ELSE 0 END),
                          COALESCE(SUM(success_count), 0),
                          COALESCE(SUM(failure_count), 0)
                   FROM label_map"""
            ).fetchone()
        except sqlite3.Error as e:
            print(f"  Selector store read failed: {e}")
            return LearningStats(0, 0, 0, 0)
        return LearningStats(
            mappings=row[0],
            with_locator=row[1] or 0,
            successes=row[2],
            failures=row[3],
        )

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
