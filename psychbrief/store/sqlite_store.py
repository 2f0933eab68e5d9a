"""
SQLite-backed store for studies and their AI insights.

`pubmed_id` is UNIQUE at the schema level, so concurrent ingestion runs
cannot create two studies for one article even if both pass the pre-check.
A study and its insight are written in a single transaction: either both
rows exist afterwards or neither does.
"""

import json
import sqlite3
import threading
from typing import Optional

from loguru import logger

from ..core.errors import PersistenceError
from ..core.models import Category, InsightRecord, SaveResult, StudyRecord, StudyType

SCHEMA = """
CREATE TABLE IF NOT EXISTS studies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    journal TEXT,
    doi TEXT,
    pubmed_id TEXT UNIQUE,
    publication_date TEXT NOT NULL,
    study_type TEXT NOT NULL,
    category TEXT NOT NULL,
    archive INTEGER NOT NULL DEFAULT 0,
    authors TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS ai_insights (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    study_id INTEGER NOT NULL UNIQUE REFERENCES studies(id) ON DELETE CASCADE,
    sample_size INTEGER,
    population TEXT,
    intervention TEXT,
    key_findings TEXT NOT NULL DEFAULT '[]',
    safety_notes TEXT
);
"""


class StudyStore:
    def __init__(self, db_path: str = "psychbrief.db"):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def close(self):
        with self._lock:
            self._conn.close()

    # -------------------------------------------------------------------------
    # READS
    # -------------------------------------------------------------------------

    def find_study_id(self, pubmed_id: Optional[str]) -> Optional[int]:
        if not pubmed_id:
            return None
        with self._lock:
            row = self._conn.execute(
                "SELECT id FROM studies WHERE pubmed_id = ? LIMIT 1", (str(pubmed_id),)
            ).fetchone()
        return row["id"] if row else None

    def get_study(self, study_id: int) -> Optional[StudyRecord]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM studies WHERE id = ?", (study_id,)).fetchone()
        if row is None:
            return None
        return StudyRecord(
            id=row["id"],
            title=row["title"],
            journal=row["journal"],
            doi=row["doi"],
            pubmed_id=row["pubmed_id"],
            publication_date=row["publication_date"],
            study_type=StudyType(row["study_type"]),
            category=Category(row["category"]),
            archive=bool(row["archive"]),
            authors=json.loads(row["authors"] or "[]"),
        )

    def get_insight(self, study_id: int) -> Optional[InsightRecord]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM ai_insights WHERE study_id = ?", (study_id,)
            ).fetchone()
        if row is None:
            return None
        return InsightRecord(
            id=row["id"],
            study_id=row["study_id"],
            sample_size=row["sample_size"],
            population=row["population"],
            intervention=row["intervention"],
            key_findings=json.loads(row["key_findings"] or "[]"),
            safety_notes=row["safety_notes"],
        )

    def count_studies(self, pubmed_id: Optional[str] = None) -> int:
        with self._lock:
            if pubmed_id is None:
                row = self._conn.execute("SELECT COUNT(*) AS n FROM studies").fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) AS n FROM studies WHERE pubmed_id = ?", (str(pubmed_id),)
                ).fetchone()
        return int(row["n"])

    def count_insights(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) AS n FROM ai_insights").fetchone()
        return int(row["n"])

    # -------------------------------------------------------------------------
    # WRITES
    # -------------------------------------------------------------------------

    def _insert_study(self, study: StudyRecord) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO studies
                (title, journal, doi, pubmed_id, publication_date, study_type, category, archive, authors)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                study.title,
                study.journal,
                study.doi,
                str(study.pubmed_id) if study.pubmed_id else None,
                study.publication_date,
                study.study_type.value,
                study.category.value,
                int(study.archive),
                json.dumps(study.authors, ensure_ascii=False),
            ),
        )
        return int(cur.lastrowid)

    def _insert_insight(self, study_id: int, insight: InsightRecord) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO ai_insights
                (study_id, sample_size, population, intervention, key_findings, safety_notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                study_id,
                insight.sample_size,
                insight.population,
                insight.intervention,
                json.dumps(insight.key_findings, ensure_ascii=False),
                insight.safety_notes,
            ),
        )
        return int(cur.lastrowid)

    def save(self, study: StudyRecord, insight: InsightRecord) -> SaveResult:
        """Inserts a study and its linked insight, or reports the existing study.

        Returns SaveResult(skipped=True, existing_study_id=...) when a study with
        the same PubMed id already exists (found up front or via the UNIQUE
        constraint). Raises PersistenceError naming the failing insert; the
        transaction is rolled back so no study is left without its insight.
        """
        existing = self.find_study_id(study.pubmed_id)
        if existing is not None:
            return SaveResult(skipped=True, existing_study_id=existing)

        with self._lock:
            stage = "study"
            try:
                with self._conn:
                    study_id = self._insert_study(study)
                    stage = "insight"
                    insight_id = self._insert_insight(study_id, insight)
            except sqlite3.IntegrityError as e:
                if stage == "study" and study.pubmed_id:
                    existing = self.find_study_id(study.pubmed_id)
                    if existing is not None:
                        logger.info(f"PMID {study.pubmed_id} inserted concurrently; reusing study {existing}")
                        return SaveResult(skipped=True, existing_study_id=existing)
                raise PersistenceError(str(e), stage=stage, pubmed_id=study.pubmed_id) from e
            except sqlite3.Error as e:
                raise PersistenceError(str(e), stage=stage, pubmed_id=study.pubmed_id) from e

        return SaveResult(study_id=study_id, insight_id=insight_id)

    def set_archived(self, study_id: int, archived: bool = True) -> bool:
        """Curation hook: the only mutation allowed on an existing study."""
        with self._lock:
            with self._conn:
                cur = self._conn.execute(
                    "UPDATE studies SET archive = ? WHERE id = ?", (int(archived), study_id)
                )
        return cur.rowcount > 0
