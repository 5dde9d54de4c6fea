"""
Job queue: the jobs waiting to be applied to and the run log.

The engine only needs get_jobs_by_status / update_job_status / log_run;
SQLiteJobQueue is the default store behind that interface.
"""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol

from .logger import RunLogEntry


class JobStatus(Enum):
    QUEUED = "queued"
    APPLIED = "applied"
    SKIPPED = "skipped"
    REPORTED = "reported"


@dataclass
class Job:
    """A job to apply to."""
    id: str
    url: str
    easy_apply: bool = False
    status: JobStatus = JobStatus.QUEUED
    title: str = ""
    company: str = ""
    description: str = ""


class JobQueue(Protocol):
    def get_jobs_by_status(self, status: JobStatus, easy_apply_only: Optional[bool] = None) -> List[Job]:
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        ...

    def update_job_status(self, job_id: str, status: JobStatus) -> None:
        ...

    def log_run(self, entry: RunLogEntry) -> None:
        ...


class SQLiteJobQueue:
    """Jobs and run log in one SQLite database."""

    def __init__(self, db_path: str = "data/formpilot.db"):
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._init_db()

    def _init_db(self):
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                easy_apply INTEGER NOT NULL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'queued',
                title TEXT DEFAULT '',
                company TEXT DEFAULT '',
                description TEXT DEFAULT '',
                created_at TEXT,
                updated_at TEXT
            )
        """)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS run_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_id TEXT NOT NULL,
                step TEXT NOT NULL,
                ok INTEGER NOT NULL,
                message TEXT,
                screenshot_path TEXT,
                created_at TEXT NOT NULL
            )
        """)
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status)")
        self._conn.commit()

    @staticmethod
    def _row_to_job(row) -> Job:
        return Job(
            id=row[0],
            url=row[1],
            easy_apply=bool(row[2]),
            status=JobStatus(row[3]),
            title=row[4] or "",
            company=row[5] or "",
            description=row[6] or "",
        )

    def add_job(self, job: Job):
        """Insert a job; an existing id keeps its current status."""
        now = datetime.now().isoformat()
        self._conn.execute(
            """INSERT INTO jobs (id, url, easy_apply, status, title, company, description, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   url = excluded.url,
                   easy_apply = excluded.easy_apply,
                   title = excluded.title,
                   company = excluded.company,
                   description = excluded.description,
                   updated_at = excluded.updated_at""",
            (job.id, job.url, int(job.easy_apply), job.status.value, job.title, job.company,
             job.description, now, now),
        )
        self._conn.commit()

    def import_jobs(self, jobs_file: str) -> int:
        """Load jobs from a JSON list of {id?, url, title, company, easy_apply?, description?}."""
        with open(jobs_file) as f:
            items = json.load(f)
        count = 0
        for i, item in enumerate(items):
            if not item.get("url"):
                continue
            self.add_job(Job(
                id=str(item.get("id") or f"{Path(jobs_file).stem}-{i + 1}"),
                url=item["url"],
                easy_apply=bool(item.get("easy_apply", False)),
                title=item.get("title", ""),
                company=item.get("company", ""),
                description=item.get("description", ""),
            ))
            count += 1
        return count

    def get_jobs_by_status(self, status: JobStatus, easy_apply_only: Optional[bool] = None) -> List[Job]:
        """Jobs in a status, oldest first. easy_apply_only=False selects external jobs."""
        query = "SELECT id, url, easy_apply, status, title, company, description FROM jobs WHERE status = ?"
        params = [status.value]
        if easy_apply_only is not None:
            query += " AND easy_apply = ?"
            params.append(int(easy_apply_only))
        rows = self._conn.execute(query + " ORDER BY rowid", params).fetchall()
        return [self._row_to_job(r) for r in rows]

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self._conn.execute(
            "SELECT id, url, easy_apply, status, title, company, description FROM jobs WHERE id = ?",
            (job_id,),
        ).fetchone()
        return self._row_to_job(row) if row else None

    def update_job_status(self, job_id: str, status: JobStatus):
        self._conn.execute(
            "UPDATE jobs SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, datetime.now().isoformat(), job_id),
        )
        self._conn.commit()

    def log_run(self, entry: RunLogEntry):
        self._conn.execute(
            """INSERT INTO run_log (job_id, step, ok, message, screenshot_path, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (entry.job_id, entry.step, int(entry.ok), entry.message, entry.screenshot_ref, entry.timestamp),
        )
        self._conn.commit()

    def run_log(self, job_id: str) -> List[RunLogEntry]:
        rows = self._conn.execute(
            "SELECT job_id, step, ok, message, screenshot_path, created_at FROM run_log WHERE job_id = ? ORDER BY id",
            (job_id,),
        ).fetchall()
        return [RunLogEntry(r[0], r[1], bool(r[2]), r[3], r[4], r[5]) for r in rows]

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
