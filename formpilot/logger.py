"""
Run logging and screenshot capture module.
"""

import json
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .runtime import BrowserPage


@dataclass
class RunLogEntry:
    """One audit record: a form step or a job's terminal outcome."""
    job_id: str
    step: str
    ok: bool
    message: str
    screenshot_ref: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


class RunLogSink(Protocol):
    def log_run(self, entry: RunLogEntry) -> None:
        ...


class RunRecorder:
    """Keeps the per-session audit trail and the per-job artifacts."""

    MAX_SESSION_FOLDERS = 10  # Keep only the last N session logs

    def __init__(self, artifacts_dir: str = "artifacts", sink: Optional[RunLogSink] = None):
        self.artifacts_dir = Path(artifacts_dir)
        self.sessions_dir = self.artifacts_dir / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.sink = sink

        self._cleanup_old_sessions()

        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.session_dir = self.sessions_dir / self.session_id
        self.session_dir.mkdir(exist_ok=True)
        self.log_file = self.session_dir / "session.json"

        self.entries: List[RunLogEntry] = []
        self.jobs: Dict[str, Dict[str, Any]] = {}

    def _cleanup_old_sessions(self):
        """Remove old session folders, keeping only the most recent ones."""
        try:
            session_dirs = sorted([
                d for d in self.sessions_dir.iterdir()
                if d.is_dir() and d.name[0].isdigit()
            ])
            while len(session_dirs) >= self.MAX_SESSION_FOLDERS:
                shutil.rmtree(session_dirs.pop(0))
        except OSError as e:
            print(f"Warning: could not prune old sessions: {e}")

    def job_dir(self, job_id: str) -> Path:
        return self.artifacts_dir / str(job_id)

    def trace_path(self, job_id: str) -> str:
        return str(self.job_dir(job_id) / "trace.zip")

    def start_job(self, job_id: str, url: str = "", title: str = "", company: str = ""):
        """Open the session record for a job."""
        self.jobs[job_id] = {
            "job_id": job_id,
            "url": url,
            "title": title,
            "company": company,
            "status": None,
            "reason": None,
            "started_at": datetime.now().isoformat(),
            "completed_at": None,
            "unknown_labels": [],
        }

    def log(self, entry: RunLogEntry):
        """Record an entry and hand it to the job queue's run log."""
        self.entries.append(entry)
        if self.sink:
            self.sink.log_run(entry)

    async def capture_screenshot(self, page: BrowserPage, job_id: str, name: str) -> Optional[str]:
        """Screenshot into the job's artifact folder; None if the page would not cooperate."""
        filepath = self.job_dir(job_id) / f"{name}.png"
        try:
            await page.screenshot(str(filepath))
        except Exception as e:
            print(f"  Screenshot failed: {e}")
            return None
        return str(filepath)

    def note_unknown_labels(self, job_id: str, labels: List[str]):
        record = self.jobs.get(job_id)
        if record is None:
            return
        for label in labels:
            if label not in record["unknown_labels"]:
                record["unknown_labels"].append(label)

    def finish_job(self, job_id: str, status: str, reason: str = ""):
        """Close the job's record and flush the session file."""
        record = self.jobs.get(job_id)
        if record is None:
            return
        record["status"] = status
        record["reason"] = reason
        record["completed_at"] = datetime.now().isoformat()
        self._save_log()

    def entries_for(self, job_id: str) -> List[RunLogEntry]:
        return [e for e in self.entries if e.job_id == job_id]

    def _save_log(self):
        """Save the session log to file."""
        log_data = {
            "session_id": self.session_id,
            "jobs": list(self.jobs.values()),
            "entries": [asdict(e) for e in self.entries],
        }
        with open(self.log_file, "w") as f:
            json.dump(log_data, f, indent=2)
