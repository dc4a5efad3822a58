from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional

JobSnapshot = Dict[str, Any]


class JobProgress:
    """Per-job match progress, polled by the HTTP layer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, JobSnapshot] = {}

    def start(self, job_id: str, total: int = 0) -> None:
        with self._lock:
            self._jobs[job_id] = {"processed": 0, "total": total, "status": "running", "label": None}

    def update(self, job_id: str, processed: int, total: Optional[int] = None, label: Optional[str] = None) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            job["processed"] = processed
            if total is not None:
                job["total"] = total
            if label is not None:
                job["label"] = label

    def callback_for(self, job_id: str) -> Callable[[int, int, str], None]:
        """Adapter from the matcher's ``on_progress`` signature to this tracker."""

        def _on_progress(current: int, total: int, label: str) -> None:
            self.update(job_id, current, total=total, label=label)

        return _on_progress

    def finish(self, job_id: str) -> None:
        self._set_status(job_id, "completed")

    def error(self, job_id: str) -> None:
        self._set_status(job_id, "error")

    def pop(self, job_id: str) -> Optional[JobSnapshot]:
        with self._lock:
            return self._jobs.pop(job_id, None)

    def snapshot(self, job_id: str) -> Optional[JobSnapshot]:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            return dict(job)

    def _set_status(self, job_id: str, status: str) -> None:
        with self._lock:
            if job_id in self._jobs:
                self._jobs[job_id]["status"] = status


progress_tracker = JobProgress()

__all__ = ["JobProgress", "progress_tracker"]
