"""Background URL downloads tracked by task id."""

from __future__ import annotations

import os
import posixpath
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.message import Message
from urllib.parse import unquote, urlsplit

import requests

from .listing import human_readable_size


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class DownloadStatus:
    """Progress of one download."""

    status: str = "pending"
    total_size: int = 0
    downloaded: int = 0
    speed: str = ""
    err_msg: str = ""

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "totalSize": self.total_size,
            "downloaded": self.downloaded,
            "speed": self.speed,
            "errMsg": self.err_msg,
        }


@dataclass
class DownloadTask:
    """A download with where it goes and when it ran."""

    task_id: str
    url: str
    filename: str
    filepath: str
    status: DownloadStatus = field(default_factory=DownloadStatus)
    started_at: datetime | None = None
    end_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "taskId": self.task_id,
            "url": self.url,
            "filename": self.filename,
            "filepath": self.filepath,
            "status": self.status.to_dict(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "endAt": self.end_at.isoformat() if self.end_at else None,
        }


def _filename(response: requests.Response) -> str:
    message = Message()
    message["Content-Disposition"] = response.headers.get("Content-Disposition", "")
    name = posixpath.basename((message.get_filename() or "").replace("\\", "/"))
    return name or posixpath.basename(unquote(urlsplit(response.url).path)) or "download"


class DownloadManager:
    """Starts downloads in background threads and keeps their status."""

    def __init__(self, root_dir: str = ".") -> None:
        self.root_dir = root_dir
        self.tasks: dict[str, DownloadTask] = {}
        self._lock = threading.Lock()

    def get_task(self, task_id: str) -> DownloadTask | None:
        return self.tasks.get(task_id)

    def list(self, task_ids=None, status: str = "") -> list[DownloadTask]:
        """Tasks with the given ids (all when none are given), optionally by status."""
        with self._lock:
            ids = list(task_ids) if task_ids else list(self.tasks)
            found = (self.tasks.get(task_id) for task_id in ids)
            return [t for t in found if t is not None and (not status or t.status.status == status)]

    def add_task(self, url: str, directory: str) -> str:
        """Start downloading ``url`` into ``directory`` and return the new task id.

        Raises ``requests.RequestException`` when the URL cannot be fetched.
        """
        response = requests.get(url, stream=True, timeout=30)
        try:
            response.raise_for_status()
        except requests.RequestException:
            response.close()
            raise

        path = os.path.join(directory, _filename(response))
        try:
            shown_path = os.path.relpath(path, self.root_dir)
        except ValueError:
            shown_path = path

        task_id = str(uuid.uuid4())
        with self._lock:
            self.tasks[task_id] = DownloadTask(
                task_id, url, os.path.basename(shown_path), shown_path, started_at=_now()
            )
        threading.Thread(target=self._run, args=(task_id, response, path), daemon=True).start()
        return task_id

    def _run(self, task_id: str, response: requests.Response, path: str) -> None:
        started = time.monotonic()
        total = int(response.headers.get("Content-Length") or 0)
        try:
            with response, open(path, "wb") as out:
                downloaded = 0
                for chunk in response.iter_content(64 * 1024):
                    out.write(chunk)
                    downloaded += len(chunk)
                    self._progress(task_id, downloaded, total, started)
        except (requests.RequestException, OSError) as exc:
            self.fail_task(task_id, str(exc))
        else:
            self.complete_task(task_id)

    def _progress(self, task_id: str, downloaded: int, total: int, started: float) -> None:
        elapsed = max(time.monotonic() - started, 1e-6)
        with self._lock:
            status = self.tasks[task_id].status
            if downloaded > status.downloaded:
                status.status = "downloading"
            status.downloaded = downloaded
            status.total_size = total
            status.speed = human_readable_size(int(downloaded / elapsed)) + "/s"

    def _end(self, task_id: str, state: str, message: str = "") -> None:
        with self._lock:
            task = self.tasks[task_id]
            task.status.status = state
            if message:
                task.status.err_msg = message
            task.end_at = _now()

    def complete_task(self, task_id: str) -> None:
        self._end(task_id, "finished")

    def fail_task(self, task_id: str, message: str) -> None:
        self._end(task_id, "failed", message)

    def clear_ended_tasks(self, days: int) -> None:
        """Forget tasks that ended more than ``days`` days ago."""
        limit = timedelta(hours=days * 24)
        now = _now()
        with self._lock:
            self.tasks = {
                task_id: task
                for task_id, task in self.tasks.items()
                if task.end_at is None or now - task.end_at <= limit
            }