"""Client for a fileshelf server: browse, upload, download and manage download tasks."""

from __future__ import annotations

import os
import shutil
import stat as _stat
from dataclasses import dataclass, replace
from typing import Any, Iterable, Iterator

import requests

_TASKS_URI = "/:tasks"
_CHUNK_SIZE = 64 * 1024


class HttpFsError(Exception):
    """Raised when a request to the file server or a local file operation fails."""


def _clean_path(path: str) -> str:
    """Lexically normalise a slash-separated path."""
    if not path:
        return "."
    rooted = path.startswith("/")
    parts: list[str] = []
    for part in path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(part)
    joined = "/".join(parts)
    if rooted:
        return "/" + joined
    return joined or "."


def _dir(path: str) -> str:
    return _clean_path(path[: path.rfind("/") + 1])


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped[stripped.rfind("/") + 1 :]


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    return _clean_path("/".join(present)) if present else ""


def _status_text(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason or ''}".strip()


def _walk(root: str) -> Iterator[tuple[str, bool]]:
    is_dir = _stat.S_ISDIR(os.lstat(root).st_mode)
    yield root, is_dir
    if is_dir:
        for name in sorted(os.listdir(root)):
            yield from _walk(os.path.join(root, name))


@dataclass
class FileInfo:
    """A file or directory as listed by the server."""

    name: str = ""
    url: str = ""
    full_url: str = ""
    size: int = 0
    size_str: str = ""
    mod_time: int = 0
    mod_time_str: str = ""
    is_dir: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "FileInfo":
        return cls(
            name=data.get("name") or "",
            url=data.get("url") or "",
            full_url=data.get("fullUrl") or "",
            size=data.get("size") or 0,
            size_str=data.get("sizeStr") or "",
            mod_time=data.get("modTime") or 0,
            mod_time_str=data.get("modTimeStr") or "",
            is_dir=bool(data.get("isDir")),
        )


@dataclass
class DownloadStatus:
    """Progress of a server-side download."""

    status: str = ""
    total_size: int = 0
    downloaded: int = 0
    speed: str = ""
    err_msg: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DownloadStatus":
        return cls(
            status=data.get("status") or "",
            total_size=data.get("totalSize") or 0,
            downloaded=data.get("downloaded") or 0,
            speed=data.get("speed") or "",
            err_msg=data.get("errMsg") or "",
        )


@dataclass
class DownloadTaskInfo:
    """A server-side download task."""

    task_id: str = ""
    url: str = ""
    filename: str = ""
    status: DownloadStatus | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "DownloadTaskInfo":
        status = data.get("status")
        return cls(
            task_id=data.get("taskId") or "",
            url=data.get("url") or "",
            filename=data.get("filename") or "",
            status=DownloadStatus.from_dict(status) if isinstance(status, dict) else None,
        )


class HttpFs:
    """Operations on the files of a remote file server."""

    def __init__(self, base_url: str, session: requests.Session | None = None) -> None:
        self.base_url = base_url
        self.session = session if session is not None else requests.Session()

    def _request(self, method: str, url: str, body: Any = None, decode: bool = False) -> Any:
        try:
            response = self.session.request(method, url, json=body)
        except requests.RequestException as exc:
            raise HttpFsError(f"request failed: {exc}") from exc
        with response:
            if response.status_code != 200:
                raise HttpFsError(f"request failed with status: {_status_text(response)}")
            if not decode:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise HttpFsError(f"failed to decode response: {exc}") from exc

    def list_files(self, path: str) -> list[FileInfo]:
        """List the entries of the remote directory ``path``."""
        url = self.base_url + _clean_path(path) + "?json"
        entries = self._request("GET", url, decode=True) or []
        return [
            replace(
                info,
                full_url=self.base_url + _clean_path(_join(path, info.url)),
            )
            for info in (FileInfo.from_dict(entry) for entry in entries)
        ]

    def stat(self, path: str) -> FileInfo:
        """Describe the remote file or directory at ``path``."""
        if path == "/":
            return FileInfo(name="/", url="/", full_url=self.base_url + "/", is_dir=True)
        filename = _base(path)
        for info in self.list_files(_clean_path(_dir(path))):
            if info.name == filename:
                return info
        raise HttpFsError(f"file not found: {path}")

    def create_dir(self, path: str) -> None:
        """Create a remote directory together with its missing parents."""
        self._request("POST", self.base_url, {"method": "createDir", "name": path})

    def delete_file(self, path: str) -> None:
        """Delete a remote file or directory."""
        url = self.base_url + _clean_path(_dir(path))
        self._request("POST", url, {"method": "deleteFile", "name": _base(path)})

    def write_log(self, path: str, logs: Iterable[str]) -> None:
        """Append log lines to a remote log file."""
        url = self.base_url + _clean_path(_dir(path))
        body = {"method": "logging", "name": _base(path), "logs": list(logs)}
        self._request("POST", url, body)

    def copy_from(self, src_path: str, dest_path: str) -> None:
        """Upload a local file or directory tree, keeping its structure."""
        for path, is_dir in _walk(src_path):
            relative = os.path.relpath(path, src_path).replace(os.sep, "/")
            destination = _clean_path(_join(dest_path, relative))
            if is_dir:
                self.create_dir(destination)
            else:
                self.create_file(destination, path)

    def copy_to(self, src_path: str, dest_path: str) -> None:
        """Download a remote file or directory tree to the local system."""
        if self.stat(src_path).is_dir:
            self.download_dir(src_path, dest_path)
        else:
            self.download_file(src_path, dest_path)

    def download_file(self, src_path: str, dest_path: str) -> None:
        """Download the remote file at ``src_path`` to ``dest_path``."""
        try:
            response = self.session.get(self.base_url + src_path, stream=True)
        except requests.RequestException as exc:
            raise HttpFsError(f"failed to download file: {exc}") from exc
        with response:
            if response.status_code != 200:
                raise HttpFsError(f"download failed with status: {_status_text(response)}")
            if os.path.isdir(dest_path):
                dest_path = os.path.join(dest_path, _base(src_path))
            try:
                os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
            except OSError as exc:
                raise HttpFsError(f"failed to create directory: {exc}") from exc
            try:
                out = open(dest_path, "wb")
            except OSError as exc:
                raise HttpFsError(f"failed to create file: {exc}") from exc
            with out:
                try:
                    for chunk in response.iter_content(_CHUNK_SIZE):
                        out.write(chunk)
                except (OSError, requests.RequestException) as exc:
                    raise HttpFsError(f"failed to write file: {exc}") from exc

    def download_dir(self, src_path: str, dest_path: str) -> None:
        """Download every entry of a remote directory, recursively."""
        for info in self.list_files(src_path):
            remote = _clean_path(_join(src_path, info.url))
            local = os.path.join(dest_path, info.name)
            if info.is_dir:
                self.download_dir(remote, local)
            else:
                self.download_file(remote, local)

    def create_file(self, dest_path: str, src_file_path: str) -> None:
        """Upload a local file into the remote directory of ``dest_path``."""
        try:
            handle = open(src_file_path, "rb")
        except OSError as exc:
            raise HttpFsError(f"failed to open source file: {exc}") from exc
        with handle:
            self._upload(dest_path, os.path.basename(src_file_path), handle.read())

    def create_file_from_bytes(self, dest_path: str, data: bytes) -> None:
        """Upload ``data`` as the remote file ``dest_path``."""
        self._upload(dest_path, _base(dest_path), bytes(data))

    def _upload(self, dest_path: str, filename: str, data: bytes) -> None:
        url = self.base_url + _clean_path(_dir(dest_path))
        try:
            response = self.session.post(url, files={"files": (filename, data)})
        except requests.RequestException as exc:
            raise HttpFsError(f"failed to send request: {exc}") from exc
        with response:
            if response.status_code != 200:
                raise HttpFsError(f"upload failed with status: {_status_text(response)}")

    def create_file_from_url(self, dest_path: str, url: str) -> None:
        """Have the server download ``url`` into the directory of ``dest_path``."""
        self.add_download_task(_clean_path(_dir(dest_path)), url, _base(dest_path))

    def add_download_task(self, path: str, url: str, name: str = "") -> str:
        """Start a server-side download into ``path`` and return its task id."""
        body = {"method": "download", "url": url, "name": name}
        result = self._request("POST", self.base_url + _clean_path(path), body, decode=True)
        return (result or {}).get("taskId") or ""

    def get_download_task_status(self, task_id: str) -> DownloadTaskInfo:
        """Return the download task with id ``task_id``."""
        tasks = self.list_download_tasks([task_id], "")
        if not tasks:
            raise HttpFsError(f"task not found: {task_id}")
        return tasks[0]

    def list_download_tasks(
        self, task_ids: Iterable[str] | None = None, status: str = ""
    ) -> list[DownloadTaskInfo]:
        """List download tasks, optionally limited to ids and to a status."""
        body = {
            "or": [
                {
                    "taskIds": list(task_ids) if task_ids is not None else None,
                    "status": status,
                }
            ]
        }
        result = self._request("POST", self.base_url + _TASKS_URI, body, decode=True)
        return [DownloadTaskInfo.from_dict(task) for task in (result or {}).get("tasks") or []]