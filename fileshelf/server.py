"""HTTP file server: browse, upload, create, delete, log and download into a directory."""

from __future__ import annotations

import argparse
import json
import mimetypes
import os
import posixpath
import shutil
from contextlib import suppress
from email import policy
from email.parser import BytesParser
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, unquote, urlsplit

import requests

from .downloads import DownloadManager
from .listing import is_sub_dir, list_directory, path_escape, render_index, save_log

INDEX_TEMPLATE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Index</title>
<script>
var base = '/';
function start(p) { base = p.endsWith('/') ? p : p + '/'; document.title = 'Index of ' + p; }
function onHasParentDirectory() { addRow('..', '..', 1, 0, '', 0, ''); }
function addRow(name, url, isDir, size, sizeStr, modTime, modTimeStr) {
  var row = document.getElementById('rows').insertRow(), a = document.createElement('a');
  a.href = base + url + (isDir ? '/' : ''); a.textContent = name + (isDir ? '/' : '');
  row.insertCell().appendChild(a);
  row.insertCell().textContent = sizeStr;
  row.insertCell().textContent = modTimeStr;
}
</script></head>
<body><table><tbody id="rows"></tbody></table></body></html>
"""

FAVICON = (
    b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 16 16">'
    b'<path d="M1 3h5l2 2h7v9H1z" fill="#e8b43c"/></svg>'
)

_TEXT_TYPE = "text/plain; charset=utf-8"


def _normalize_uri(raw_path: str) -> str:
    decoded = unquote(raw_path)
    uri = posixpath.normpath("/" + decoded.lstrip("/"))
    return uri + "/" if decoded.endswith("/") and uri != "/" else uri


def _child(base: str, name: str) -> str:
    return os.path.normpath(os.path.join(base, name.lstrip("/")))


def _load_object(body: bytes) -> dict | None:
    try:
        data = json.loads(body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _field(data: dict, key: str, kind: type):
    """A string or list-of-strings field; missing means empty, wrong types raise ValueError."""
    value = data.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind) or (kind is list and not all(isinstance(v, str) for v in value)):
        raise ValueError(f"bad field {key}")
    return value


def _uploaded_files(content_type: str, body: bytes) -> list[tuple[str, bytes]]:
    message = BytesParser(policy=policy.default).parsebytes(
        b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    )
    if not message.is_multipart():
        raise ValueError("not a multipart body")
    return [
        (os.path.basename(part.get_filename()), part.get_payload(decode=True) or b"")
        for part in message.iter_parts()
        if part.get_param("name", header="content-disposition") == "files" and part.get_filename()
    ]


class _FileServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, root_dir: str) -> None:
        super().__init__(address, FileServerHandler)
        self.root_dir = root_dir
        self.manager = DownloadManager(root_dir)
        self.index_template = INDEX_TEMPLATE


class FileServerHandler(BaseHTTPRequestHandler):
    """Serves and changes the files below the server's root directory."""

    server_version = "fileshelf"

    def _send(self, status: int, body: bytes, content_type: str = _TEXT_TYPE) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _text(self, status: int, text: str) -> None:
        self._send(status, text.encode("utf-8"))

    def _json(self, payload) -> None:
        self._send(200, json.dumps(payload).encode("utf-8"), "application/json; charset=utf-8")

    def _local(self, uri: str) -> str:
        return os.path.join(self.server.root_dir, *(part for part in uri.split("/") if part))

    def do_GET(self) -> None:
        split = urlsplit(self.path)
        uri = _normalize_uri(split.path)
        if uri == "/favicon.ico":
            self._send(200, FAVICON, "image/svg+xml")
            return
        path = self._local(uri)
        if not os.path.exists(path):
            self._text(404, "404 not found")
        elif os.path.isdir(path):
            root_dir = self.server.root_dir
            try:
                if "json" in parse_qs(split.query, keep_blank_values=True):
                    self._json(list_directory(root_dir, uri))
                else:
                    html = render_index(root_dir, uri, self.server.index_template)
                    self._send(200, html.encode("utf-8"), "text/html")
            except OSError as exc:
                self._text(500, str(exc))
        else:
            self._serve_file(path)

    def _serve_file(self, path: str) -> None:
        try:
            handle = open(path, "rb")
        except OSError:
            self._text(404, "404 not found")
            return
        with handle:
            self.send_response(200)
            self.send_header(
                "Content-Type", mimetypes.guess_type(path)[0] or "application/octet-stream"
            )
            self.send_header("Content-Length", str(os.fstat(handle.fileno()).st_size))
            self.end_headers()
            shutil.copyfileobj(handle, self.wfile)

    def do_POST(self) -> None:
        uri = _normalize_uri(urlsplit(self.path).path)
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length > 0 else b""
        if uri == "/:tasks":
            self._list_tasks(body)
            return

        path = self._local(uri)
        if not os.path.exists(path):
            self._text(404, "404 not found")
            return
        if not os.path.isdir(path):
            self._text(400, "400 bad request")
            return

        if self.headers.get_content_type() == "multipart/form-data":
            with suppress(ValueError):
                for filename, data in _uploaded_files(self.headers.get("Content-Type", ""), body):
                    with suppress(OSError), open(os.path.join(path, filename), "wb") as out:
                        out.write(data)
                self._text(200, "200 ok")
                return

        data = _load_object(body)
        try:
            handled = data is not None and self._dispatch(uri, path, data)
        except ValueError:
            handled = False
        if not handled:
            self._text(400, "400 bad request")

    def _dispatch(self, uri: str, path: str, data: dict) -> bool:
        method = _field(data, "method", str)
        if method == "download":
            self._download(path, _field(data, "url", str))
        elif method == "createDir":
            self._create_dir(uri, path, _field(data, "name", str))
        elif method == "deleteFile":
            self._delete(path, _field(data, "name", str))
        elif method == "logging":
            name, logs = _field(data, "name", str), _field(data, "logs", list)
            with suppress(OSError):
                save_log(path, name, logs)
            self._text(200, "200 ok")
        else:
            return False
        return True

    def _download(self, path: str, url: str) -> None:
        try:
            task_id = self.server.manager.add_task(url, path)
        except (requests.RequestException, OSError) as exc:
            self._text(500, str(exc))
            return
        self._json({"taskId": task_id, "filename": ""})

    def _create_dir(self, uri: str, path: str, name: str) -> None:
        created = _child(path, name)
        if not is_sub_dir(self.server.root_dir, created):
            self._text(400, "400 bad request")
            return
        try:
            os.makedirs(created, mode=0o755, exist_ok=True)
        except OSError as exc:
            self._text(500, str(exc))
            return
        url = posixpath.normpath(uri.rstrip("/") + "/" + path_escape(name))
        self._json({"name": name, "url": url})

    def _delete(self, path: str, name: str) -> None:
        target = _child(path, name)
        if not os.path.exists(target):
            self._text(404, "file not found")
            return
        if not is_sub_dir(self.server.root_dir, target):
            self._text(400, "400 bad request")
            return
        try:
            if os.path.isdir(target) and not os.path.islink(target):
                shutil.rmtree(target)
            else:
                os.remove(target)
        except OSError as exc:
            self._text(500, str(exc))
            return
        self._text(200, "200 ok")

    def _list_tasks(self, body: bytes) -> None:
        data = _load_object(body)
        items = (data or {}).get("or") or []
        try:
            if data is None or not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
                raise ValueError("bad task query")
            queries = [(_field(i, "taskIds", list), _field(i, "status", str)) for i in items]
        except ValueError:
            self._text(400, "400 bad request")
            return
        found: dict[str, dict] = {}
        for task_ids, status in queries:
            for task in self.server.manager.list(task_ids, status):
                found.setdefault(task.task_id, task.to_dict())
        self._json({"tasks": list(found.values())})


def create_server(root_dir: str = ".", port: int = 9008, host: str = "") -> ThreadingHTTPServer:
    """Create (but do not start) a file server for ``root_dir``."""
    mimetypes.add_type("application/vnd.android.package-archive", ".apk")
    mimetypes.add_type("application/vnd.iphone", ".ipa")
    mimetypes.add_type("text/plain", ".txt")
    return _FileServer((host, int(port)), root_dir)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="fileserver", description="fileserver")
    parser.add_argument("-p", "--port", type=int, default=9008, help="http listen port")
    parser.add_argument("-d", "--dir", default=".", help="root dir")
    args = parser.parse_args(argv)
    with create_server(args.dir, args.port) as server:
        print(f"Listening on :{args.port}, serving {os.path.abspath(args.dir)}")
        with suppress(KeyboardInterrupt):
            server.serve_forever()
    return 0