# fileshelf

A small HTTP file server for sharing a directory. It lists directories as HTML or JSON,
accepts uploads, creates and deletes entries, appends to log files, and can fetch remote
URLs into the shared tree in background threads. A matching client, `HttpFs` in
`fileshelf.client`, talks to the server.

## Installation

```
pip install .
```

## Running the server

```
fileshelf --port 9008 --dir /srv/share
```

The options are:

- `-p`, `--port`: the port to listen on (default `9008`)
- `-d`, `--dir`: the directory to serve (default `.`)

The server listens on all interfaces and runs until interrupted with Ctrl-C.

### What the server offers

- `GET /some/dir/` returns an HTML listing of the directory: subdirectories first, then
  files, each group in name order.
- `GET /some/dir/?json` returns the listing as a JSON array. Each entry has `name`, `url`
  (the name escaped as a URL path segment), `size`, `sizeStr` (such as `512B` or
  `1.5MB`), `modTime` (Unix seconds), `modTimeStr` (`YYYY-MM-DD HH:MM:SS`, local time)
  and `isDir`.
- `GET /some/file` returns the file, with a content type guessed from its extension
  (`.apk`, `.ipa` and `.txt` are registered explicitly).
- `GET /favicon.ico` returns a built-in SVG icon.
- A path that does not exist answers `404 not found`.
- `POST /some/dir/` with a `multipart/form-data` body stores every `files` field in the
  directory, under the base name of its uploaded filename.
- `POST /some/dir/` with a JSON body runs one of these methods:
  - `{"method": "createDir", "name": "a/b"}` creates the directory and any missing
    parents, and returns `{"name": ..., "url": ...}`.
  - `{"method": "deleteFile", "name": "x"}` deletes a file or a whole directory tree;
    it answers `404 file not found` when there is nothing to delete.
  - `{"method": "logging", "name": "app", "logs": ["line\n"]}` appends the lines, as
    given, to `app.log` in the directory, creating it if needed.
  - `{"method": "download", "url": "https://example.com/file.bin"}` starts a background
    download into the directory and returns `{"taskId": ..., "filename": ""}`. The file
    name comes from the response's `Content-Disposition` header or else from the URL
    path. If the URL cannot be fetched the server answers `500` with the error.
- `createDir` and `deleteFile` refuse, with `400 bad request`, any name that would lead
  outside the served directory.
- `POST /:tasks` with `{"or": [{"taskIds": [...], "status": "finished"}]}` lists download
  tasks as `{"tasks": [...]}`. A task is listed when it matches any item of `or`, and
  only once. An empty or missing `taskIds` means all tasks, and an empty `status` means
  any status.

A task's status is `pending`, `downloading`, `finished` or `failed`. Each task reports
`taskId`, `url`, `filename`, `filepath` (relative to the served directory), `startedAt`,
`endAt`, and a `status` object with `status`, `totalSize`, `downloaded`, `speed` and
`errMsg`.

## Using the client

```python
from fileshelf.client import HttpFs, HttpFsError

fs = HttpFs("http://localhost:9008")

for entry in fs.list_files("/"):
    print(entry.name, entry.size_str, entry.is_dir, entry.full_url)

fs.create_dir("/newdir/parent")
fs.create_file_from_bytes("/newdir/hello.txt", b"hello")
fs.create_file("/newdir/ignored-name", "./notes.txt")   # stored as /newdir/notes.txt
fs.copy_from("./local_folder", "/remotedir")
fs.copy_to("/remotedir", "./mirror")
fs.write_log("/app", ["Log entry 1\n", "Log entry 2\n"])  # appends to /app.log
fs.delete_file("/newdir/hello.txt")

task_id = fs.add_download_task("/remotedir", "https://example.com/data.txt", "")
print(fs.get_download_task_status(task_id).status.status)
print(fs.list_download_tasks(None, "finished"))

try:
    fs.stat("/missing.txt")
except HttpFsError as exc:
    print(exc)
```

`HttpFs` takes an optional `requests.Session` as its second argument. Listings come back
as `FileInfo` objects and tasks as `DownloadTaskInfo` objects holding a `DownloadStatus`.

`create_file` puts the local file into the remote directory of the destination path,
under the local file's own name. `create_file_from_url` asks the server to download a
URL into the destination's directory; the server chooses the file name as described
above.

The client raises `HttpFsError` when a request fails, when the server answers with
anything other than `200`, when a looked-up path or task does not exist, or when a local
file cannot be read or written.

## Embedding the server

```python
from fileshelf.server import create_server

server = create_server("/srv/share", 9008, "127.0.0.1")
server.serve_forever()
```

The building blocks are usable on their own: `fileshelf.listing` formats sizes and
listings, and `fileshelf.downloads.DownloadManager` runs and tracks downloads.

## What it does not do

- There is no authentication and no HTTPS: anyone who can reach the port can read,
  upload and delete files.
- Download tasks are held in memory only and are lost when the server stops. The server
  never forgets ended tasks by itself; `DownloadManager.clear_ended_tasks` does that
  when called.
- A running download cannot be cancelled, paused or resumed.

## Tests

```
pip install ".[test]"
pytest
```