import threading
from datetime import datetime

import pytest
import requests

from fileshelf.downloads import DownloadStatus, DownloadTask
from fileshelf.listing import path_escape
from fileshelf.server import FAVICON, create_server, main


@pytest.fixture
def served(tmp_path):
    server = create_server(str(tmp_path), 0, "127.0.0.1")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base = f"http://127.0.0.1:{server.server_address[1]}"
    try:
        yield server, base, tmp_path
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


def test_get_file(served):
    _, base, root = served
    (root / "hello.txt").write_text("hi there")
    response = requests.get(f"{base}/hello.txt", timeout=5)
    assert response.status_code == 200
    assert response.text == "hi there"
    assert response.headers["Content-Type"].startswith("text/plain")


def test_get_missing(served):
    _, base, _ = served
    response = requests.get(f"{base}/absent", timeout=5)
    assert response.status_code == 404
    assert response.text == "404 not found"


def test_favicon(served):
    _, base, _ = served
    response = requests.get(f"{base}/favicon.ico", timeout=5)
    assert response.headers["Content-Type"] == "image/svg+xml"
    assert response.content == FAVICON


def test_get_directory_json(served):
    _, base, root = served
    (root / "sub").mkdir()
    (root / "a b.txt").write_bytes(b"12345")
    entries = requests.get(f"{base}/?json", timeout=5).json()
    assert [e["name"] for e in entries] == ["a b.txt", "sub"]
    assert entries[0]["size"] == 5
    assert entries[0]["url"] == path_escape("a b.txt")
    assert entries[1]["isDir"] is True


def test_get_directory_html(served):
    _, base, root = served
    (root / "sub").mkdir()
    (root / "sub" / "x.txt").write_text("x")
    response = requests.get(f"{base}/sub", timeout=5)
    assert response.headers["Content-Type"].startswith("text/html")
    assert "<script>start('/sub');</script>" in response.text
    assert "<script>onHasParentDirectory();</script>" in response.text
    assert "addRow('x.txt', 'x.txt', 0, 1," in response.text


def test_upload_files(served):
    _, base, root = served
    (root / "up").mkdir()
    response = requests.post(
        f"{base}/up",
        files=[("files", ("a.txt", b"alpha")), ("files", ("b.txt", b"beta"))],
        timeout=5,
    )
    assert response.text == "200 ok"
    assert (root / "up" / "a.txt").read_bytes() == b"alpha"
    assert (root / "up" / "b.txt").read_bytes() == b"beta"


def test_post_to_file_is_bad_request(served):
    _, base, root = served
    (root / "f.txt").write_text("x")
    response = requests.post(f"{base}/f.txt", json={"method": "createDir"}, timeout=5)
    assert response.status_code == 400
    assert response.text == "400 bad request"


def test_unknown_method_and_bad_json(served):
    _, base, _ = served
    assert requests.post(f"{base}/", json={"method": "nope"}, timeout=5).status_code == 400
    assert requests.post(f"{base}/", data=b"{oops", timeout=5).status_code == 400


def test_create_dir(served):
    _, base, root = served
    response = requests.post(
        f"{base}/", json={"method": "createDir", "name": "new dir/inner"}, timeout=5
    )
    assert response.status_code == 200
    assert response.json() == {"name": "new dir/inner", "url": "/" + path_escape("new dir/inner")}
    assert (root / "new dir" / "inner").is_dir()


def test_create_dir_outside_root(served):
    _, base, root = served
    response = requests.post(
        f"{base}/", json={"method": "createDir", "name": "../escaped"}, timeout=5
    )
    assert response.status_code == 400
    assert not (root.parent / "escaped").exists()


def test_delete_file(served):
    _, base, root = served
    (root / "gone.txt").write_text("x")
    (root / "tree").mkdir()
    (root / "tree" / "leaf").write_text("y")
    assert requests.post(f"{base}/", json={"method": "deleteFile", "name": "gone.txt"}, timeout=5).text == "200 ok"
    assert requests.post(f"{base}/", json={"method": "deleteFile", "name": "tree"}, timeout=5).text == "200 ok"
    assert not (root / "gone.txt").exists()
    assert not (root / "tree").exists()


def test_delete_missing(served):
    _, base, _ = served
    response = requests.post(f"{base}/", json={"method": "deleteFile", "name": "none"}, timeout=5)
    assert response.status_code == 404
    assert response.text == "file not found"


def test_logging(served):
    _, base, root = served
    for logs in (["first\n"], ["second\n", "third\n"]):
        response = requests.post(
            f"{base}/", json={"method": "logging", "name": "app", "logs": logs}, timeout=5
        )
        assert response.text == "200 ok"
    assert (root / "app.log").read_text() == "first\nsecond\nthird\n"


def test_download_bad_url(served):
    _, base, _ = served
    response = requests.post(f"{base}/", json={"method": "download", "url": "not a url"}, timeout=5)
    assert response.status_code == 500


def test_list_tasks(served):
    server, base, _ = served
    for task_id, status in (("a", "finished"), ("b", "pending")):
        server.manager.tasks[task_id] = DownloadTask(
            task_id=task_id,
            url="http://example.com/f",
            filename="f",
            filepath="f",
            status=DownloadStatus(status=status),
            started_at=datetime.now().astimezone(),
        )
    empty = requests.post(f"{base}/:tasks", json={}, timeout=5).json()
    assert empty == {"tasks": []}
    body = {"or": [{"taskIds": None, "status": "finished"}, {"taskIds": ["a", "b"], "status": ""}]}
    tasks = requests.post(f"{base}/:tasks", json=body, timeout=5).json()["tasks"]
    assert [t["taskId"] for t in tasks] == ["a", "b"]
    assert tasks[0]["status"]["status"] == "finished"
    assert requests.post(f"{base}/:tasks", data=b"[]", timeout=5).status_code == 400


def test_main_help_exits_cleanly(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0
    assert "--port" in capsys.readouterr().out