import os
from urllib.parse import unquote

import pytest

from fileshelf.listing import (
    human_readable_size,
    is_sub_dir,
    list_directory,
    path_escape,
    render_index,
    save_log,
)


@pytest.mark.parametrize(
    "size, expected",
    [(0, "0B"), (1023, "1023B"), (1024, "1.0KB"), (1024 * 1024, "1.0MB"), (1024**3, "1.0GB")],
)
def test_human_readable_size(size, expected):
    assert human_readable_size(size) == expected


def test_human_readable_size_units_grow():
    assert human_readable_size(1024 * 1024 - 1).endswith("KB")
    assert human_readable_size(1024**3 - 1).endswith("MB")
    assert human_readable_size(5 * 1024**4).endswith("GB")


def test_path_escape_space_and_slash():
    assert path_escape("a b") == "a%20b"
    assert "/" not in path_escape("x/y")


def test_path_escape_keeps_segment_safe_characters():
    assert path_escape("a:b@c&d=e+f$g") == "a:b@c&d=e+f$g"
    assert path_escape("plain-name_1.txt~") == "plain-name_1.txt~"


@pytest.mark.parametrize("name", ["it's here", "50% off", "中文.txt", "a?b#c", "x;y,z"])
def test_path_escape_round_trip(name):
    escaped = path_escape(name)
    assert unquote(escaped) == name
    assert " " not in escaped and "?" not in escaped and "#" not in escaped


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "b_dir").mkdir()
    (tmp_path / "a.txt").write_bytes(b"hello")
    (tmp_path / "c file.bin").write_bytes(b"x" * 2048)
    (tmp_path / "b_dir" / "inner.txt").write_bytes(b"abc")
    return tmp_path


def test_list_directory_sorted_and_described(tree):
    entries = list_directory(str(tree), "/")
    assert [e["name"] for e in entries] == ["a.txt", "b_dir", "c file.bin"]
    by_name = {e["name"]: e for e in entries}
    assert by_name["a.txt"]["size"] == 5
    assert by_name["a.txt"]["isDir"] is False
    assert by_name["b_dir"]["isDir"] is True
    assert by_name["c file.bin"]["url"] == path_escape("c file.bin")
    for entry in entries:
        assert entry["sizeStr"] == human_readable_size(entry["size"])
        assert entry["modTime"] == int(os.stat(tree / entry["name"]).st_mtime)


def test_list_directory_subdirectory(tree):
    entries = list_directory(str(tree), "/b_dir")
    assert [e["name"] for e in entries] == ["inner.txt"]


def test_list_directory_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        list_directory(str(tmp_path), "/nope")


def test_render_index_root(tree):
    html = render_index(str(tree), "/", "<html>")
    assert html.startswith("<html><script>start('/');</script>")
    assert "onHasParentDirectory" not in html
    dir_row = html.index("addRow('b_dir'")
    file_row = html.index("addRow('a.txt'")
    assert dir_row < file_row
    assert "addRow('b_dir', 'b_dir', 1, 0, ''," in html
    assert f"addRow('c file.bin', '{path_escape('c file.bin')}', 0, 2048, '{human_readable_size(2048)}'," in html


def test_render_index_subdirectory_and_quotes(tree):
    (tree / "b_dir" / "it's.txt").write_text("q")
    html = render_index(str(tree), "/b_dir", "")
    assert "<script>start('/b_dir');</script>" in html
    assert "<script>onHasParentDirectory();</script>" in html
    assert "addRow('it\\'s.txt'" in html


def test_is_sub_dir(tmp_path):
    parent = tmp_path / "a" / "b"
    assert is_sub_dir(str(parent), str(parent))
    assert is_sub_dir(str(parent), str(parent / "c" / "d"))
    assert not is_sub_dir(str(parent), str(tmp_path / "a" / "bc"))
    assert not is_sub_dir(str(parent), str(parent / ".." / "x"))


def test_save_log_creates_and_appends(tmp_path):
    save_log(str(tmp_path), "run", ["one\n", "two\n"])
    save_log(str(tmp_path), "run", ["three\n"])
    assert (tmp_path / "run.log").read_text() == "one\ntwo\nthree\n"


def test_save_log_missing_directory(tmp_path):
    with pytest.raises(OSError):
        save_log(str(tmp_path / "absent"), "run", ["x"])