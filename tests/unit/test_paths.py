"""Tests for remote path resolution."""

import pytest

from agavelink.core.paths import resolve_remote_path


@pytest.mark.parametrize(
    ("candidate", "cwd", "expected"),
    [
        ("..", "/a/b", "/a"),
        ("c/d", "/a/b", "/a/b/c/d"),
        ("/x/../y", "/a/b", "/y"),
        (".", "/a", "/a"),
        ("./c/./d/", "/a", "/a/c/d"),
        ("//x///y", "/a", "/x/y"),
        ("/", "/a/b", ""),
        ("", "/a/b", "/a/b"),
        ("c", "", "/c"),
    ],
)
def test_resolve(candidate, cwd, expected):
    assert resolve_remote_path(candidate, cwd) == expected


def test_excess_parent_segments_stop_at_root():
    """'..' past the root is ignored rather than failing."""
    assert resolve_remote_path("../../x", "/a") == "/x"
    assert resolve_remote_path("/../..", "/a") == ""


def test_absolute_candidate_ignores_cwd():
    assert resolve_remote_path("/alice/data", "/bob/work") == "/alice/data"
