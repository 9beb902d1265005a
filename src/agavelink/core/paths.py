"""Remote path normalization against the remote working directory."""

from __future__ import annotations

SEPARATOR = "/"


def _walk(segments: list[str], stack: list[str]) -> None:
    for segment in segments:
        if segment == "." or segment == "":
            continue
        if segment == "..":
            # Excess '..' stays at the root.
            if stack:
                stack.pop()
            continue
        stack.append(segment)


def resolve_remote_path(candidate: str, cwd: str) -> str:
    """Normalize ``candidate`` into an absolute remote path.

    A candidate starting with '/' is resolved on its own; anything else is
    resolved below ``cwd``. The result has a leading '/' and no trailing one;
    the root is returned as the empty string.

    Example:
        resolve_remote_path("c/d", "/a/b") -> "/a/b/c/d"
        resolve_remote_path("../../x", "/a") -> "/x"
    """
    stack: list[str] = []
    if not candidate.startswith(SEPARATOR):
        _walk(cwd.split(SEPARATOR), stack)
    _walk(candidate.split(SEPARATOR), stack)
    return "".join(SEPARATOR + segment for segment in stack)
