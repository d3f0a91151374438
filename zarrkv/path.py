import re
from typing import Iterator

from zarrkv.errors import InvalidPathError

_SLASH_RUNS = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """Canonicalize a logical hierarchy path.

    Backslashes become slashes, leading and trailing slashes are stripped and
    runs of slashes are collapsed. The root path normalizes to ``""``.
    """
    if not isinstance(path, str):
        raise InvalidPathError(f"path must be a string, found {type(path)}")
    path = path.replace("\\", "/").strip("/")
    path = _SLASH_RUNS.sub("/", path)
    if path:
        for segment in path.split("/"):
            if segment in (".", ".."):
                raise InvalidPathError(
                    f"path {path!r} contains a relative segment {segment!r}"
                )
    return path


def path_to_prefix(path: str) -> str:
    path = normalize_path(path)
    return f"{path}/" if path else ""


def join_path(root: str, path: str) -> str:
    root = normalize_path(root)
    path = normalize_path(path)
    if not root:
        return path
    if not path:
        return root
    return f"{root}/{path}"


def ancestor_paths(path: str) -> Iterator[str]:
    # root first, excluding `path` itself
    path = normalize_path(path)
    if not path:
        return
    yield ""
    segments = path.split("/")
    for i in range(1, len(segments)):
        yield "/".join(segments[:i])


def node_name(path: str) -> str:
    return normalize_path(path).rsplit("/", 1)[-1]
