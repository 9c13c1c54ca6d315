"""First-party vs vendored path classification."""

import os
from collections.abc import Iterable
from pathlib import PurePosixPath

from unitindex.core.conventions import DEFAULT_CONVENTIONS


def _parts(path: str) -> tuple[str, ...]:
    return tuple(p for p in PurePosixPath(path.replace("\\", "/")).parts if p not in ("", "/"))


def _contains_segment(parts: tuple[str, ...], segment: tuple[str, ...]) -> bool:
    width = len(segment)
    if width == 0:
        return False
    return any(parts[i : i + width] == segment for i in range(len(parts) - width + 1))


def is_first_party(
    path: str | os.PathLike | None,
    app_root: str | os.PathLike,
    excluded_segments: Iterable[str] | None = None,
) -> bool:
    """Return True if *path* is application source under *app_root*.

    Relative paths are read against *app_root*. The check is lexical
    (``..`` is collapsed, symlinks are not followed). A path under the root
    that passes through a vendored directory (``vendor/bundle``,
    ``node_modules``, ...) is third-party even though it lives in the tree.

    Args:
        path: Candidate file path; None and "" are never first-party.
        app_root: The application root directory.
        excluded_segments: Vendored directory segments; multi-part segments
            such as ``vendor/bundle`` match consecutive path components.
            Defaults to the configured conventions.

    Returns:
        True only for first-party source paths.
    """
    if path is None or str(path) == "" or not str(app_root):
        return False

    root = os.path.normpath(os.path.abspath(os.fspath(app_root)))
    candidate = os.fspath(path)
    if not os.path.isabs(candidate):
        candidate = os.path.join(root, candidate)
    candidate = os.path.normpath(candidate)

    if candidate != root and not candidate.startswith(root.rstrip(os.sep) + os.sep):
        return False

    below_root = _parts(os.path.relpath(candidate, root))
    if excluded_segments is None:
        excluded_segments = DEFAULT_CONVENTIONS.vendored_segments

    return not any(_contains_segment(below_root, _parts(segment)) for segment in excluded_segments)
