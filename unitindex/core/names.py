"""Registry of known domain-entity names, compiled into one matcher.

Scanning source text for capitalized identifiers alone produces a flood of
false positives (framework classes, English words, locals). Anchoring
matches to the names of classes that actually exist in the application
turns that heuristic into a precise one.

The registry is built lazily on first use from a loader callable, cached
for the life of the object, and rebuilt after ``reset()``. Building is
guarded by a lock so concurrent first use runs the loader once.
"""

import re
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from unitindex.utils.helpers import class_name_from_path
from unitindex.utils.logging import logger

# Matches nothing; used when no names are registered.
NEVER_MATCHES = re.compile(r"(?!)")

NameLoader = Callable[[], Iterable[str]]


class NameRegistry:
    """Lazily built, resettable set of known domain names.

    Example:
        registry = NameRegistry(lambda: ["User", "Post"])
        registry.find_all("User.find(1); Room.find(2)")  # ["User"]
    """

    def __init__(self, loader: NameLoader | None = None):
        self._loader = loader
        self._lock = threading.Lock()
        self._names: tuple[str, ...] | None = None
        self._pattern: re.Pattern[str] | None = None

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "NameRegistry":
        """Registry over a fixed set of names."""
        frozen = tuple(names)
        return cls(lambda: frozen)

    def use_loader(self, loader: NameLoader | None) -> None:
        """Swap the loader and drop the cache."""
        with self._lock:
            self._loader = loader
            self._names = None
            self._pattern = None

    def seed(self, names: Iterable[str]) -> None:
        """Replace the loader with a fixed set of names (tests, manifests)."""
        frozen = tuple(names)
        self.use_loader(lambda: frozen)

    def reset(self) -> None:
        """Clear the cache; the next lookup re-runs the loader."""
        with self._lock:
            self._names = None
            self._pattern = None

    @property
    def is_built(self) -> bool:
        return self._pattern is not None

    def names(self) -> tuple[str, ...]:
        """Sorted, unique registered names."""
        self._ensure_built()
        return self._names

    def known_names(self) -> re.Pattern[str]:
        """Word-bounded alternation over all registered names."""
        self._ensure_built()
        return self._pattern

    def find_all(self, text: str | None) -> list[str]:
        """Registered names occurring in *text*, unique, in first-seen order."""
        if not text:
            return []
        seen: dict[str, None] = {}
        for match in self.known_names().finditer(text):
            seen.setdefault(match.group(0), None)
        return list(seen)

    def __contains__(self, name: str) -> bool:
        return name in self.names()

    def _ensure_built(self) -> None:
        if self._pattern is not None:
            return
        with self._lock:
            if self._pattern is not None:
                return
            names = self._load()
            self._names = names
            self._pattern = build_pattern(names)
            logger.debug(f"Name registry built with {len(names)} names")

    def _load(self) -> tuple[str, ...]:
        if self._loader is None:
            return ()
        raw = self._loader()
        return tuple(sorted({str(n) for n in raw if n}))


def build_pattern(names: Iterable[str]) -> re.Pattern[str]:
    """Compile *names* into one word-bounded alternation.

    Longer names come first so ``Admin::User`` wins over ``Admin`` at the
    same position. Names are escaped; ``App::V2.User`` matches literally.
    """
    ordered = sorted(set(names), key=lambda n: (-len(n), n))
    if not ordered:
        return NEVER_MATCHES
    alternation = "|".join(re.escape(n) for n in ordered)
    return re.compile(rf"\b(?:{alternation})\b")


def names_from_subclasses(base: type) -> NameLoader:
    """Loader that walks the live subclass tree of *base* (Python hosts).

    Abstract or anonymous classes without a usable ``__qualname__`` are
    skipped; nested classes use ``::`` as namespace separator.
    """

    def load() -> list[str]:
        found: list[str] = []
        stack = list(base.__subclasses__())
        seen: set[type] = set()
        while stack:
            cls = stack.pop()
            if cls in seen:
                continue
            seen.add(cls)
            stack.extend(cls.__subclasses__())
            qualname = getattr(cls, "__qualname__", "")
            if not qualname or "<locals>" in qualname:
                continue
            found.append(qualname.replace(".", "::"))
        return found

    return load


def names_from_files(
    app_root: str | Path,
    convention_dir: str = "app/models",
    extension: str = ".rb",
    skip_dirs: Iterable[str] = ("concerns",),
) -> NameLoader:
    """Loader that derives names from the file layout (no live object model).

    ``app/models/admin/user.rb`` registers ``Admin::User``.
    """

    def load() -> list[str]:
        base = Path(app_root) / convention_dir
        if not base.is_dir():
            return []
        skipped = set(skip_dirs)
        return [
            class_name_from_path(path, base)
            for path in sorted(base.rglob(f"*{extension}"))
            if not skipped.intersection(path.relative_to(base).parts[:-1])
        ]

    return load


_default_registry = NameRegistry()


def default_registry() -> NameRegistry:
    """The process-wide registry used when callers do not inject one."""
    return _default_registry
