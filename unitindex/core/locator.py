"""Source location resolution for runtime-discovered classes.

Most methods visible on an application class are defined in third-party
code (the ORM base class, mixins from gems or site-packages). The resolver
walks a fixed list of tiers and returns the first first-party location,
falling back to the path the naming convention predicts.

Descriptors are duck-typed (see ``UnitDescriptor``) so the resolver runs
against a host introspection dump (``RecordDescriptor``) as well as live
Python classes (``ClassDescriptor``).
"""

import inspect
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from unitindex.core.conventions import DEFAULT_CONVENTIONS, Conventions
from unitindex.core.paths import is_first_party
from unitindex.utils.helpers import underscore
from unitindex.utils.logging import logger

TIER_DECLARED = "declared"
TIER_INSTANCE_METHOD = "instance_method"
TIER_TYPE_METHOD = "type_method"
TIER_CONVENTION_EXISTS = "convention_exists"
TIER_CONVENTION = "convention"


@runtime_checkable
class UnitDescriptor(Protocol):
    """What the resolver needs to know about a class.

    Only ``name`` is required; the three probes are optional and any of
    them may raise.
    """

    name: str


@dataclass(frozen=True)
class Resolution:
    """Resolved path plus the tier that produced it."""

    path: str
    tier: str


@dataclass
class RecordDescriptor:
    """Descriptor built from one runtime-manifest unit record."""

    name: str
    declared_at: str | None = None
    instance_methods: list[str] = field(default_factory=list)
    class_methods: list[str] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "RecordDescriptor":
        return cls(
            name=record["name"],
            declared_at=record.get("declared_at"),
            instance_methods=list(record.get("instance_methods") or []),
            class_methods=list(record.get("class_methods") or []),
        )

    def declared_location(self) -> str | None:
        return self.declared_at

    def instance_method_locations(self) -> list[str]:
        return self.instance_methods

    def type_method_locations(self) -> list[str]:
        return self.class_methods


class ClassDescriptor:
    """Descriptor over a live Python class, read through ``inspect``.

    Methods are enumerated in ``__dict__`` order along the MRO, so the
    class's own methods come before inherited ones.
    """

    def __init__(self, cls: type, name: str | None = None):
        self.cls = cls
        self.name = name or cls.__qualname__.replace(".", "::")

    def declared_location(self) -> str | None:
        return inspect.getsourcefile(self.cls)

    def instance_method_locations(self) -> list[str]:
        return list(self._method_files(lambda attr: inspect.isfunction(attr)))

    def type_method_locations(self) -> list[str]:
        return list(self._method_files(lambda attr: isinstance(attr, (classmethod, staticmethod))))

    def _method_files(self, predicate) -> Iterable[str]:
        for klass in inspect.getmro(self.cls):
            for attr in vars(klass).values():
                if not predicate(attr):
                    continue
                func = getattr(attr, "__func__", attr)
                try:
                    path = inspect.getsourcefile(func)
                except TypeError:
                    # builtins and C extensions have no source file
                    continue
                if path:
                    yield path


def _safe_segment(segment: str) -> bool:
    return bool(segment) and segment not in (".", "..") and "/" not in segment and os.sep not in segment


def _is_under(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # different drives on Windows
        return False


def convention_path(
    name: str,
    app_root: str | os.PathLike,
    convention_dir: str = "app/models",
    extension: str = ".rb",
) -> str:
    """Path the naming convention predicts for *name*.

    Segments that could leave the convention directory (empty, ``.``, ``..``
    or containing a path separator) are dropped. The result always lies
    under *app_root*.

    Examples:
        >>> convention_path("Admin::HTTPClient", "/srv/app")
        '/srv/app/app/models/admin/http_client.rb'
    """
    root = os.path.normpath(os.path.abspath(os.fspath(app_root)))
    base = os.path.normpath(os.path.join(root, convention_dir))
    if not _is_under(base, root):
        base = root

    separator = "::" if "::" in name else "."
    segments = [seg for seg in (underscore(s) for s in name.split(separator)) if _safe_segment(seg)]
    if not segments:
        segments = ["unknown"]
    segments[-1] = segments[-1] + extension

    path = os.path.normpath(os.path.join(base, *segments))
    if not _is_under(path, base):
        path = os.path.join(base, "unknown" + DEFAULT_CONVENTIONS.source_extension)
    return path


def _probe(descriptor: Any, probe: str) -> Any:
    method = getattr(descriptor, probe, None)
    if method is None:
        return None
    return method()


def _first_party(locations: Iterable[str] | None, app_root, excluded) -> str | None:
    for location in locations or ():
        if is_first_party(location, app_root, excluded):
            return _absolute(location, app_root)
    return None


def _absolute(path: str, app_root) -> str:
    path = os.fspath(path)
    if not os.path.isabs(path):
        path = os.path.join(os.fspath(app_root), path)
    return os.path.normpath(os.path.abspath(path))


def locate(
    descriptor: Any,
    app_root: str | os.PathLike,
    fallback: str | os.PathLike | None = None,
    *,
    convention_dir: str = "app/models",
    extension: str | None = None,
    conventions: Conventions | None = None,
) -> Resolution:
    """Resolve *descriptor* to a first-party path and report the tier used.

    Tiers, first match wins:
        1. declared location
        2. first first-party instance method location
        3. first first-party type-level method location
        4. convention path, if it exists
        5. convention path, unconditionally

    Errors raised by a probe only skip that tier.
    """
    conventions = conventions or DEFAULT_CONVENTIONS
    excluded = conventions.vendored_segments
    extension = extension if extension is not None else conventions.source_extension
    try:
        name = str(getattr(descriptor, "name", "") or "")
    except Exception as e:
        logger.debug(f"Descriptor name unavailable: {e}")
        name = ""

    try:
        declared = _probe(descriptor, "declared_location")
        if declared and is_first_party(declared, app_root, excluded):
            return Resolution(_absolute(declared, app_root), TIER_DECLARED)
    except Exception as e:
        logger.debug(f"Declared location probe failed for {name}: {e}")

    try:
        found = _first_party(_probe(descriptor, "instance_method_locations"), app_root, excluded)
        if found:
            return Resolution(found, TIER_INSTANCE_METHOD)
    except Exception as e:
        logger.debug(f"Instance method probe failed for {name}: {e}")

    try:
        found = _first_party(_probe(descriptor, "type_method_locations"), app_root, excluded)
        if found:
            return Resolution(found, TIER_TYPE_METHOD)
    except Exception as e:
        logger.debug(f"Type method probe failed for {name}: {e}")

    predicted = None
    try:
        if fallback and is_first_party(fallback, app_root, excluded):
            predicted = _absolute(fallback, app_root)
    except Exception as e:
        logger.debug(f"Fallback path rejected for {name}: {e}")
    if predicted is None:
        try:
            predicted = convention_path(name, app_root, convention_dir, extension)
        except Exception as e:
            logger.debug(f"Convention path failed for {name}: {e}")
            predicted = convention_path("", app_root)

    try:
        if os.path.exists(predicted):
            return Resolution(predicted, TIER_CONVENTION_EXISTS)
    except Exception as e:
        logger.debug(f"Convention path probe failed for {name}: {e}")

    return Resolution(predicted, TIER_CONVENTION)


def resolve_source_location(
    descriptor: Any,
    app_root: str | os.PathLike,
    fallback: str | os.PathLike | None = None,
    *,
    convention_dir: str = "app/models",
    extension: str | None = None,
    conventions: Conventions | None = None,
) -> str:
    """Best authored file path for *descriptor*; never raises, never None."""
    return locate(
        descriptor,
        app_root,
        fallback,
        convention_dir=convention_dir,
        extension=extension,
        conventions=conventions,
    ).path
