"""Regex vocabulary of the conventions the engine recognizes.

The scanner, the callback analyzer and the path classifier all read their
naming conventions (class-name suffixes, async/read verbs, column writers,
vendored directory segments) from one ``Conventions`` value, so a project
can tune the vocabulary in ``.unitindex/config.json`` without touching the
heuristics themselves.
"""

import re
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from unitindex.config import DEFAULTS

_DEFAULTS = DEFAULTS["conventions"]


def _alternation(words: tuple[str, ...]) -> str:
    # Longest first so "update_columns" is tried before "update".
    return "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))


@dataclass(frozen=True)
class Conventions:
    """Immutable naming vocabulary shared by every scanner."""

    vendored_segments: tuple[str, ...] = tuple(_DEFAULTS["vendored_segments"])
    service_suffixes: tuple[str, ...] = tuple(_DEFAULTS["service_suffixes"])
    job_suffixes: tuple[str, ...] = tuple(_DEFAULTS["job_suffixes"])
    mailer_suffixes: tuple[str, ...] = tuple(_DEFAULTS["mailer_suffixes"])
    async_methods: tuple[str, ...] = tuple(_DEFAULTS["async_methods"])
    read_methods: tuple[str, ...] = tuple(_DEFAULTS["read_methods"])
    single_column_writers: tuple[str, ...] = tuple(_DEFAULTS["single_column_writers"])
    multi_column_writers: tuple[str, ...] = tuple(_DEFAULTS["multi_column_writers"])
    source_extension: str = _DEFAULTS["source_extension"]

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> "Conventions":
        """Build from a loaded runtime config (see unitindex.config)."""
        section = cfg.get("conventions", {})
        kwargs: dict[str, Any] = {}
        for name in cls.__dataclass_fields__:
            if name not in section:
                continue
            value = section[name]
            kwargs[name] = value if isinstance(value, str) else tuple(value)
        return cls(**kwargs)

    # -- compiled patterns ---------------------------------------------------

    @cached_property
    def service_reference(self) -> re.Pattern[str]:
        """``FooService.call`` / ``FooService::Result``."""
        return re.compile(rf"\b(\w+(?:{_alternation(self.service_suffixes)}))(?:\.|::)")

    @cached_property
    def job_reference(self) -> re.Pattern[str]:
        """``FooJob.perform_later`` / ``FooWorker.perform_async`` and ``.set(...)`` chains."""
        return re.compile(
            rf"\b(\w+(?:{_alternation(self.job_suffixes)}))(?:\.set\([^)]*\))?\.perform"
        )

    @cached_property
    def job_enqueue(self) -> re.Pattern[str]:
        """Job dispatch through one of the async verbs only."""
        return re.compile(
            rf"\b(\w+(?:{_alternation(self.job_suffixes)}))"
            rf"(?:\.set\([^)]*\))?\.(?:{_alternation(self.async_methods)})\b"
        )

    @cached_property
    def mailer_reference(self) -> re.Pattern[str]:
        """``UserMailer.welcome``."""
        return re.compile(rf"\b(\w+(?:{_alternation(self.mailer_suffixes)}))\.")

    @cached_property
    def single_writer_call(self) -> re.Pattern[str]:
        """``update_column(:status, ...)`` / ``write_attribute("name", ...)``."""
        return re.compile(
            rf"\b(?:{_alternation(self.single_column_writers)})"
            r"\s*\(?\s*[:'\"](\w+)"
        )

    @cached_property
    def multi_writer_call(self) -> re.Pattern[str]:
        """``update_columns(status: ..., role: ...)``; group 1 is the argument list."""
        return re.compile(
            rf"\b(?:{_alternation(self.multi_column_writers)})"
            r"\s*\(([^)]*)\)",
            re.DOTALL,
        )

    def read_call(self, method: str) -> re.Pattern[str]:
        """``.where`` / ``.exists?`` as a method call, not a longer name."""
        tail = r"(?![\w?!])" if method[-1:].isalnum() or method[-1:] == "_" else ""
        return re.compile(rf"\.{re.escape(method)}{tail}")


DEFAULT_CONVENTIONS = Conventions()
