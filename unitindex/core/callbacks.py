"""Static side-effect analysis of lifecycle callbacks.

Given a model's composite source (concerns inlined) and one callback
record, the analyzer finds the callback's method body anywhere in the text
and classifies what it does: columns written, jobs enqueued, services
called, mailers triggered and database reads.

Bodies are delimited without a parser. A header ending in ``:`` is a
Python-style definition and its body is the indented block below it;
anything else is counted keyword by keyword until the matching ``end``.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field
from typing import Any

from unitindex.core.conventions import DEFAULT_CONVENTIONS, Conventions
from unitindex.utils.logging import logger

SIDE_EFFECT_KEYS = (
    "columns_written",
    "jobs_enqueued",
    "services_called",
    "mailers_triggered",
    "database_reads",
)

_METHOD_NAME = re.compile(r"[A-Za-z_]\w*[!?=]?")

# Modifiers that may precede ``def`` on the same line (``private def x``, ``async def x``).
_DEF_MODIFIERS = r"(?:(?:private|protected|public|private_class_method|module_function|async)[ \t]+)*"

# Ruby keywords that open a block terminated by ``end`` when they start a statement.
_OPENERS = re.compile(r"(?:def|class|module|if|unless|while|until|case|begin|for)\b")
_LOOP_OPENERS = re.compile(r"(?:while|until|for)\b")
_ASSIGNED_OPENER = re.compile(r"(?<![=!<>])=\s*(?:if|unless|case|begin)\b")
_DO = re.compile(r"\bdo\b")
_END = re.compile(r"(?<![.\w])end\b(?![?!:])")
_ENDLESS_DEF = re.compile(r"def\s+(?:self\.)?\w+[!?]?(?:\s*\([^)]*\)\s*|\s+)=(?![=~>])")

_STRING_LITERAL = re.compile(r""""(?:\\.|[^"\\])*"|'(?:\\.|[^'\\])*'""")

_SELF_ASSIGN = re.compile(r"\bself\.(\w+)\s*=(?![=~>])")
_SELF_INDEX_ASSIGN = re.compile(r"""\bself\[\s*:?['"]?(\w+)['"]?\s*\]\s*=(?![=~>])""")
_WRITER_KEY = re.compile(r"""(?:^|[\s,({])(?::|['"])?(\w+)['"]?\s*(?::(?!:)|=>|=(?![=>]))""")


@dataclass
class Callback:
    """One lifecycle callback registration."""

    type: str
    filter: str | None
    kind: str | None = None
    conditions: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def empty_side_effects() -> dict[str, list[str]]:
    return {key: [] for key in SIDE_EFFECT_KEYS}


def is_named_filter(name: Any) -> bool:
    """True when *name* is a plain method name (not a proc, lambda or block)."""
    return isinstance(name, str) and bool(_METHOD_NAME.fullmatch(name))


def _strip_code(line: str) -> str:
    """Remove string literals and trailing comments from one line."""
    without_strings = _STRING_LITERAL.sub('""', line)
    return without_strings.split("#", 1)[0]


def _split_lines(text: str) -> list[str]:
    # Only "\n" separates lines so indexes agree with str.count("\n").
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


class CallbackAnalyzer:
    """Side-effect analyzer bound to one class's source and fields.

    Example:
        analyzer = CallbackAnalyzer(source, ["email", "status"])
        enriched = analyzer.analyze({"type": "before_save", "filter": "normalize_email"})
        enriched["side_effects"]["columns_written"]  # ["email"]
    """

    def __init__(
        self,
        source_text: str | None,
        known_fields: Iterable[str] | None = None,
        conventions: Conventions | None = None,
    ):
        self.source_text = source_text or ""
        self.known_fields = frozenset(str(f) for f in known_fields or ())
        self.conventions = conventions or DEFAULT_CONVENTIONS
        self._lines = _split_lines(self.source_text)

    def analyze(self, callback: Callback | Mapping[str, Any]) -> dict[str, Any]:
        """Return a copy of *callback* with a ``side_effects`` record attached.

        Never raises; a failure inside the analysis is logged and yields the
        empty record.
        """
        record = callback.to_dict() if isinstance(callback, Callback) else dict(callback)
        try:
            record["side_effects"] = self.side_effects_for(record.get("filter"))
        except Exception as e:
            logger.warning(f"Callback analysis failed for {record.get('filter')!r}: {e}")
            record["side_effects"] = empty_side_effects()
        return record

    def side_effects_for(self, filter_name: Any) -> dict[str, list[str]]:
        if not is_named_filter(filter_name):
            return empty_side_effects()

        body = self.method_body(filter_name)
        if body is None:
            logger.debug(f"No definition found for callback {filter_name}")
            return empty_side_effects()

        return {
            "columns_written": self.detect_columns_written(body),
            "jobs_enqueued": self.detect_jobs_enqueued(body),
            "services_called": self.detect_services_called(body),
            "mailers_triggered": self.detect_mailers_triggered(body),
            "database_reads": self.detect_database_reads(body),
        }

    # -- body location -------------------------------------------------------

    def _header_pattern(self, name: str) -> re.Pattern[str]:
        tail = "" if name[-1] in "!?=" else r"(?![\w!?=])"
        return re.compile(
            rf"(?:^|;)[ \t]*{_DEF_MODIFIERS}(def[ \t]+(?:self\.)?{re.escape(name)}{tail})",
            re.MULTILINE,
        )

    def method_body(self, name: str) -> str | None:
        """Source of the first definition of *name*, or None if absent."""
        match = self._header_pattern(name).search(self.source_text)
        if match is None:
            return None

        start = match.start(1)
        line_index = self.source_text.count("\n", 0, start)
        line_start = self.source_text.rfind("\n", 0, start) + 1
        header_line = self._lines[line_index]
        first = header_line[start - line_start :]

        if _strip_code(header_line).rstrip().endswith(":"):
            return self._indented_body(line_index)
        return self._keyword_body(first, line_index)

    def _indented_body(self, line_index: int) -> str:
        header = self._lines[line_index]
        base = _indent(header)
        body = [header]
        for line in self._lines[line_index + 1 :]:
            if line.strip() and _indent(line) <= base:
                break
            body.append(line)
        return "".join(body)

    def _keyword_body(self, first: str, line_index: int) -> str:
        if _ENDLESS_DEF.match(_strip_code(first).strip()):
            return first

        depth = 0
        body: list[str] = []
        for offset, line in enumerate(self._lines[line_index:]):
            text = first if offset == 0 else line
            body.append(text)
            for segment in _strip_code(text).split(";"):
                depth += self._depth_change(segment.strip())
                if depth <= 0:
                    return "".join(body)
        return "".join(body)

    @staticmethod
    def _depth_change(segment: str) -> int:
        if not segment:
            return 0
        change = 0
        if _OPENERS.match(segment) and not _ENDLESS_DEF.match(segment):
            change += 1
        change += len(_ASSIGNED_OPENER.findall(segment))
        dos = len(_DO.findall(segment))
        if dos and _LOOP_OPENERS.match(segment):
            dos -= 1
        change += dos
        change -= len(_END.findall(segment))
        return change

    # -- detectors -----------------------------------------------------------

    def detect_columns_written(self, body: str) -> list[str]:
        columns: set[str] = set()
        columns.update(_SELF_ASSIGN.findall(body))
        columns.update(_SELF_INDEX_ASSIGN.findall(body))
        columns.update(self.conventions.single_writer_call.findall(body))
        for args in self.conventions.multi_writer_call.findall(body):
            columns.update(_WRITER_KEY.findall(args))
        return sorted(c for c in columns if c in self.known_fields)

    def detect_jobs_enqueued(self, body: str) -> list[str]:
        return sorted(set(self.conventions.job_enqueue.findall(body)))

    def detect_services_called(self, body: str) -> list[str]:
        return sorted(set(self.conventions.service_reference.findall(body)))

    def detect_mailers_triggered(self, body: str) -> list[str]:
        return sorted(set(self.conventions.mailer_reference.findall(body)))

    def detect_database_reads(self, body: str) -> list[str]:
        return [m for m in self.conventions.read_methods if self.conventions.read_call(m).search(body)]


def analyze_callback(
    callback: Callback | Mapping[str, Any],
    source_text: str | None,
    known_fields: Iterable[str] | None = None,
    conventions: Conventions | None = None,
) -> dict[str, Any]:
    """One-shot form of ``CallbackAnalyzer(...).analyze(callback)``."""
    return CallbackAnalyzer(source_text, known_fields, conventions).analyze(callback)
