"""Mailer extractor."""

import re

from unitindex.core.collector import Candidate
from unitindex.core.scanner import merge_dependencies, scan
from unitindex.core.units import Dependency, ExtractedUnit, SubChunk, UnitType, annotate_source
from unitindex.extractors import BaseExtractor
from unitindex.utils.helpers import underscore

_MAILER_CLASS = re.compile(
    r"^\s*class\s+[\w:]+\s*<\s*(?:ActionMailer::Base|[\w:]*Mailer)\b", re.MULTILINE
)
_DEF = re.compile(r"^([ \t]*)def\s+(self\.)?(\w+[!?]?)", re.MULTILINE)
_VISIBILITY = re.compile(r"^[ \t]*(private|protected)\s*$", re.MULTILINE)
_DEFAULT_OPTION = re.compile(r"""(from|reply_to|cc|bcc):\s*(['"])(.*?)\2""")
_DEFAULT_LINE = re.compile(r"^\s*default\s+(.+)$", re.MULTILINE)
_LAYOUT = re.compile(r"""layout\s+['":](\w+)""")
_HELPER = re.compile(r"helper\s+[:\s]?(\w+)")
_INCLUDED_HELPER = re.compile(r"include\s+(\w+Helper)")
_URL_HELPER = re.compile(r"\b(\w+)_(?:url|path)\b")
_ACTION_CALLBACK = re.compile(r"^\s*(before_action|after_action|around_action)\s+:(\w+[!?]?)", re.MULTILINE)

TEMPLATE_EXTENSIONS = (".html.erb", ".text.erb", ".html.slim", ".text.slim", ".html.haml", ".text.haml")


def public_actions(source: str) -> list[str]:
    """Instance methods defined before the first ``private``/``protected``."""
    cutoff = _VISIBILITY.search(source)
    public = source[: cutoff.start()] if cutoff else source
    actions = []
    for _indent, singleton, name in _DEF.findall(public):
        if singleton or name == "initialize" or name in actions:
            continue
        actions.append(name)
    return actions


def extract_defaults(source: str) -> dict[str, str]:
    defaults = {}
    for line in _DEFAULT_LINE.findall(source):
        for key, _quote, value in _DEFAULT_OPTION.findall(line):
            defaults[key] = value
    return defaults


def extract_helpers(source: str) -> list[str]:
    helpers = _HELPER.findall(source) + _INCLUDED_HELPER.findall(source)
    return list(dict.fromkeys(helpers))


class MailerExtractor(BaseExtractor):
    """Extracts mailers and one chunk per mail action."""

    unit_type = UnitType.MAILER
    label = "mailer"
    source_dirs = ("app/mailers",)
    priority = 30

    def extract_candidate(self, candidate: Candidate) -> ExtractedUnit | None:
        source = self.read_candidate(candidate)
        if not _MAILER_CLASS.search(source):
            return None

        name = self.class_name(source, candidate)
        actions = public_actions(source)
        templates = self.discover_templates(name, actions)
        layout = _LAYOUT.search(source)

        unit = ExtractedUnit(
            unit_type=self.unit_type,
            identifier=name,
            file_path=candidate.file_path_hint,
            metadata={
                "actions": actions,
                "defaults": extract_defaults(source),
                "callbacks": [
                    {"type": cb_type, "filter": method} for cb_type, method in _ACTION_CALLBACK.findall(source)
                ],
                "layout": layout.group(1) if layout else None,
                "helpers": extract_helpers(source),
                "templates": templates,
                "action_count": len(actions),
                "loc": sum(1 for line in source.splitlines() if line.strip() and not line.strip().startswith("#")),
            },
        )
        unit.source_code = annotate_source(source, "Mailer", name, {"Actions": actions})
        unit.add_dependencies(self.dependencies(source))
        unit.chunks = self.action_chunks(name, source, actions, templates)
        return unit

    def dependencies(self, source: str) -> list[Dependency]:
        routes = [
            Dependency("route", route, "url_helper")
            for route in dict.fromkeys(_URL_HELPER.findall(source))
        ]
        return merge_dependencies(
            scan(source, "model", registry=self.registry),
            scan(source, "service", conventions=self.conventions),
            routes,
        )

    def discover_templates(self, name: str, actions: list[str]) -> dict[str, list[str]]:
        view_dir = self.app_root.joinpath("app", "views", *(underscore(s) for s in name.split("::")))
        templates = {}
        for action in actions:
            found = [
                (view_dir / f"{action}{ext}").relative_to(self.app_root).as_posix()
                for ext in TEMPLATE_EXTENSIONS
                if (view_dir / f"{action}{ext}").is_file()
            ]
            if found:
                templates[action] = found
        return templates

    def action_chunks(
        self, name: str, source: str, actions: list[str], templates: dict[str, list[str]]
    ) -> list[SubChunk]:
        chunks = []
        for action in actions:
            body = _action_source(source, action)
            if not body.strip():
                continue
            found = templates.get(action, [])
            content = (
                f"# Mailer: {name}\n"
                f"# Action: {action}\n"
                f"# Templates: {', '.join(found) if found else 'none found'}\n\n"
                f"{body}"
            )
            chunks.append(SubChunk.for_unit(name, action, "mail_action", content, action=action, templates=found))
        return chunks


def _action_source(source: str, action: str) -> str:
    """Lines of *action* from its ``def`` to the ``end`` at the same indent."""
    lines = source.splitlines(keepends=True)
    for i, line in enumerate(lines):
        match = _DEF.match(line)
        if not match or match.group(3) != action or match.group(2):
            continue
        indent = match.group(1)
        body = [line]
        for following in lines[i + 1 :]:
            body.append(following)
            if following.rstrip() == f"{indent}end":
                break
        return "".join(body)
    return ""
