"""Background job extractor (ActiveJob and Sidekiq workers)."""

import re
from typing import Any

from unitindex.core.collector import Candidate
from unitindex.core.scanner import merge_dependencies, scan
from unitindex.core.units import Dependency, ExtractedUnit, UnitType, annotate_source
from unitindex.extractors import BaseExtractor

_JOB_MARKERS = re.compile(
    r"<\s*(?:ApplicationJob|ActiveJob::Base)\b|include\s+Sidekiq::(?:Worker|Job)\b|\bdef\s+perform\b"
)
_QUEUE_AS = re.compile(r"""queue_as\s+[:"'](\w+)""")
_SIDEKIQ_QUEUE = re.compile(r"""sidekiq_options.*queue:\s*[:"'](\w+)""")
_SIDEKIQ_OPTIONS = re.compile(r"sidekiq_options\s+(.+)")
_OPTION_PAIR = re.compile(r"(\w+):\s*([^,\n]+)")
_PERFORM_SIGNATURE = re.compile(r"def\s+perform\s*\(([^)]*)\)")
_PARAM = re.compile(r"(\*{0,2}\w+)(?:\s*[:=]\s*([^,]+))?")
_DISCARD_ON = re.compile(r"discard_on\s+(\w+(?:::\w+)*)")
_RETRY_ON = re.compile(r"retry_on\s+(\w+(?:::\w+)*)")
_JOB_CALLBACK = re.compile(
    r"\b(before_enqueue|after_enqueue|before_perform|after_perform|around_perform)\s+(?::(\w+)|do)"
)
_HTTP_CLIENTS = re.compile(r"HTTParty|Faraday|RestClient|Net::HTTP")
_REDIS = re.compile(r"Redis\.current|REDIS")


def detect_job_type(source: str) -> str:
    if re.search(r"include\s+Sidekiq::(?:Worker|Job)", source):
        return "sidekiq"
    if re.search(r"<\s*(?:ApplicationJob|ActiveJob::Base)", source):
        return "active_job"
    if re.search(r"include\s+GoodJob", source):
        return "good_job"
    return "unknown"


def extract_queue(source: str) -> str | None:
    match = _QUEUE_AS.search(source) or _SIDEKIQ_QUEUE.search(source)
    return match.group(1) if match else None


def extract_perform_params(source: str) -> list[dict[str, Any]]:
    match = _PERFORM_SIGNATURE.search(source)
    if not match:
        return []
    params = []
    for name, default in _PARAM.findall(match.group(1)):
        splat = None
        if name.startswith("**"):
            splat = "double"
        elif name.startswith("*"):
            splat = "single"
        params.append({"name": name.lstrip("*"), "splat": splat, "has_default": bool(default)})
    return params


def extract_sidekiq_options(source: str) -> dict[str, str]:
    match = _SIDEKIQ_OPTIONS.search(source)
    if not match:
        return {}
    return {key: value.strip() for key, value in _OPTION_PAIR.findall(match.group(1))}


def _loc(source: str) -> int:
    return sum(1 for line in source.splitlines() if line.strip() and not line.strip().startswith("#"))


class JobExtractor(BaseExtractor):
    """Extracts job classes from the job and worker directories."""

    unit_type = UnitType.JOB
    label = "job"
    source_dirs = ("app/jobs", "app/workers", "app/sidekiq")
    priority = 20

    def extract_candidate(self, candidate: Candidate) -> ExtractedUnit | None:
        source = self.read_candidate(candidate)
        if not _JOB_MARKERS.search(source):
            return None

        name = self.class_name(source, candidate)
        enqueued = self.enqueued_jobs(source, name)
        queue = extract_queue(source)

        unit = ExtractedUnit(
            unit_type=self.unit_type,
            identifier=name,
            file_path=candidate.file_path_hint,
            metadata={
                "job_type": detect_job_type(source),
                "queue": queue,
                "sidekiq_options": extract_sidekiq_options(source),
                "perform_params": extract_perform_params(source),
                "discard_on": _DISCARD_ON.findall(source),
                "retry_on": _RETRY_ON.findall(source),
                "callbacks": [
                    {"type": cb_type, "method": method or None}
                    for cb_type, method in _JOB_CALLBACK.findall(source)
                ],
                "enqueues_jobs": enqueued,
                "loc": _loc(source),
            },
        )
        unit.source_code = annotate_source(
            source, "Job", name, {"Queue": queue or "default", "Enqueues": enqueued}
        )
        unit.add_dependencies(self.dependencies(source, enqueued))
        return unit

    def enqueued_jobs(self, source: str, current: str) -> list[str]:
        """Other jobs this job dispatches; a job re-enqueueing itself is ignored."""
        names = dict.fromkeys(self.conventions.job_reference.findall(source))
        return [n for n in names if n != current and n.rsplit("::", 1)[-1] != current.rsplit("::", 1)[-1]]

    def dependencies(self, source: str, enqueued: list[str]) -> list[Dependency]:
        deps = merge_dependencies(
            scan(source, "model", registry=self.registry),
            scan(source, "service", conventions=self.conventions),
            scan(source, "mailer", conventions=self.conventions),
            [Dependency("job", job, "job_enqueue") for job in enqueued],
        )
        if _HTTP_CLIENTS.search(source):
            deps.append(Dependency("external", "http_api", "code_reference"))
        if _REDIS.search(source):
            deps.append(Dependency("infrastructure", "redis", "code_reference"))
        return deps
