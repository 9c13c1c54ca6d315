"""Bidirectional dependency graph over extracted units.

Nodes are unit identifiers. Forward edges point at dependency targets
(which need not be registered units themselves); reverse edges answer
"who depends on this?" and drive blast-radius queries.
"""

from collections import deque
from typing import Any

from unitindex.core.units import ExtractedUnit


class DependencyGraph:
    """Unit-level dependency graph with file and type indexes."""

    def __init__(self):
        self.nodes: dict[str, dict[str, Any]] = {}
        self.edges: dict[str, list[str]] = {}
        self.reverse: dict[str, list[str]] = {}
        self.file_map: dict[str, str] = {}
        self.type_index: dict[str, list[str]] = {}

    @classmethod
    def build(cls, units: list[ExtractedUnit]) -> "DependencyGraph":
        graph = cls()
        for unit in units:
            graph.register(unit)
        return graph

    def register(self, unit: ExtractedUnit) -> None:
        """Add *unit* as a node with its outgoing edges."""
        unit_type = unit.unit_type.value
        self.nodes[unit.identifier] = {
            "type": unit_type,
            "file_path": unit.file_path,
            "namespace": unit.namespace,
        }

        targets: list[str] = []
        for dep in unit.dependencies:
            if dep.target not in targets:
                targets.append(dep.target)
        self.edges[unit.identifier] = targets

        if unit.file_path:
            self.file_map[unit.file_path] = unit.identifier

        ids = self.type_index.setdefault(unit_type, [])
        if unit.identifier not in ids:
            ids.append(unit.identifier)

        for target in targets:
            dependents = self.reverse.setdefault(target, [])
            if unit.identifier not in dependents:
                dependents.append(unit.identifier)

    def affected_by(self, changed_files: list[str], max_depth: int | None = None) -> list[str]:
        """Units defined in *changed_files* plus everything depending on them.

        Breadth-first over reverse edges; *max_depth* limits the number of
        hops from a directly changed unit (None is unlimited).
        """
        direct = [self.file_map[f] for f in changed_files if f in self.file_map]
        affected = dict.fromkeys(direct)
        queue = deque((identifier, 0) for identifier in affected)

        while queue:
            current, depth = queue.popleft()
            if max_depth is not None and depth >= max_depth:
                continue
            for dependent in self.reverse.get(current, []):
                if dependent not in affected:
                    affected[dependent] = None
                    queue.append((dependent, depth + 1))

        return list(affected)

    def node_exists(self, identifier: str) -> bool:
        return identifier in self.nodes

    def find_node_by_suffix(self, suffix: str) -> str | None:
        """First node whose identifier ends with ``::<suffix>``."""
        target = f"::{suffix}"
        return next((identifier for identifier in self.nodes if identifier.endswith(target)), None)

    def dependencies_of(self, identifier: str) -> list[str]:
        return list(self.edges.get(identifier, []))

    def dependents_of(self, identifier: str) -> list[str]:
        return list(self.reverse.get(identifier, []))

    def units_of_type(self, unit_type: str) -> list[str]:
        return list(self.type_index.get(str(unit_type), []))

    def resolve_dependents(self, units: list[ExtractedUnit]) -> None:
        """Fill each unit's ``dependents`` with ``{type, identifier}`` records."""
        for unit in units:
            unit.dependents = [
                {"type": self.nodes[d]["type"], "identifier": d}
                for d in self.reverse.get(unit.identifier, [])
                if d in self.nodes
            ]

    def pagerank(self, damping: float = 0.85, iterations: int = 20) -> dict[str, float]:
        """PageRank over registered nodes; dangling mass is spread evenly."""
        n = len(self.nodes)
        if n == 0:
            return {}

        scores = dict.fromkeys(self.nodes, 1.0 / n)
        for _ in range(iterations):
            dangling = sum(scores[i] for i in self.nodes if not self.edges.get(i))
            new_scores = {}
            for identifier in self.nodes:
                rank = 0.0
                for source in self.reverse.get(identifier, []):
                    out_degree = len(self.edges.get(source, []))
                    if out_degree and source in scores:
                        rank += scores[source] / out_degree
                new_scores[identifier] = (1.0 - damping) / n + damping * (rank + dangling / n)
            scores = new_scores
        return scores

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": self.nodes,
            "edges": self.edges,
            "reverse": self.reverse,
            "file_map": self.file_map,
            "type_index": self.type_index,
            "stats": {
                "node_count": len(self.nodes),
                "edge_count": sum(len(targets) for targets in self.edges.values()),
                "types": {t: len(ids) for t, ids in self.type_index.items()},
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DependencyGraph":
        graph = cls()
        graph.nodes = {k: dict(v) for k, v in (data.get("nodes") or {}).items()}
        graph.edges = {k: list(v) for k, v in (data.get("edges") or {}).items()}
        graph.reverse = {k: list(v) for k, v in (data.get("reverse") or {}).items()}
        graph.file_map = dict(data.get("file_map") or {})
        graph.type_index = {k: list(v) for k, v in (data.get("type_index") or {}).items()}
        return graph
