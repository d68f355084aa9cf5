"""
Pattern library: load-once, read-only registry of pattern templates.

Load pipeline: Parse → Validate references → Toposort (reject cycles) → Flatten

Every per-pattern lookup (flattened constraints, components, connections,
keyword index) is computed at load time, so the instance never mutates
afterwards and can be shared between concurrent compilation requests
without locking.
"""

from __future__ import annotations

import heapq
import json
import logging
from collections import defaultdict
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from rlcompiler.errors import CycleError, UnknownPatternError
from rlcompiler.models.patterns import PatternComponent, PatternConnection, PatternTemplate

logger = logging.getLogger(__name__)


class PatternLibrary:
    """Immutable registry of PatternTemplates with flattened inheritance."""

    def __init__(
        self,
        templates: Mapping[str, PatternTemplate],
        topo_order: list[str],
    ) -> None:
        self._templates: Mapping[str, PatternTemplate] = MappingProxyType(dict(templates))
        self._topo_order: tuple[str, ...] = tuple(topo_order)
        self._topo_index = MappingProxyType({pid: i for i, pid in enumerate(topo_order)})

        ancestors: dict[str, tuple[str, ...]] = {}
        depth: dict[str, int] = {}
        resolved: dict[str, Mapping[str, Any]] = {}
        components: dict[str, tuple[PatternComponent, ...]] = {}
        connections: dict[str, tuple[PatternConnection, ...]] = {}

        # Parents always precede children in topo order, so each pattern
        # can be flattened from its already-flattened parents.
        for pid in self._topo_order:
            template = self._templates[pid]
            anc: set[str] = set()
            for parent in template.inherits_from:
                anc.add(parent)
                anc.update(ancestors[parent])
            chain = tuple(sorted(anc, key=self._topo_index.__getitem__))
            ancestors[pid] = chain
            depth[pid] = 1 + max((depth[p] for p in template.inherits_from), default=-1)

            merged: dict[str, Any] = {}
            merged_components: dict[str, PatternComponent] = {}
            merged_connections: dict[tuple[str, str, str], PatternConnection] = {}
            for source_id in chain + (pid,):
                source = self._templates[source_id]
                merged.update(source.implied_constraints)
                for component in source.components:
                    merged_components[component.id] = component
                for connection in source.connections:
                    merged_connections[connection.key] = connection
            resolved[pid] = MappingProxyType(merged)
            components[pid] = tuple(merged_components.values())
            connections[pid] = tuple(merged_connections.values())

        self._ancestors = MappingProxyType(ancestors)
        self._depth = MappingProxyType(depth)
        self._resolved = MappingProxyType(resolved)
        self._components = MappingProxyType(components)
        self._connections = MappingProxyType(connections)

        keyword_index: dict[str, list[str]] = defaultdict(list)
        for pid in sorted(self._templates):
            for keyword in self._templates[pid].keywords:
                keyword_index[keyword.strip().lower()].append(pid)
        self._keyword_index = MappingProxyType(
            {keyword: tuple(ids) for keyword, ids in keyword_index.items()}
        )

    # -----------------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------------

    @classmethod
    def load(cls, templates: Iterable[PatternTemplate | dict[str, Any]]) -> PatternLibrary:
        """
        Build a library from template records.

        Raises:
            ValueError: duplicate pattern ids.
            UnknownPatternError: an inherits_from entry names a missing pattern.
            CycleError: the inheritance graph is not acyclic.
        """
        by_id: dict[str, PatternTemplate] = {}
        for raw in templates:
            template = raw if isinstance(raw, PatternTemplate) else PatternTemplate.model_validate(raw)
            if template.id in by_id:
                raise ValueError(f"Duplicate pattern id '{template.id}'")
            by_id[template.id] = template

        for template in by_id.values():
            for parent in template.inherits_from:
                if parent not in by_id:
                    raise UnknownPatternError(parent, referenced_by=template.id)

        topo_order = _toposort(by_id)
        library = cls(by_id, topo_order)
        logger.info("Loaded %d pattern templates", len(library))
        return library

    @classmethod
    def from_file(cls, path: str | Path) -> PatternLibrary:
        """Load template records from a JSON file (a list, or {"patterns": [...]})."""
        with open(path, "r") as f:
            data = json.load(f)
        records = data.get("patterns", []) if isinstance(data, dict) else data
        logger.info("Reading pattern templates from %s", path)
        return cls.load(records)

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def get(self, pattern_id: str) -> PatternTemplate:
        try:
            return self._templates[pattern_id]
        except KeyError:
            raise UnknownPatternError(pattern_id) from None

    def ids(self) -> list[str]:
        return sorted(self._templates)

    def templates(self) -> list[PatternTemplate]:
        return [self._templates[pid] for pid in self.ids()]

    def ancestors(self, pattern_id: str) -> list[str]:
        """Transitive parents in topological order (root first)."""
        self.get(pattern_id)
        return list(self._ancestors[pattern_id])

    def depth(self, pattern_id: str) -> int:
        """Length of the longest inheritance chain above the pattern (roots are 0)."""
        self.get(pattern_id)
        return self._depth[pattern_id]

    def resolve(self, pattern_id: str) -> dict[str, Any]:
        """Flattened implied constraints; a descendant's keys override its ancestors'."""
        self.get(pattern_id)
        return dict(self._resolved[pattern_id])

    def resolve_components(self, pattern_id: str) -> list[PatternComponent]:
        self.get(pattern_id)
        return list(self._components[pattern_id])

    def resolve_connections(self, pattern_id: str) -> list[PatternConnection]:
        self.get(pattern_id)
        return list(self._connections[pattern_id])

    def compatible(self, a: str, b: str) -> bool:
        """
        True if the two patterns can be combined.

        Either one lists the other in integrates_with, or their flattened
        constraints agree on every shared key.
        """
        ta, tb = self.get(a), self.get(b)
        if b in ta.integrates_with or a in tb.integrates_with:
            return True
        ra, rb = self._resolved[a], self._resolved[b]
        return all(ra[key] == rb[key] for key in ra.keys() & rb.keys())

    def match_keywords(self, signal: str) -> list[str]:
        """Pattern ids whose keywords contain `signal` (case-insensitive)."""
        return list(self._keyword_index.get(signal.strip().lower(), ()))

    def __contains__(self, pattern_id: object) -> bool:
        return pattern_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)


# ---------------------------------------------------------------------------
# Toposort (Kahn's algorithm, deterministic)
# ---------------------------------------------------------------------------

def _toposort(templates: Mapping[str, PatternTemplate]) -> list[str]:
    in_degree: dict[str, int] = {pid: len(t.inherits_from) for pid, t in templates.items()}
    children: dict[str, list[str]] = defaultdict(list)
    for pid, template in templates.items():
        for parent in template.inherits_from:
            children[parent].append(pid)

    ready = [pid for pid, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        pid = heapq.heappop(ready)
        order.append(pid)
        for child in children[pid]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(ready, child)

    if len(order) != len(templates):
        remaining = {pid for pid, deg in in_degree.items() if deg > 0}
        raise CycleError(_find_cycle(templates, remaining))

    return order


def _find_cycle(templates: Mapping[str, PatternTemplate], remaining: set[str]) -> list[str]:
    """Walk parent links from a leftover node until one repeats; return that loop."""
    start = min(remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    node = start
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        # Every leftover node still has at least one leftover parent.
        node = min(p for p in templates[node].inherits_from if p in remaining)
    return path[seen[node]:]
