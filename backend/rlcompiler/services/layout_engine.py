"""
Layout engine: 2-D positions for a component/relationship graph.

Per-request state machine:

    INPUT_GRAPH → ALGORITHM_SELECTED → POSITIONS_COMPUTED
        → {CONVERGED | MAX_ITER_REACHED | CANCELLED} → FINALIZED

Algorithms:
- hierarchical: longest-path layering + barycenter crossing reduction
- grid: row-major packing, no iteration
- force_directed: repulsion / spring attraction / gravity with damped steps,
  seeded deterministically from node ids

All algorithms finish with a separation pass that nudges apart node boxes
closer than ``min_distance``. Positions are node centres.
"""

from __future__ import annotations

import hashlib
import heapq
import logging
import math
from collections import defaultdict
from typing import Iterable, Mapping, Protocol

from rlcompiler.config import LayoutConfig
from rlcompiler.errors import CycleError, InvalidGraphError
from rlcompiler.models.graph import (
    BoundingBox,
    ComponentNode,
    LayoutAlgorithm,
    LayoutResult,
    LayoutStatus,
    Position,
    RelationshipEdge,
)

logger = logging.getLogger(__name__)

ALGORITHMS: tuple[LayoutAlgorithm, ...] = ("hierarchical", "grid", "force_directed")

_MIN_DIST = 0.01
_EPS = 1e-6


class CancellationSignal(Protocol):
    def is_set(self) -> bool: ...


class LayoutEngine:
    def __init__(self, config: LayoutConfig | None = None) -> None:
        self.config = config or LayoutConfig()

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def layout(
        self,
        nodes: list[ComponentNode],
        edges: list[RelationshipEdge],
        algorithm: LayoutAlgorithm = "hierarchical",
        *,
        layers: Mapping[str, int] | None = None,
        cancel: CancellationSignal | None = None,
    ) -> LayoutResult:
        """
        Compute positions for every node.

        Args:
            layers: explicit layer per node id (hierarchical only); a node's
                own ``layer`` field counts as explicit too.
            cancel: checked at each force-directed iteration boundary; when set,
                the last computed positions are returned with status "cancelled".

        Raises:
            InvalidGraphError: duplicate node ids or edges to unknown nodes.
            CycleError: hierarchical layering needed on a cyclic graph.
            ValueError: unknown algorithm.
        """
        trace = ["INPUT_GRAPH"]
        _validate_graph(nodes, edges)

        if algorithm not in ALGORITHMS:
            raise ValueError(f"Unknown layout algorithm '{algorithm}'. Expected one of {ALGORITHMS}")
        trace.append("ALGORITHM_SELECTED")

        explicit_layers = {n.id: n.layer for n in nodes if n.layer is not None}
        explicit_layers.update(layers or {})

        assigned_layers: dict[str, int] = dict(explicit_layers)
        status: LayoutStatus = "converged"
        iterations = 0

        if not nodes:
            positions: dict[str, list[float]] = {}
        elif algorithm == "hierarchical":
            positions, assigned_layers = self._hierarchical(nodes, edges, explicit_layers)
            iterations = self.config.sweeps
        elif algorithm == "grid":
            positions = self._grid(nodes)
        else:
            positions, status, iterations = self._force_directed(nodes, edges, cancel)
        trace.append("POSITIONS_COMPUTED")
        trace.append(status.upper())

        if status == "max_iter_reached":
            logger.warning(
                "Force-directed layout did not converge after %d iterations", iterations
            )

        order = [n.id for n in nodes]
        self._separate(positions, order)
        trace.append("FINALIZED")

        final_positions = {nid: Position(x=positions[nid][0], y=positions[nid][1]) for nid in order}
        laid_out = [
            node.model_copy(update={
                "position": final_positions[node.id],
                "layer": assigned_layers.get(node.id, node.layer),
            })
            for node in nodes
        ]

        return LayoutResult(
            algorithm=algorithm,
            positions=final_positions,
            routes=self._routes(edges, final_positions, algorithm),
            bounding_box=self._bounding_box(final_positions.values()),
            status=status,
            iterations=iterations,
            state_trace=trace,
            nodes=laid_out,
            edges=list(edges),
        )

    # -----------------------------------------------------------------------
    # Hierarchical
    # -----------------------------------------------------------------------

    def _hierarchical(
        self,
        nodes: list[ComponentNode],
        edges: list[RelationshipEdge],
        explicit: Mapping[str, int],
    ) -> tuple[dict[str, list[float]], dict[str, int]]:
        order = [n.id for n in nodes]
        input_index = {nid: i for i, nid in enumerate(order)}
        layer_of = self._assign_layers(order, edges, explicit)

        members: dict[int, list[str]] = defaultdict(list)
        for nid in order:
            members[layer_of[nid]].append(nid)
        layer_keys = sorted(members)

        neighbours: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            if edge.source != edge.target:
                neighbours[edge.source].append(edge.target)
                neighbours[edge.target].append(edge.source)

        slot = {nid: i for key in layer_keys for i, nid in enumerate(members[key])}

        def reorder(layer: int, reference: int) -> None:
            def barycenter(nid: str) -> float:
                ref_slots = [slot[u] for u in neighbours[nid] if layer_of[u] == reference]
                if not ref_slots:
                    return float(slot[nid])
                return sum(ref_slots) / len(ref_slots)

            ranked = sorted(members[layer], key=lambda nid: (barycenter(nid), input_index[nid]))
            members[layer] = ranked
            for i, nid in enumerate(ranked):
                slot[nid] = i

        for sweep in range(self.config.sweeps):
            if sweep % 2 == 0:
                for i in range(1, len(layer_keys)):
                    reorder(layer_keys[i], layer_keys[i - 1])
            else:
                for i in range(len(layer_keys) - 2, -1, -1):
                    reorder(layer_keys[i], layer_keys[i + 1])

        positions = {
            nid: [slot[nid] * self.config.horizontal_spacing, layer_of[nid] * self.config.vertical_spacing]
            for nid in order
        }
        return positions, layer_of

    def _assign_layers(
        self,
        order: list[str],
        edges: list[RelationshipEdge],
        explicit: Mapping[str, int],
    ) -> dict[str, int]:
        """Explicit layer where given, else longest path from the roots."""
        if all(nid in explicit for nid in order):
            return {nid: explicit[nid] for nid in order}

        preds: dict[str, list[str]] = defaultdict(list)
        for edge in edges:
            preds[edge.target].append(edge.source)

        layer_of: dict[str, int] = {}
        for nid in _toposort_graph(order, edges):
            if nid in explicit:
                layer_of[nid] = explicit[nid]
            else:
                layer_of[nid] = max((layer_of[p] + 1 for p in preds[nid]), default=0)
        return layer_of

    # -----------------------------------------------------------------------
    # Grid
    # -----------------------------------------------------------------------

    def _grid(self, nodes: list[ComponentNode]) -> dict[str, list[float]]:
        columns = self.config.columns or math.ceil(math.sqrt(len(nodes)))
        positions: dict[str, list[float]] = {}
        for i, node in enumerate(nodes):
            row, col = divmod(i, columns)
            positions[node.id] = [col * self.config.horizontal_spacing, row * self.config.vertical_spacing]
        return positions

    # -----------------------------------------------------------------------
    # Force-directed
    # -----------------------------------------------------------------------

    def _force_directed(
        self,
        nodes: list[ComponentNode],
        edges: list[RelationshipEdge],
        cancel: CancellationSignal | None,
    ) -> tuple[dict[str, list[float]], LayoutStatus, int]:
        cfg = self.config
        cx, cy = cfg.center
        order = [n.id for n in nodes]
        positions = {nid: self._seed_position(nid) for nid in order}
        links = [(e.source, e.target) for e in edges if e.source != e.target]

        for iteration in range(1, cfg.max_iterations + 1):
            if cancel is not None and cancel.is_set():
                logger.info("Force-directed layout cancelled after %d iterations", iteration - 1)
                return positions, "cancelled", iteration - 1

            forces = {nid: [0.0, 0.0] for nid in order}

            # Pairwise repulsion, inverse distance
            for i, a in enumerate(order):
                ax, ay = positions[a]
                for b in order[i + 1:]:
                    dx = ax - positions[b][0]
                    dy = ay - positions[b][1]
                    dist = math.hypot(dx, dy)
                    if dist < _MIN_DIST:
                        dx, dy, dist = _MIN_DIST, 0.0, _MIN_DIST
                    f = cfg.repulsion / dist
                    fx, fy = f * dx / dist, f * dy / dist
                    forces[a][0] += fx
                    forces[a][1] += fy
                    forces[b][0] -= fx
                    forces[b][1] -= fy

            # Spring attraction toward ideal_length
            for source, target in links:
                dx = positions[target][0] - positions[source][0]
                dy = positions[target][1] - positions[source][1]
                dist = math.hypot(dx, dy)
                if dist < _MIN_DIST:
                    continue
                f = cfg.attraction * (dist - cfg.ideal_length)
                fx, fy = f * dx / dist, f * dy / dist
                forces[source][0] += fx
                forces[source][1] += fy
                forces[target][0] -= fx
                forces[target][1] -= fy

            # Gravity toward the configured centre
            for nid in order:
                forces[nid][0] += cfg.gravity * (cx - positions[nid][0])
                forces[nid][1] += cfg.gravity * (cy - positions[nid][1])

            max_displacement = 0.0
            for nid in order:
                sx = cfg.damping * forces[nid][0]
                sy = cfg.damping * forces[nid][1]
                step = math.hypot(sx, sy)
                if step > cfg.max_step:
                    sx, sy = sx * cfg.max_step / step, sy * cfg.max_step / step
                    step = cfg.max_step
                positions[nid][0] += sx
                positions[nid][1] += sy
                max_displacement = max(max_displacement, step)

            if max_displacement < cfg.convergence_threshold:
                return positions, "converged", iteration

        return positions, "max_iter_reached", cfg.max_iterations

    def _seed_position(self, node_id: str) -> list[float]:
        """Deterministic start position derived from a SHA-256 digest of the id."""
        digest = hashlib.sha256(node_id.encode("utf-8")).digest()
        u = int.from_bytes(digest[:8], "big") / 2**64
        v = int.from_bytes(digest[8:16], "big") / 2**64
        cx, cy = self.config.center
        spread = self.config.initial_spread
        return [cx + (u - 0.5) * spread, cy + (v - 0.5) * spread]

    # -----------------------------------------------------------------------
    # Post-processing
    # -----------------------------------------------------------------------

    def _separate(self, positions: dict[str, list[float]], order: list[str]) -> None:
        """Nudge apart node boxes closer than min_distance, along their connecting vector."""
        w, h = self.config.node_width, self.config.node_height
        md = self.config.min_distance

        for _ in range(self.config.max_separation_passes):
            moved = False
            for i, a in enumerate(order):
                for b in order[i + 1:]:
                    pa, pb = positions[a], positions[b]
                    dx, dy = pb[0] - pa[0], pb[1] - pa[1]
                    if max(abs(dx) - w, abs(dy) - h) >= md:
                        continue
                    dist = math.hypot(dx, dy)
                    ux, uy = (dx / dist, dy / dist) if dist > _EPS else (1.0, 0.0)
                    needed = []
                    if abs(ux) > _EPS:
                        needed.append((w + md - abs(dx)) / abs(ux))
                    if abs(uy) > _EPS:
                        needed.append((h + md - abs(dy)) / abs(uy))
                    half = min(needed) / 2 + _EPS
                    pa[0] -= ux * half
                    pa[1] -= uy * half
                    pb[0] += ux * half
                    pb[1] += uy * half
                    moved = True
            if not moved:
                return
        logger.warning(
            "Node separation still violated after %d passes", self.config.max_separation_passes
        )

    def _routes(
        self,
        edges: list[RelationshipEdge],
        positions: Mapping[str, Position],
        algorithm: LayoutAlgorithm,
    ) -> dict[str, list[Position]]:
        routes: dict[str, list[Position]] = {}
        half_h = self.config.node_height / 2
        for edge in edges:
            src, tgt = positions[edge.source], positions[edge.target]
            if algorithm == "hierarchical" and src.y != tgt.y:
                # Orthogonal elbow: leave the bottom/top edge, bend at the midline
                direction = 1.0 if tgt.y > src.y else -1.0
                start_y = src.y + direction * half_h
                end_y = tgt.y - direction * half_h
                mid_y = (start_y + end_y) / 2
                routes[edge.key] = [
                    Position(x=src.x, y=start_y),
                    Position(x=src.x, y=mid_y),
                    Position(x=tgt.x, y=mid_y),
                    Position(x=tgt.x, y=end_y),
                ]
            else:
                routes[edge.key] = [Position(x=src.x, y=src.y), Position(x=tgt.x, y=tgt.y)]
        return routes

    def _bounding_box(self, positions: Iterable[Position]) -> BoundingBox:
        points = list(positions)
        if not points:
            return BoundingBox()
        half_w, half_h = self.config.node_width / 2, self.config.node_height / 2
        return BoundingBox(
            min_x=min(p.x for p in points) - half_w,
            min_y=min(p.y for p in points) - half_h,
            max_x=max(p.x for p in points) + half_w,
            max_y=max(p.y for p in points) + half_h,
        )


# ---------------------------------------------------------------------------
# Graph helpers
# ---------------------------------------------------------------------------

def _validate_graph(nodes: list[ComponentNode], edges: list[RelationshipEdge]) -> None:
    problems: list[str] = []
    seen: set[str] = set()
    for node in nodes:
        if node.id in seen:
            problems.append(f"Duplicate node ID '{node.id}'")
        seen.add(node.id)
    for edge in edges:
        if edge.source not in seen:
            problems.append(f"Edge references unknown source node '{edge.source}'")
        if edge.target not in seen:
            problems.append(f"Edge references unknown target node '{edge.target}'")
    if problems:
        raise InvalidGraphError(problems)


def _toposort_graph(order: list[str], edges: list[RelationshipEdge]) -> list[str]:
    """Kahn's algorithm; ready nodes are taken in input order."""
    input_index = {nid: i for i, nid in enumerate(order)}
    in_degree: dict[str, int] = {nid: 0 for nid in order}
    adjacency: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        adjacency[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    ready = [(input_index[nid], nid) for nid, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)
    result: list[str] = []
    while ready:
        _, nid = heapq.heappop(ready)
        result.append(nid)
        for neighbour in adjacency[nid]:
            in_degree[neighbour] -= 1
            if in_degree[neighbour] == 0:
                heapq.heappush(ready, (input_index[neighbour], neighbour))

    if len(result) != len(order):
        remaining = {nid for nid, deg in in_degree.items() if deg > 0}
        raise CycleError(_find_cycle(order, edges, remaining), scope="relationship graph")
    return result


def _find_cycle(order: list[str], edges: list[RelationshipEdge], remaining: set[str]) -> list[str]:
    preds: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        if edge.source in remaining and edge.target in remaining:
            preds[edge.target].append(edge.source)
    node = next(nid for nid in order if nid in remaining)
    path: list[str] = []
    seen: dict[str, int] = {}
    while node not in seen:
        seen[node] = len(path)
        path.append(node)
        node = preds[node][0]
    cycle = path[seen[node]:]
    cycle.reverse()  # walked against edge direction
    return cycle
