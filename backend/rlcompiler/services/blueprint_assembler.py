"""
Blueprint assembler: packages spec, layout and metrics for external renderers.

No rendering happens here: the Blueprint is the sole hand-off.
"""

from __future__ import annotations

from typing import Iterable

from rlcompiler.config import ComplexityBands
from rlcompiler.models.blueprint import (
    Blueprint,
    BlueprintEdge,
    BlueprintNode,
    BlueprintSummary,
    CompilationDiagnostic,
    Metrics,
)
from rlcompiler.models.graph import LayoutResult
from rlcompiler.models.spec import CompiledSpec


class BlueprintAssembler:
    def __init__(self, bands: ComplexityBands | None = None) -> None:
        self.bands = bands or ComplexityBands()

    def assemble(
        self,
        spec: CompiledSpec,
        layout: LayoutResult,
        metrics: Metrics,
        warnings: Iterable[CompilationDiagnostic] = (),
    ) -> Blueprint:
        nodes = [
            BlueprintNode(
                id=node.id,
                type=node.type,
                label=node.label,
                technology=node.technology,
                layer=node.layer,
                x=layout.positions[node.id].x,
                y=layout.positions[node.id].y,
            )
            for node in layout.nodes
        ]
        edges = [
            BlueprintEdge(
                from_node=edge.source,
                to_node=edge.target,
                type=edge.type,
                label=edge.label,
                flow=edge.flow,
            )
            for edge in layout.edges
        ]

        tier = self.bands.tier(len(nodes))
        # Tier follows the laid-out graph, not the pattern-level estimate
        metrics = metrics.model_copy(update={"complexity_tier": tier})

        summary = BlueprintSummary(
            component_count=len(nodes),
            connection_count=len(edges),
            complexity_tier=tier,
            intent=spec.intent,
            domain=spec.domain,
            patterns=spec.patterns,
            algorithm=layout.algorithm,
            layout_status=layout.status,
            metrics=metrics,
        )
        return Blueprint(
            nodes=nodes,
            edges=edges,
            metrics=metrics,
            warnings=list(warnings),
            summary=summary,
        )
