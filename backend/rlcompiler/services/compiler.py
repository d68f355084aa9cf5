"""
Blueprint compiler: turns signals + constraints into a laid-out, scored Blueprint.

Pipeline: Classify → Merge constraints → Validate coherence → Build graph
          → Score → Layout → Assemble

Each call is an independent unit of work; the only shared state is the
read-only PatternLibrary.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

from rlcompiler.config import CompilerSettings
from rlcompiler.errors import LAYOUT_NON_CONVERGENCE, CompilerError
from rlcompiler.models.blueprint import CompilationDiagnostic, CompilationResult
from rlcompiler.models.graph import ComponentNode, LayoutAlgorithm, RelationshipEdge
from rlcompiler.models.spec import ClassificationCandidate, CompiledSpec, ConstraintSet
from rlcompiler.services.blueprint_assembler import BlueprintAssembler
from rlcompiler.services.classifier import Classifier
from rlcompiler.services.constraint_resolver import ConstraintResolver, normalize_tiers
from rlcompiler.services.layout_engine import CancellationSignal, LayoutEngine
from rlcompiler.services.optimization_scorer import CLARITY_COMPONENTS, OptimizationScorer
from rlcompiler.services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class CompileRequest(BaseModel):
    text: str = ""
    signals: list[str] = Field(default_factory=list)
    intent: str | None = None
    domain: str | None = None
    # Explicit override: ids, or lists of ids sharing a priority tier
    patterns: list[str | list[str]] | None = None
    constraints: dict[str, Any] = Field(default_factory=dict)
    style: dict[str, Any] | None = None
    output: dict[str, Any] | None = None
    layers: dict[str, int] | None = None
    algorithm: LayoutAlgorithm = "hierarchical"
    nodes: list[ComponentNode] = Field(default_factory=list)
    edges: list[RelationshipEdge] = Field(default_factory=list)
    sub_scores: dict[str, float] | None = None
    # Reduction ratio claimed by an upstream source; flagged if inconsistent
    reported_reduction: float | None = None

    @field_validator("sub_scores")
    @classmethod
    def _known_sub_scores(cls, value: dict[str, float] | None) -> dict[str, float] | None:
        if value is None:
            return value
        unknown = sorted(set(value) - set(CLARITY_COMPONENTS))
        if unknown:
            raise ValueError(
                f"Unknown clarity sub-scores: {unknown}. Expected any of {list(CLARITY_COMPONENTS)}"
            )
        for name, score in value.items():
            if not 0.0 <= score <= 1.0:
                raise ValueError(f"Sub-score '{name}' must be in [0, 1], got {score}")
        return value


class Compiler:
    def __init__(self, library: PatternLibrary, settings: CompilerSettings | None = None) -> None:
        self.library = library
        self.settings = settings or CompilerSettings()
        self.classifier = Classifier(library, self.settings.classifier)
        self.resolver = ConstraintResolver(library, self.settings.resolver)
        self.scorer = OptimizationScorer(library, self.settings.scorer, self.resolver)
        self.layout_engine = LayoutEngine(self.settings.layout)
        self.assembler = BlueprintAssembler(self.settings.scorer.complexity_bands)

    def compile(
        self,
        request: CompileRequest,
        *,
        cancel: CancellationSignal | None = None,
    ) -> CompilationResult:
        """
        Run the full pipeline for one request.

        Raises:
            LowConfidenceError, ConflictError, IncompatibleStackError,
            UnknownPatternError, CycleError, InvalidGraphError
        """
        # 1. Classify (or score the caller's override)
        tiers, candidate = self._select_patterns(request)

        # 2. Merge + validate
        constraints = self.resolver.merge(request.constraints, tiers)
        self.resolver.validate_coherence(constraints)

        spec = CompiledSpec(
            intent=candidate.intent,
            domain=candidate.domain,
            pattern_tiers=tiers,
            constraints=constraints,
            style=request.style,
            output=request.output,
            pattern_confidence=candidate.confidence,
        )

        # 3. Component graph
        nodes, edges = self.build_graph(spec, request.nodes, request.edges)

        # 4. Score
        report = self.scorer.compute(
            request.text,
            spec,
            sub_scores=request.sub_scores,
            component_count=len(nodes),
        )
        warnings = list(report.warnings)
        if request.reported_reduction is not None:
            mismatch = self.scorer.check_reported_reduction(
                report.metrics.original_token_count,
                report.metrics.optimized_token_count,
                request.reported_reduction,
            )
            if mismatch is not None:
                warnings.append(mismatch)

        # 5. Layout
        layout = self.layout_engine.layout(
            nodes, edges, request.algorithm, layers=request.layers, cancel=cancel
        )
        if layout.status == "max_iter_reached":
            warnings.append(CompilationDiagnostic(
                level="warning",
                code=LAYOUT_NON_CONVERGENCE,
                message=(
                    f"Force-directed layout stopped after {layout.iterations} iterations "
                    "without converging; positions are usable but may be suboptimal"
                ),
                detail={"iterations": layout.iterations},
            ))

        # 6. Assemble
        blueprint = self.assembler.assemble(spec, layout, report.metrics, warnings)
        logger.info(
            "Compiled blueprint: intent=%s domain=%s patterns=%s nodes=%d edges=%d warnings=%d",
            spec.intent, spec.domain, spec.patterns, len(blueprint.nodes),
            len(blueprint.edges), len(warnings),
        )
        return CompilationResult(success=True, blueprint=blueprint, spec=spec, diagnostics=warnings)

    # -----------------------------------------------------------------------
    # Pattern selection
    # -----------------------------------------------------------------------

    def _select_patterns(
        self,
        request: CompileRequest,
    ) -> tuple[list[list[str]], ClassificationCandidate]:
        if request.patterns:
            tiers = normalize_tiers(request.patterns)
            flat = [pid for tier in tiers for pid in tier]
            for pid in flat:
                self.library.get(pid)
            intent, domain = self.classifier.infer_context(flat)
            candidate = self.classifier.score(
                flat,
                request.signals,
                intent=request.intent or intent,
                domain=request.domain or domain,
            )
            logger.info("Using explicit pattern override %s", tiers)
            return tiers, candidate

        candidates = self.classifier.classify(
            request.signals, intent=request.intent, domain=request.domain
        )
        top = candidates[0]
        # Classified patterns carry no user priority: one equal-priority tier
        return [list(top.patterns)], top

    # -----------------------------------------------------------------------
    # Graph derivation
    # -----------------------------------------------------------------------

    def build_graph(
        self,
        spec: CompiledSpec,
        extra_nodes: list[ComponentNode] | None = None,
        extra_edges: list[RelationshipEdge] | None = None,
    ) -> tuple[list[ComponentNode], list[RelationshipEdge]]:
        """Components/relationships implied by the compiled patterns, plus caller extras."""
        nodes: dict[str, ComponentNode] = {}
        edges: dict[str, RelationshipEdge] = {}

        for pid in spec.patterns:
            for component in self.library.resolve_components(pid):
                nodes[component.id] = ComponentNode(
                    id=component.id,
                    type=component.type,
                    label=component.label,
                    technology=_resolve_technology(component.technology, spec.constraints),
                    layer=component.layer,
                )
            for connection in self.library.resolve_connections(pid):
                edge = RelationshipEdge(
                    source=connection.source,
                    target=connection.target,
                    type=connection.type,
                    label=connection.label,
                    flow=connection.flow,
                )
                edges[edge.key] = edge

        for node in extra_nodes or []:
            nodes[node.id] = node

        # Pattern connections to components no selected pattern provides are dropped
        for key in [k for k, e in edges.items() if e.source not in nodes or e.target not in nodes]:
            logger.debug("Dropping dangling relationship %s", key)
            del edges[key]

        # Caller edges are kept as given; the layout engine rejects unknown endpoints
        for edge in extra_edges or []:
            edges[edge.key] = edge
        return list(nodes.values()), list(edges.values())


def _resolve_technology(template: str | None, constraints: ConstraintSet) -> str | None:
    """Fill "{key}" placeholders from the constraint set; None if any is unset."""
    if template is None:
        return None
    missing = False

    def substitute(match: re.Match) -> str:
        nonlocal missing
        value = constraints.get(match.group(1))
        if value is None:
            missing = True
            return ""
        return str(value)

    resolved = _PLACEHOLDER_RE.sub(substitute, template)
    return None if missing else resolved


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def compile_requirements(
    library: PatternLibrary,
    request: CompileRequest,
    *,
    settings: CompilerSettings | None = None,
    cancel: CancellationSignal | None = None,
) -> CompilationResult:
    """
    Compile a request into a Blueprint.

    Returns a CompilationResult with either a Blueprint or the fatal error
    as a structured diagnostic.
    """
    try:
        return Compiler(library, settings).compile(request, cancel=cancel)
    except CompilerError as exc:
        logger.info("Compilation failed: %s", exc.message)
        return CompilationResult(
            success=False,
            diagnostics=[CompilationDiagnostic(
                level="error",
                code=exc.code,
                message=exc.message,
                detail=exc.to_detail(),
            )],
        )
