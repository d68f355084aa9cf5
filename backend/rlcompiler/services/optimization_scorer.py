"""
Optimization scorer: token reduction and clarity metrics for a compiled spec.

Every sub-score is a pure function of the resolved constraint set and the
pattern set, so identical inputs always reproduce identical metrics. Soft
quality thresholds never abort compilation; they produce warning
diagnostics alongside the metrics.
"""

from __future__ import annotations

import logging
import re
from typing import Mapping

from pydantic import BaseModel, Field

from rlcompiler.config import ScorerConfig
from rlcompiler.errors import INSUFFICIENT_REDUCTION, LOW_CLARITY, REDUCTION_MISMATCH
from rlcompiler.models.blueprint import CompilationDiagnostic, Metrics
from rlcompiler.models.pattern_catalog import required_constraints
from rlcompiler.models.patterns import ANY
from rlcompiler.models.spec import CompiledSpec
from rlcompiler.services.constraint_resolver import ConstraintResolver
from rlcompiler.services.pattern_library import PatternLibrary

logger = logging.getLogger(__name__)

CLARITY_COMPONENTS = (
    "pattern_specificity",
    "constraint_completeness",
    "technology_coherence",
    "domain_expertise",
)

# Word-character runs and single punctuation marks are the atomic units.
_TOKEN_RE = re.compile(r"\w+|[^\w\s]")


def token_count(text: str) -> int:
    """Count tokens: no case folding, no deduplication."""
    return len(_TOKEN_RE.findall(text or ""))


def reduction_ratio(original: int, optimized: int) -> float:
    """1 - optimized/original, clamped to [0, 1] (0 for an empty original)."""
    if original <= 0:
        return 0.0
    return min(max(1.0 - optimized / original, 0.0), 1.0)


class ScoreReport(BaseModel):
    metrics: Metrics
    warnings: list[CompilationDiagnostic] = Field(default_factory=list)


class OptimizationScorer:
    def __init__(
        self,
        library: PatternLibrary,
        config: ScorerConfig | None = None,
        resolver: ConstraintResolver | None = None,
    ) -> None:
        self.library = library
        self.config = config or ScorerConfig()
        self.resolver = resolver or ConstraintResolver(library)

    def compute(
        self,
        original_text: str,
        spec: CompiledSpec,
        *,
        sub_scores: Mapping[str, float] | None = None,
        component_count: int | None = None,
    ) -> ScoreReport:
        original = token_count(original_text)
        optimized = token_count(spec.to_rl())
        ratio = reduction_ratio(original, optimized)

        breakdown = self.clarity_breakdown(spec, sub_scores)
        clarity = sum(breakdown.values()) / len(breakdown)

        if component_count is None:
            component_count = self._component_count(spec)

        metrics = Metrics(
            original_token_count=original,
            optimized_token_count=optimized,
            reduction_ratio=ratio,
            clarity_score=clarity,
            pattern_confidence=spec.pattern_confidence,
            complexity_tier=self.config.complexity_bands.tier(component_count),
            clarity_breakdown=breakdown,
        )

        warnings: list[CompilationDiagnostic] = []
        if ratio < self.config.min_reduction:
            warnings.append(CompilationDiagnostic(
                level="warning",
                code=INSUFFICIENT_REDUCTION,
                message=(
                    f"Token reduction {ratio:.2%} is below the configured minimum "
                    f"{self.config.min_reduction:.0%}"
                ),
                field="reduction_ratio",
                detail={"original_tokens": original, "optimized_tokens": optimized},
            ))
        if clarity < self.config.min_clarity:
            warnings.append(CompilationDiagnostic(
                level="warning",
                code=LOW_CLARITY,
                message=(
                    f"Clarity score {clarity:.2f} is below the configured minimum "
                    f"{self.config.min_clarity:.2f}"
                ),
                field="clarity_score",
                detail=dict(breakdown),
            ))

        logger.debug(
            "Scored spec: original=%d optimized=%d ratio=%.3f clarity=%.3f",
            original, optimized, ratio, clarity,
        )
        return ScoreReport(metrics=metrics, warnings=warnings)

    def clarity_breakdown(
        self,
        spec: CompiledSpec,
        sub_scores: Mapping[str, float] | None = None,
    ) -> dict[str, float]:
        """The four clarity sub-scores; caller-supplied values replace derived ones."""
        supplied = dict(sub_scores or {})
        unknown = set(supplied) - set(CLARITY_COMPONENTS)
        if unknown:
            raise ValueError(f"Unknown clarity sub-scores: {sorted(unknown)}")
        for name, value in supplied.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Sub-score '{name}' must be in [0, 1], got {value}")

        derived = {
            "pattern_specificity": lambda: self.pattern_specificity(spec),
            "constraint_completeness": lambda: self.constraint_completeness(spec),
            "technology_coherence": lambda: self.technology_coherence(spec),
            "domain_expertise": lambda: self.domain_expertise(spec),
        }
        return {
            name: float(supplied[name]) if name in supplied else derived[name]()
            for name in CLARITY_COMPONENTS
        }

    def check_reported_reduction(
        self,
        original: int,
        optimized: int,
        reported: float,
    ) -> CompilationDiagnostic | None:
        """Flag a reported reduction that disagrees with 1 - optimized/original."""
        expected = reduction_ratio(original, optimized)
        if abs(expected - reported) <= self.config.reported_ratio_tolerance:
            return None
        return CompilationDiagnostic(
            level="warning",
            code=REDUCTION_MISMATCH,
            message=(
                f"Reported reduction {reported:.2%} does not match "
                f"1 - {optimized}/{original} = {expected:.2%}"
            ),
            field="reduction_ratio",
            detail={
                "original_tokens": original,
                "optimized_tokens": optimized,
                "reported": reported,
                "expected": expected,
            },
        )

    # -----------------------------------------------------------------------
    # Sub-scores
    # -----------------------------------------------------------------------

    def pattern_specificity(self, spec: CompiledSpec) -> float:
        # Deeper in the inheritance tree = more specific: roots 0.6, +0.2 per level.
        patterns = spec.patterns
        if not patterns:
            return 0.0
        return sum(min(1.0, 0.6 + 0.2 * self.library.depth(pid)) for pid in patterns) / len(patterns)

    def constraint_completeness(self, spec: CompiledSpec) -> float:
        required = required_constraints(spec.domain)
        if not required:
            return 1.0
        return sum(1 for key in required if key in spec.constraints) / len(required)

    def technology_coherence(self, spec: CompiledSpec) -> float:
        table_score = self.resolver.coherence_ratio(spec.constraints)
        patterns = sorted(set(spec.patterns))
        pairs = [(a, b) for i, a in enumerate(patterns) for b in patterns[i + 1:]]
        if pairs:
            pair_score = sum(1 for a, b in pairs if self.library.compatible(a, b)) / len(pairs)
        else:
            pair_score = 1.0
        return (table_score + pair_score) / 2

    def domain_expertise(self, spec: CompiledSpec) -> float:
        # Explicitly listing the domain counts fully, a wildcard counts half.
        patterns = spec.patterns
        if not patterns:
            return 0.0
        total = 0.0
        for pid in patterns:
            domains = self.library.get(pid).domains
            if spec.domain in domains:
                total += 1.0
            elif ANY in domains:
                total += 0.5
        return total / len(patterns)

    def _component_count(self, spec: CompiledSpec) -> int:
        ids: set[str] = set()
        for pid in spec.patterns:
            ids.update(c.id for c in self.library.resolve_components(pid))
        return len(ids)
