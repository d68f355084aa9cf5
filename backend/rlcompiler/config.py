"""
Configuration for the RL blueprint compiler.

All tunable numbers of the pipeline (scoring weights, thresholds, layout
spacing and force constants) live here and are passed explicitly into the
Classifier, OptimizationScorer and LayoutEngine.
"""

from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

load_dotenv()


class ScoringWeights(BaseModel):
    """Classifier confidence weights (must sum to 1.0)."""

    keyword_overlap: float = Field(default=0.3, ge=0.0, le=1.0)
    intent_alignment: float = Field(default=0.4, ge=0.0, le=1.0)
    stack_coherence: float = Field(default=0.3, ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoringWeights":
        total = self.keyword_overlap + self.intent_alignment + self.stack_coherence
        if not (0.99 <= total <= 1.01):  # Allow small floating point errors
            raise ValueError(
                f"Weights must sum to 1.0, got {total:.3f} "
                f"(keyword_overlap={self.keyword_overlap}, "
                f"intent_alignment={self.intent_alignment}, "
                f"stack_coherence={self.stack_coherence})"
            )
        return self


class WeightPresets:
    """Preset weight configurations for different scenarios"""

    @staticmethod
    def balanced() -> ScoringWeights:
        return ScoringWeights()

    @staticmethod
    def keyword_priority() -> ScoringWeights:
        # signals are trusted more than declared intent
        return ScoringWeights(keyword_overlap=0.6, intent_alignment=0.2, stack_coherence=0.2)

    @staticmethod
    def coherence_priority() -> ScoringWeights:
        return ScoringWeights(keyword_overlap=0.2, intent_alignment=0.3, stack_coherence=0.5)


class ClassifierConfig(BaseModel):
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    confidence_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    max_candidates: int = Field(default=5, ge=1)

    model_config = {"frozen": True}


class ResolverConfig(BaseModel):
    # Folded in first with provenance "default"; any pattern or explicit value wins.
    defaults: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


PIPELINE_DEFAULT_CONSTRAINTS: dict[str, Any] = {"deployment": "container"}


class ComplexityBands(BaseModel):
    """Component-count bands: low < medium_min <= medium <= medium_max < high."""

    medium_min: int = 6
    medium_max: int = 15

    model_config = {"frozen": True}

    def tier(self, count: int) -> str:
        if count < self.medium_min:
            return "low"
        if count <= self.medium_max:
            return "medium"
        return "high"


class ScorerConfig(BaseModel):
    min_reduction: float = Field(default=0.40, ge=0.0, le=1.0)
    min_clarity: float = Field(default=0.85, ge=0.0, le=1.0)
    reported_ratio_tolerance: float = Field(default=0.01, ge=0.0)
    complexity_bands: ComplexityBands = Field(default_factory=ComplexityBands)

    model_config = {"frozen": True}


class LayoutConfig(BaseModel):
    # Shared geometry
    horizontal_spacing: float = 200.0
    vertical_spacing: float = 150.0
    node_width: float = 120.0
    node_height: float = 60.0
    min_distance: float = 20.0
    max_separation_passes: int = 100

    # Hierarchical
    sweeps: int = Field(default=4, ge=0)

    # Grid
    columns: int | None = Field(default=None, ge=1)

    # Force-directed
    max_iterations: int = Field(default=500, ge=1)
    convergence_threshold: float = Field(default=0.5, gt=0.0)
    ideal_length: float = 180.0
    repulsion: float = 20000.0
    attraction: float = 0.05
    gravity: float = 0.02
    damping: float = 0.85
    max_step: float = 50.0
    center: tuple[float, float] = (0.0, 0.0)
    initial_spread: float = 400.0

    model_config = {"frozen": True}


class CompilerSettings(BaseModel):
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    resolver: ResolverConfig = Field(
        default_factory=lambda: ResolverConfig(defaults=PIPELINE_DEFAULT_CONSTRAINTS)
    )
    scorer: ScorerConfig = Field(default_factory=ScorerConfig)
    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    pattern_file: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls) -> "CompilerSettings":
        """Build settings from RLC_* environment variables (.env is honoured)."""
        classifier = ClassifierConfig(
            weights=ScoringWeights(
                keyword_overlap=_env_float("RLC_WEIGHT_KEYWORD_OVERLAP", 0.3),
                intent_alignment=_env_float("RLC_WEIGHT_INTENT_ALIGNMENT", 0.4),
                stack_coherence=_env_float("RLC_WEIGHT_STACK_COHERENCE", 0.3),
            ),
            confidence_threshold=_env_float("RLC_CONFIDENCE_THRESHOLD", 0.80),
        )
        scorer = ScorerConfig(
            min_reduction=_env_float("RLC_MIN_REDUCTION", 0.40),
            min_clarity=_env_float("RLC_MIN_CLARITY", 0.85),
        )
        layout = LayoutConfig(
            max_iterations=int(_env_float("RLC_LAYOUT_MAX_ITERATIONS", 500)),
            convergence_threshold=_env_float("RLC_LAYOUT_CONVERGENCE_THRESHOLD", 0.5),
            min_distance=_env_float("RLC_LAYOUT_MIN_DISTANCE", 20.0),
        )
        return cls(
            classifier=classifier,
            scorer=scorer,
            layout=layout,
            pattern_file=os.getenv("RLC_PATTERN_FILE") or None,
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
