"""
Blueprint models: the render-ready hand-off to external renderers.

Blueprints are produced on-demand by the compiler and are NOT persisted.
They contain laid-out components, annotated relationships, optimization
metrics and any non-fatal warnings raised along the way.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from rlcompiler.models.patterns import FlowKind
from rlcompiler.models.spec import CompiledSpec


ComplexityTier = Literal["low", "medium", "high"]


class Metrics(BaseModel):
    original_token_count: int = Field(ge=0, serialization_alias="original_tokens")
    optimized_token_count: int = Field(ge=0, serialization_alias="optimized_tokens")
    reduction_ratio: float = Field(ge=0.0, le=1.0)
    clarity_score: float = Field(ge=0.0, le=1.0)
    pattern_confidence: float = Field(ge=0.0, le=1.0)
    complexity_tier: ComplexityTier
    clarity_breakdown: dict[str, float] = Field(default_factory=dict)


class CompilationDiagnostic(BaseModel):
    level: Literal["error", "warning"]
    code: str
    message: str
    node_id: str | None = None
    field: str | None = None
    detail: dict[str, Any] = Field(default_factory=dict)


class BlueprintNode(BaseModel):
    id: str
    type: str
    label: str
    technology: str | None = None
    layer: int | None = None
    x: float
    y: float


class BlueprintEdge(BaseModel):
    from_node: str = Field(serialization_alias="from")
    to_node: str = Field(serialization_alias="to")
    type: str
    label: str = ""
    flow: FlowKind = "sync"


class BlueprintSummary(BaseModel):
    component_count: int
    connection_count: int
    complexity_tier: ComplexityTier
    intent: str
    domain: str
    patterns: list[str]
    algorithm: str
    layout_status: str
    metrics: Metrics


class Blueprint(BaseModel):
    nodes: list[BlueprintNode]
    edges: list[BlueprintEdge]
    metrics: Metrics
    warnings: list[CompilationDiagnostic] = Field(default_factory=list)
    summary: BlueprintSummary

    def to_output(self) -> dict[str, Any]:
        """Wire-shaped dict: edges keyed from/to, metrics keyed *_tokens."""
        return self.model_dump(by_alias=True, mode="json")


class CompilationResult(BaseModel):
    success: bool
    blueprint: Blueprint | None = None
    spec: CompiledSpec | None = None
    diagnostics: list[CompilationDiagnostic] = Field(default_factory=list)
