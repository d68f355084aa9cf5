"""
Component graph and layout models.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from rlcompiler.models.patterns import FlowKind


LayoutAlgorithm = Literal["hierarchical", "grid", "force_directed"]
LayoutStatus = Literal["converged", "max_iter_reached", "cancelled"]
LayoutState = Literal[
    "INPUT_GRAPH",
    "ALGORITHM_SELECTED",
    "POSITIONS_COMPUTED",
    "CONVERGED",
    "MAX_ITER_REACHED",
    "CANCELLED",
    "FINALIZED",
]


class Position(BaseModel):
    x: float
    y: float


class ComponentNode(BaseModel):
    id: str
    type: str
    label: str
    technology: str | None = None
    layer: int | None = None
    position: Position | None = None


class RelationshipEdge(BaseModel):
    source: str
    target: str
    type: str = "calls"
    label: str = ""
    flow: FlowKind = "sync"

    @property
    def key(self) -> str:
        return f"{self.source}->{self.target}:{self.type}"


class BoundingBox(BaseModel):
    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 0.0
    max_y: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class LayoutResult(BaseModel):
    algorithm: LayoutAlgorithm
    positions: dict[str, Position] = Field(default_factory=dict)
    routes: dict[str, list[Position]] = Field(default_factory=dict)
    bounding_box: BoundingBox = Field(default_factory=BoundingBox)
    status: LayoutStatus = "converged"
    iterations: int = 0
    state_trace: list[LayoutState] = Field(default_factory=list)
    nodes: list[ComponentNode] = Field(default_factory=list)
    edges: list[RelationshipEdge] = Field(default_factory=list)
