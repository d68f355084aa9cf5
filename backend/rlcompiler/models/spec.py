"""
Compiled specification models: the Requirements Language (RL) side of the pipeline.

A CompiledSpec is produced fresh for every compilation request and is
discarded once the Blueprint has been handed off.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


Provenance = Literal["explicit", "pattern", "default"]


class ConstraintValue(BaseModel):
    value: Any
    provenance: Provenance
    source: str | None = None  # contributing pattern id when provenance == "pattern"

    model_config = {"frozen": True}


class ConstraintSet(BaseModel):
    """One active value per key, each with its provenance."""

    entries: dict[str, ConstraintValue] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.entries.get(key)
        return entry.value if entry is not None else default

    def provenance(self, key: str) -> Provenance | None:
        entry = self.entries.get(key)
        return entry.provenance if entry is not None else None

    def values(self) -> dict[str, Any]:
        return {key: entry.value for key, entry in self.entries.items()}

    def keys(self) -> list[str]:
        return list(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)


class ClassificationCandidate(BaseModel):
    intent: str
    domain: str
    patterns: list[str]
    confidence: float = Field(ge=0.0, le=1.0)
    keyword_overlap: float = Field(ge=0.0, le=1.0)
    intent_alignment: float = Field(ge=0.0, le=1.0)
    stack_coherence: float = Field(ge=0.0, le=1.0)
    matched_signals: list[str] = Field(default_factory=list)


class CompiledSpec(BaseModel):
    intent: str
    domain: str
    # Priority tiers: later tiers override earlier ones; ids within a tier are equal priority.
    pattern_tiers: list[list[str]]
    constraints: ConstraintSet
    style: dict[str, Any] | None = None
    output: dict[str, Any] | None = None
    pattern_confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def patterns(self) -> list[str]:
        return [pid for tier in self.pattern_tiers for pid in tier]

    def to_rl(self) -> str:
        """Serialize to compact RL text (the optimized form that gets token-counted)."""
        lines = [
            f"intent: {self.intent}",
            f"domain: {self.domain}",
            "patterns: " + " > ".join("+".join(tier) for tier in self.pattern_tiers),
        ]
        if len(self.constraints):
            lines.append("constraints:")
            for key in sorted(self.constraints.keys()):
                lines.append(f"  {key}: {_rl_value(self.constraints.get(key))}")
        for section, mapping in (("style", self.style), ("output", self.output)):
            if mapping:
                lines.append(f"{section}:")
                for key in sorted(mapping):
                    lines.append(f"  {key}: {_rl_value(mapping[key])}")
        return "\n".join(lines)


def _rl_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        items = sorted(value) if isinstance(value, (set, frozenset)) else value
        return "[" + ", ".join(str(v) for v in items) + "]"
    return str(value)
