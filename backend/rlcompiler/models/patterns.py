"""
Pattern template models: the declarative records the PatternLibrary is built from.

Templates are loaded once at startup and shared read-only between requests,
so every model here is frozen.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, field_serializer, field_validator


FlowKind = Literal["sync", "async", "pipeline"]

ANY = "*"


class PatternComponent(BaseModel):
    id: str
    type: str
    label: str
    # Literal technology name or a "{constraint_key}" placeholder
    technology: str | None = None
    layer: int | None = None

    model_config = {"frozen": True}


class PatternConnection(BaseModel):
    source: str
    target: str
    type: str = "calls"
    label: str = ""
    flow: FlowKind = "sync"

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source, self.target, self.type)


class PatternTemplate(BaseModel):
    id: str
    category: str
    # Read-only: templates are shared between requests
    implied_constraints: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)
    inherits_from: frozenset[str] = frozenset()
    integrates_with: frozenset[str] = frozenset()
    keywords: tuple[str, ...] = ()
    intents: tuple[str, ...] = (ANY,)
    domains: tuple[str, ...] = (ANY,)
    components: tuple[PatternComponent, ...] = ()
    connections: tuple[PatternConnection, ...] = ()
    description: str = ""

    model_config = {"frozen": True}

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Pattern id must not be empty")
        return value

    @field_validator("implied_constraints")
    @classmethod
    def _freeze_constraints(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("implied_constraints")
    def _serialize_constraints(self, value: Mapping[str, Any]) -> dict[str, Any]:
        return dict(value)

    def serves(self, intent: str, domain: str) -> bool:
        """True if the pattern declares support for both intent and domain."""
        intent_ok = ANY in self.intents or intent in self.intents
        domain_ok = ANY in self.domains or domain in self.domains
        return intent_ok and domain_ok
