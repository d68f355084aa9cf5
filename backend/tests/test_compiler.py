"""
End-to-end tests for the compilation pipeline:
Classify → Merge → Validate → Build graph → Score → Layout → Assemble
"""

import threading

import pytest
from pydantic import ValidationError

from rlcompiler.config import CompilerSettings, LayoutConfig
from rlcompiler.errors import (
    LAYOUT_NON_CONVERGENCE,
    REDUCTION_MISMATCH,
    ConflictError,
    IncompatibleStackError,
    InvalidGraphError,
    LowConfidenceError,
)
from rlcompiler.models.graph import ComponentNode, RelationshipEdge
from rlcompiler.models.pattern_catalog import default_templates
from rlcompiler.services.compiler import CompileRequest, Compiler, compile_requirements
from rlcompiler.services.pattern_library import PatternLibrary


REQUEST_TEXT = (
    "We need to build a brand new backend service for our customer portal. It should expose a "
    "RESTful API that our web and mobile clients can call over HTTPS, returning JSON payloads. "
    "Users have to authenticate with JSON Web Tokens issued by our auth service, and every "
    "request must be verified before it reaches the business logic. All customer data, orders "
    "and invoices should be stored in a PostgreSQL database. The team mostly writes Python, so "
    "please use FastAPI for the web framework and SQLAlchemy as the ORM. We expect moderate "
    "traffic at first but would like the design to be able to scale later on without a rewrite."
)


@pytest.fixture(scope="module")
def library():
    return PatternLibrary.load(default_templates())


def _request(**overrides) -> CompileRequest:
    payload = {
        "text": REQUEST_TEXT,
        "signals": ["REST", "JWT", "PostgreSQL"],
        "constraints": {"language": "python", "framework": "fastapi"},
    }
    payload.update(overrides)
    return CompileRequest(**payload)


class TestCompile:

    def test_web_api_blueprint(self, library):
        result = Compiler(library).compile(_request())

        assert result.success
        spec = result.spec
        assert spec.intent == "build"
        assert spec.domain == "web_api"
        assert spec.pattern_tiers == [["rest_api", "jwt_authentication", "postgresql_storage"]]
        assert spec.constraints.get("framework") == "fastapi"
        assert spec.constraints.provenance("framework") == "explicit"
        assert spec.constraints.get("protocol") == "http"
        assert spec.constraints.get("deployment") == "container"
        assert spec.constraints.provenance("deployment") == "default"

        blueprint = result.blueprint
        technologies = {n.id: n.technology for n in blueprint.nodes}
        assert technologies == {
            "client": None,
            "api_server": "fastapi",
            "auth_service": "jwt",
            "database": "postgresql",
        }
        assert {(e.from_node, e.to_node) for e in blueprint.edges} == {
            ("client", "api_server"),
            ("api_server", "auth_service"),
            ("api_server", "database"),
        }
        assert blueprint.metrics.complexity_tier == "low"
        assert blueprint.metrics.reduction_ratio >= 0.40
        assert blueprint.metrics.pattern_confidence >= 0.80
        assert blueprint.warnings == []
        assert result.diagnostics == []

    def test_hierarchical_layers_follow_data_flow(self, library):
        blueprint = Compiler(library).compile(_request()).blueprint
        y = {n.id: n.y for n in blueprint.nodes}
        assert y["client"] < y["api_server"] < y["database"]
        assert y["auth_service"] == y["database"]

    def test_compile_is_deterministic(self, library):
        first = Compiler(library).compile(_request()).blueprint.to_output()
        second = Compiler(library).compile(_request()).blueprint.to_output()
        assert first == second

    def test_low_confidence_raises(self, library):
        with pytest.raises(LowConfidenceError):
            Compiler(library).compile(_request(signals=["banana"]))

    def test_incompatible_stack(self, library):
        with pytest.raises(IncompatibleStackError) as exc_info:
            Compiler(library).compile(_request(constraints={"language": "python", "framework": "express"}))
        assert exc_info.value.suggestion == "fastapi"


class TestPatternOverride:

    def test_later_pattern_wins(self, library):
        result = Compiler(library).compile(
            _request(patterns=["rest_api", "grpc_service"], constraints={})
        )

        assert result.spec.pattern_tiers == [["rest_api"], ["grpc_service"]]
        assert result.spec.constraints.get("protocol") == "grpc"
        node_ids = {n.id for n in result.blueprint.nodes}
        assert {"client", "grpc_client", "api_server"} <= node_ids

    def test_same_tier_conflict(self, library):
        with pytest.raises(ConflictError) as exc_info:
            Compiler(library).compile(_request(patterns=[["rest_api", "grpc_service"]], constraints={}))
        assert set(exc_info.value.pattern_ids) == {"rest_api", "grpc_service"}

    def test_override_skips_threshold(self, library):
        # No signal explains these patterns, yet the caller's choice stands
        result = Compiler(library).compile(
            _request(signals=[], patterns=["etl_pipeline", "python_stack"], constraints={})
        )
        assert result.spec.domain == "data_pipeline"
        assert result.blueprint.nodes[0].id == "source"
        technologies = {n.id: n.technology for n in result.blueprint.nodes}
        assert technologies["transformer"] == "python"
        assert technologies["warehouse"] == "warehouse"


class TestWarnings:

    def test_non_convergence_warning(self, library):
        settings = CompilerSettings(layout=LayoutConfig(max_iterations=2, convergence_threshold=1e-9))
        result = Compiler(library, settings).compile(_request(algorithm="force_directed"))

        assert result.success
        assert result.blueprint.summary.layout_status == "max_iter_reached"
        assert LAYOUT_NON_CONVERGENCE in [w.code for w in result.blueprint.warnings]

    def test_reported_reduction_mismatch(self, library):
        result = Compiler(library).compile(_request(reported_reduction=0.99))
        assert [w.code for w in result.blueprint.warnings] == [REDUCTION_MISMATCH]

    def test_cancelled_layout_still_assembles(self, library):
        cancel = threading.Event()
        cancel.set()
        result = Compiler(library).compile(_request(algorithm="force_directed"), cancel=cancel)
        assert result.blueprint.summary.layout_status == "cancelled"
        assert len(result.blueprint.nodes) == 4


class TestGraph:

    def test_extra_nodes_and_edges(self, library):
        result = Compiler(library).compile(_request(
            nodes=[ComponentNode(id="cdn", type="edge", label="CDN", layer=0)],
            edges=[RelationshipEdge(source="cdn", target="api_server", type="proxy")],
        ))
        assert "cdn" in {n.id for n in result.blueprint.nodes}
        assert ("cdn", "api_server") in {(e.from_node, e.to_node) for e in result.blueprint.edges}

    def test_unset_placeholder_leaves_technology_empty(self, library):
        # No framework constraint anywhere
        result = Compiler(library).compile(_request(constraints={"language": "python"}))
        api_server = next(n for n in result.blueprint.nodes if n.id == "api_server")
        assert api_server.technology is None


class TestCompileRequirements:

    def test_failure_becomes_diagnostic(self, library):
        result = compile_requirements(library, _request(signals=["banana"]))

        assert not result.success
        assert result.blueprint is None
        diagnostic = result.diagnostics[0]
        assert diagnostic.level == "error"
        assert diagnostic.code == "LowConfidenceError"
        assert diagnostic.detail["threshold"] == 0.80

    def test_unknown_pattern_override(self, library):
        result = compile_requirements(library, _request(patterns=["nope"]))
        assert not result.success
        assert result.diagnostics[0].code == "UnknownPatternError"
        assert result.diagnostics[0].detail["pattern_id"] == "nope"

    def test_success(self, library):
        result = compile_requirements(library, _request())
        assert result.success
        assert result.blueprint.summary.intent == "build"


class TestRequestValidation:

    def test_caller_edge_to_unknown_node(self, library):
        request = _request(edges=[RelationshipEdge(source="api_server", target="ghost")])

        with pytest.raises(InvalidGraphError, match="unknown target node 'ghost'"):
            Compiler(library).compile(request)

        result = compile_requirements(library, request)
        assert not result.success
        assert result.diagnostics[0].code == "InvalidGraphError"

    def test_pattern_edges_to_missing_components_are_pruned(self, library):
        # token_authentication's api_server -> auth_service edge has no api_server here
        result = Compiler(library).compile(
            _request(signals=[], patterns=["jwt_authentication"], constraints={})
        )
        assert result.success
        assert result.blueprint.edges == []

    @pytest.mark.parametrize("sub_scores", [{"clarity": 0.5}, {"domain_expertise": 1.5}])
    def test_invalid_sub_scores_rejected(self, sub_scores):
        with pytest.raises(ValidationError):
            _request(sub_scores=sub_scores)

    def test_valid_sub_scores_accepted(self, library):
        result = Compiler(library).compile(_request(sub_scores={"domain_expertise": 1.0}))
        assert result.blueprint.metrics.clarity_breakdown["domain_expertise"] == 1.0
