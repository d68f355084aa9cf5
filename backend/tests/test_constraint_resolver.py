import pytest

from rlcompiler.config import ResolverConfig
from rlcompiler.errors import ConflictError, IncompatibleStackError
from rlcompiler.models.pattern_catalog import default_templates
from rlcompiler.models.spec import ConstraintSet, ConstraintValue
from rlcompiler.services.constraint_resolver import ConstraintResolver, normalize_tiers
from rlcompiler.services.pattern_library import PatternLibrary


@pytest.fixture(scope="module")
def library():
    return PatternLibrary.load(default_templates())


@pytest.fixture
def resolver(library):
    return ConstraintResolver(library)


def _explicit(**values) -> ConstraintSet:
    return ConstraintSet(entries={
        key: ConstraintValue(value=value, provenance="explicit") for key, value in values.items()
    })


class TestMerge:

    def test_explicit_beats_pattern(self, resolver):
        """Explicit framework wins; the pattern still contributes protocol."""
        merged = resolver.merge({"framework": "fastapi"}, ["rest_api"])

        assert merged.get("framework") == "fastapi"
        assert merged.provenance("framework") == "explicit"
        assert merged.get("protocol") == "http"
        assert merged.provenance("protocol") == "pattern"

    def test_later_pattern_overrides_earlier(self, resolver):
        merged = resolver.merge({}, ["rest_api", "grpc_service"])

        assert merged.get("protocol") == "grpc"
        assert merged.get("format") == "protobuf"
        assert merged.values()["api_style"] == "rest"

    def test_defaults_lose_to_patterns(self, library):
        resolver = ConstraintResolver(library, ResolverConfig(defaults={"deployment": "vm", "region": "eu"}))
        merged = resolver.merge(None, ["microservices"])

        assert merged.get("deployment") == "kubernetes"
        assert merged.get("region") == "eu"
        assert merged.provenance("region") == "default"

    def test_same_tier_disagreement_raises(self, resolver):
        with pytest.raises(ConflictError) as exc_info:
            resolver.merge({}, [["rest_api", "grpc_service"]])

        error = exc_info.value
        # format and protocol both disagree; the first key alphabetically is reported
        assert error.key == "format"
        assert error.competing == {"rest_api": "json", "grpc_service": "protobuf"}
        assert error.pattern_ids == ["rest_api", "grpc_service"]

    def test_explicit_settles_same_tier_disagreement(self, resolver):
        merged = resolver.merge(
            {"protocol": "grpc", "format": "json"}, [["rest_api", "grpc_service"]]
        )
        assert merged.get("protocol") == "grpc"
        assert merged.get("format") == "json"

    def test_later_tier_settles_disagreement(self, resolver):
        merged = resolver.merge({}, [["postgresql_storage", "mysql_storage"], "document_storage"])
        assert merged.get("database") == "mongodb"

    def test_same_tier_agreement_is_not_a_conflict(self, resolver):
        merged = resolver.merge({}, [["relational_persistence", "postgresql_storage"]])
        assert merged.get("storage") == "relational"
        assert merged.get("database") == "postgresql"

    def test_keys_sorted(self, resolver):
        merged = resolver.merge({"zeta": 1, "alpha": 2}, ["rest_api"])
        assert merged.keys() == sorted(merged.keys())


def test_normalize_tiers():
    assert normalize_tiers(["a", ["b", "c"], [], "d"]) == [["a"], ["b", "c"], ["d"]]


class TestCoherence:

    def test_python_express_rejected_with_suggestion(self, resolver):
        with pytest.raises(IncompatibleStackError) as exc_info:
            resolver.validate_coherence(_explicit(language="python", framework="express"))

        assert exc_info.value.key == "framework"
        assert exc_info.value.suggestion == "fastapi"

    def test_matching_stack_passes(self, resolver):
        resolver.validate_coherence(_explicit(language="Python", framework="FastAPI", orm="sqlalchemy"))

    def test_unknown_language_not_checked(self, resolver):
        resolver.validate_coherence(_explicit(language="cobol", framework="express"))

    def test_coherence_ratio(self, resolver):
        constraints = _explicit(language="python", framework="django", orm="prisma")
        assert resolver.coherence_ratio(constraints) == 0.5
        assert resolver.coherence_ratio(_explicit(framework="express")) == 1.0
