import pytest

from rlcompiler.config import ScorerConfig
from rlcompiler.errors import INSUFFICIENT_REDUCTION, LOW_CLARITY, REDUCTION_MISMATCH
from rlcompiler.models.pattern_catalog import default_templates
from rlcompiler.models.spec import CompiledSpec
from rlcompiler.services.constraint_resolver import ConstraintResolver
from rlcompiler.services.optimization_scorer import OptimizationScorer, reduction_ratio, token_count
from rlcompiler.services.pattern_library import PatternLibrary


LONG_REQUEST = (
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


@pytest.fixture
def scorer(library):
    return OptimizationScorer(library)


@pytest.fixture
def web_api_spec(library):
    patterns = [["rest_api", "jwt_authentication", "postgresql_storage"]]
    constraints = ConstraintResolver(library).merge(
        {"language": "python", "framework": "fastapi"}, patterns
    )
    return CompiledSpec(
        intent="build",
        domain="web_api",
        pattern_tiers=patterns,
        constraints=constraints,
        pattern_confidence=0.95,
    )


class TestTokenCounting:

    def test_words_and_punctuation(self):
        assert token_count("Build a REST API.") == 5
        assert token_count("") == 0

    def test_no_deduplication(self):
        assert token_count("api api API") == 3

    def test_reduction_ratio(self):
        assert reduction_ratio(156, 67) == pytest.approx(0.5705, abs=1e-4)
        assert reduction_ratio(0, 10) == 0.0
        assert reduction_ratio(10, 20) == 0.0


class TestCompute:

    def test_metrics_for_web_api(self, scorer, web_api_spec):
        report = scorer.compute(LONG_REQUEST, web_api_spec, component_count=4)
        metrics = report.metrics

        assert metrics.original_token_count == token_count(LONG_REQUEST)
        assert metrics.optimized_token_count == token_count(web_api_spec.to_rl())
        assert metrics.reduction_ratio == pytest.approx(
            1 - metrics.optimized_token_count / metrics.original_token_count
        )
        assert metrics.reduction_ratio >= 0.40
        assert metrics.pattern_confidence == 0.95
        assert metrics.complexity_tier == "low"

        breakdown = metrics.clarity_breakdown
        assert breakdown["pattern_specificity"] == pytest.approx(0.8)
        assert breakdown["constraint_completeness"] == 1.0
        assert breakdown["technology_coherence"] == 1.0
        assert breakdown["domain_expertise"] == pytest.approx(2.5 / 3)
        assert metrics.clarity_score == pytest.approx(sum(breakdown.values()) / 4)
        assert report.warnings == []

    def test_metrics_are_reproducible(self, scorer, web_api_spec):
        first = scorer.compute(LONG_REQUEST, web_api_spec)
        second = scorer.compute(LONG_REQUEST, web_api_spec)
        assert first.model_dump() == second.model_dump()

    def test_short_input_flags_insufficient_reduction(self, scorer, web_api_spec):
        report = scorer.compute("REST API with JWT", web_api_spec)

        assert report.metrics.reduction_ratio == 0.0
        assert [w.code for w in report.warnings] == [INSUFFICIENT_REDUCTION]
        assert report.warnings[0].level == "warning"

    def test_supplied_sub_scores_override(self, scorer, web_api_spec):
        report = scorer.compute(
            LONG_REQUEST,
            web_api_spec,
            sub_scores={"pattern_specificity": 0.5, "domain_expertise": 0.5},
        )
        assert report.metrics.clarity_breakdown["pattern_specificity"] == 0.5
        assert report.metrics.clarity_score == pytest.approx((0.5 + 1.0 + 1.0 + 0.5) / 4)
        assert LOW_CLARITY in [w.code for w in report.warnings]

    def test_invalid_sub_scores(self, scorer, web_api_spec):
        with pytest.raises(ValueError, match="Unknown clarity sub-scores"):
            scorer.compute(LONG_REQUEST, web_api_spec, sub_scores={"vibes": 1.0})
        with pytest.raises(ValueError, match="must be in"):
            scorer.compute(LONG_REQUEST, web_api_spec, sub_scores={"domain_expertise": 1.5})

    @pytest.mark.parametrize("count,tier", [(5, "low"), (6, "medium"), (15, "medium"), (16, "high")])
    def test_complexity_bands(self, scorer, web_api_spec, count, tier):
        report = scorer.compute(LONG_REQUEST, web_api_spec, component_count=count)
        assert report.metrics.complexity_tier == tier

    def test_thresholds_configurable(self, library, web_api_spec):
        scorer = OptimizationScorer(library, ScorerConfig(min_reduction=0.0, min_clarity=0.0))
        report = scorer.compute("REST API", web_api_spec)
        assert report.warnings == []

    def test_serialized_metric_names(self, scorer, web_api_spec):
        dumped = scorer.compute(LONG_REQUEST, web_api_spec).metrics.model_dump(by_alias=True)
        assert "original_tokens" in dumped
        assert "optimized_tokens" in dumped


class TestReportedReduction:

    def test_consistent_report(self, scorer):
        assert scorer.check_reported_reduction(156, 67, 0.57) is None

    def test_inconsistent_report_flagged(self, scorer):
        diagnostic = scorer.check_reported_reduction(156, 67, 0.80)

        assert diagnostic is not None
        assert diagnostic.code == REDUCTION_MISMATCH
        assert diagnostic.detail["expected"] == pytest.approx(0.5705, abs=1e-4)
