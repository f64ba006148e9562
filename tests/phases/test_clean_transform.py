"""Tests for the CLEAN (rule-driven) and TRANSFORM phases."""

from uuid import uuid4

import pytest

from asset_ingestion.domain.types import PipelinePhase
from asset_ingestion.models.rules import PipelineRuleModel
from asset_ingestion.phases import CleanPhase, PhaseContext, TransformPhase
from asset_ingestion.rules import RuleEngine, RuleStore, default_processor_registry


@pytest.fixture
def context():
    return PhaseContext(job_id=uuid4(), correlation_id="test-run")


@pytest.fixture
def rule_store(session):
    return RuleStore(session, default_processor_registry())


@pytest.fixture
def clean_phase(rule_store, settings, deterministic_clock):
    engine = RuleEngine(rule_store, default_processor_registry())
    return CleanPhase(rule_store, engine, settings, clock=deterministic_clock)


class TestCleanPhase:
    def test_default_trim_rules_provisioned_and_applied(self, clean_phase, rule_store, context):
        rows = [{"Asset Tag": "  A-1  ", "Asset Name": "\t Pump \n", "Manufacturer": " Acme "}]
        outcome = clean_phase.process({"valid_rows": rows, "valid_row_numbers": [3]}, context)

        assert outcome.success
        assert outcome.data["cleaned_rows"] == [
            {"Asset Tag": "A-1", "Asset Name": "Pump", "Manufacturer": " Acme "}
        ]
        assert {r.name for r in rule_store.list_active(PipelinePhase.CLEAN)} == {
            "Asset Name TRIM Rule",
            "Asset Tag TRIM Rule",
        }
        assert outcome.debug.rules_applied == ("Asset Name TRIM Rule", "Asset Tag TRIM Rule")
        fields = {t["field"] for t in outcome.debug.transformations}
        assert fields == {"Asset Tag_row_3", "Asset Name_row_3"}

    def test_input_rows_untouched(self, clean_phase, context):
        rows = [{"Asset Tag": "  A-1  ", "Asset Name": "Pump"}]
        clean_phase.process({"valid_rows": rows}, context)
        assert rows[0]["Asset Tag"] == "  A-1  "

    def test_custom_rule_replaces_defaults(self, clean_phase, rule_store, context):
        rule_store.create_rule(
            name="Upper names", phase="CLEAN", rule_type="TO_UPPERCASE", target="Asset Name",
        )
        outcome = clean_phase.process(
            {"valid_rows": [{"Asset Tag": " a ", "Asset Name": "pump"}]}, context
        )
        assert outcome.data["cleaned_rows"] == [{"Asset Tag": " a ", "Asset Name": "PUMP"}]
        assert len(rule_store.list_active(PipelinePhase.CLEAN)) == 1

    def test_failed_row_keeps_original_values(self, clean_phase, rule_store, session, context):
        rule = rule_store.create_rule(
            name="Fix names", phase="CLEAN", rule_type="REGEX_REPLACE", target="Asset Name",
            config={"pattern": "x", "replacement": "y"},
        )
        # Bypass store validation so only the engine sees the bad config
        session.get(PipelineRuleModel, rule.rule_id).config = {"pattern": "(", "replacement": ""}
        session.flush()

        rows = [{"Asset Tag": "A-1", "Asset Name": "x"}]
        outcome = clean_phase.process({"valid_rows": rows}, context)
        assert outcome.success
        assert outcome.data["cleaned_rows"] == rows
        assert outcome.metrics.records_failed == 1
        assert any(w.startswith("Row 1: Invalid config for rule Fix names") for w in outcome.warnings)

    def test_requires_valid_rows(self, clean_phase, context):
        outcome = clean_phase.process({"rows": []}, context)
        assert not outcome.success
        assert outcome.errors[0].startswith("CLEAN failed:")


class TestTransformPhase:
    def test_normalizes_values(self, deterministic_clock, context):
        row = {
            "Asset Tag": " A-1 ",
            "Status": " in service ",
            "Condition": "good",
            "Purchase Cost": "$1,500.00",
            "Purchase Date": "01/31/2022",
        }
        outcome = TransformPhase(clock=deterministic_clock).process({"cleaned_rows": [row]}, context)
        out = outcome.data["transformed_rows"][0]

        assert out["Asset Tag"] == "A-1"
        assert out["Status"] == "IN SERVICE"
        assert out["Condition"] == "GOOD"
        assert out["Purchase Cost"] == "1500.00"
        assert out["Purchase Date"] == "2022-01-31"
        assert out["_processed_at"] == deterministic_clock.now_utc().isoformat()
        assert out["_row_index"] == 0
        assert outcome.warnings == ("Applied 5 transformations",)

    def test_unparsable_values_left_alone(self, context):
        row = {"Purchase Cost": "lots", "Purchase Date": "someday"}
        out = TransformPhase().process({"rows": [row]}, context).data["transformed_rows"][0]
        assert out["Purchase Cost"] == "lots"
        assert out["Purchase Date"] == "someday"

    def test_source_preference(self, context):
        blob = {"rows": [{"a": "raw"}], "valid_rows": [{"a": "valid"}], "cleaned_rows": [{"a": "clean"}]}
        out = TransformPhase().process(blob, context).data["transformed_rows"]
        assert out[0]["a"] == "clean"

    def test_debug_trace_capped(self, context):
        rows = [{"a": f" {i} "} for i in range(25)]
        outcome = TransformPhase().process({"rows": rows}, context)
        assert len(outcome.debug.transformations) == 10
        assert outcome.warnings == ("Applied 25 transformations",)

    def test_no_rows(self, context):
        outcome = TransformPhase().process({"file_id": "x"}, context)
        assert not outcome.success
