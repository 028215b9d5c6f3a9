"""
Unit Tests for the Biomarker Evaluator
"""
from medbrain.core.logic import (
    BiomarkerReference,
    BiomarkerStatus,
    BiomarkerValue,
    KnowledgeSnapshot,
    MetricDefinition,
    ProtocolDefinition,
    ProtocolType,
    evaluate,
)
from medbrain.core.logic.evaluator import calculate_metric, classify_biomarker, is_protocol_triggered


TSH = BiomarkerReference(
    slug="tsh", name="TSH", unit="µUI/mL",
    optimal_min=1.0, optimal_max=2.2, lab_min=0.4, lab_max=4.0,
)


def _protocol(condition: str, protocol_id: str = "p") -> ProtocolDefinition:
    return ProtocolDefinition(
        id=protocol_id,
        type=ProtocolType.MEDICAL,
        title=protocol_id.title(),
        description="Test protocol",
        trigger_condition=condition,
    )


class TestClassification:

    def test_optimal(self):
        result = classify_biomarker("tsh", 1.5, TSH)
        assert result.status == BiomarkerStatus.OPTIMAL
        assert result.message == "Within optimal range"

    def test_suboptimal_above(self):
        result = classify_biomarker("tsh", 3.1, TSH)
        assert result.status == BiomarkerStatus.SUBOPTIMAL
        assert result.message == "Above optimal (optimal: ≤ 2.2)"

    def test_lab_limit_overrides_optimal(self):
        result = classify_biomarker("tsh", 5.0, TSH)
        assert result.status == BiomarkerStatus.ABNORMAL
        assert result.message == "Above laboratory limit (4)"

    def test_below_lab_limit(self):
        result = classify_biomarker("tsh", 0.2, TSH)
        assert result.status == BiomarkerStatus.ABNORMAL
        assert result.message == "Below laboratory limit (0.4)"

    def test_boundaries_are_inclusive(self):
        assert classify_biomarker("tsh", 1.0, TSH).status == BiomarkerStatus.OPTIMAL
        assert classify_biomarker("tsh", 4.0, TSH).status == BiomarkerStatus.SUBOPTIMAL

    def test_unknown_reference(self):
        result = classify_biomarker("novo", 12, None)
        assert result.status == BiomarkerStatus.UNKNOWN
        assert result.reference.name == "novo"

    def test_open_ranges(self):
        ref = BiomarkerReference(slug="x", name="X", optimal_max=100)
        assert classify_biomarker("x", -5, ref).status == BiomarkerStatus.OPTIMAL


class TestMetrics:

    def test_ratio_with_target(self):
        metric = MetricDefinition(slug="relacao_ldl_hdl", name="LDL/HDL", formula="{ldl} / {hdl}", target_max=2.5)
        result = calculate_metric(metric, {"ldl": 120, "hdl": 45})
        assert result.value == 2.67
        assert result.status == BiomarkerStatus.SUBOPTIMAL
        assert result.error is None

    def test_missing_input(self):
        metric = MetricDefinition(slug="relacao_ldl_hdl", name="LDL/HDL", formula="{ldl} / {hdl}")
        result = calculate_metric(metric, {"ldl": 120})
        assert result.value is None
        assert result.error == "Required biomarker not provided: hdl"

    def test_division_by_zero(self):
        metric = MetricDefinition(slug="ratio", name="Ratio", formula="{ldl} / {hdl}")
        result = calculate_metric(metric, {"ldl": 120, "hdl": 0})
        assert result.value is None
        assert result.error.startswith("Error calculating metric")

    def test_formula_without_placeholders(self):
        metric = MetricDefinition(slug="const", name="Const", formula="1 + 1")
        assert calculate_metric(metric, {}).error == "Invalid formula"

    def test_forbidden_formula(self):
        metric = MetricDefinition(slug="bad", name="Bad", formula="{ldl}.__class__")
        result = calculate_metric(metric, {"ldl": 1})
        assert result.value is None
        assert result.error == "Invalid formula"


class TestProtocols:

    def test_triggered(self):
        assert is_protocol_triggered(_protocol("vitamina_d3 < 40"), {"vitamina_d3": 25})

    def test_missing_slug_excludes(self):
        protocol = _protocol("vitamina_b12 < 500 or homocisteina > 8")
        assert is_protocol_triggered(protocol, {"homocisteina": 12}) is False

    def test_malformed_condition_excluded(self):
        assert is_protocol_triggered(_protocol("tsh >>> 2"), {"tsh": 3}) is False

    def test_empty_condition(self):
        assert is_protocol_triggered(_protocol(""), {"tsh": 3}) is False

    def test_scientific_notation_threshold(self):
        assert is_protocol_triggered(_protocol("ferritina < 1e2"), {"ferritina": 45})


class TestEvaluate:

    def test_sample_panel(self, knowledge):
        values = {
            "glicemia": 95, "insulina": 8, "hdl": 45, "ldl": 120,
            "triglicerideos": 160, "ferritina": 30, "tsh": 5.0, "vitamina_d3": 25,
        }
        result = evaluate(values, knowledge)

        statuses = {b.slug: b.status for b in result.biomarkers}
        assert statuses["tsh"] == BiomarkerStatus.ABNORMAL
        assert statuses["triglicerideos"] == BiomarkerStatus.ABNORMAL
        assert statuses["glicemia"] == BiomarkerStatus.SUBOPTIMAL

        assert result.summary.total_biomarkers == 8
        assert result.summary.abnormal == 2
        assert result.summary.suboptimal == 6
        assert result.summary.optimal == 0

        calculated = {m.slug: m.value for m in result.metrics if m.value is not None}
        assert calculated["homa_ir_calc"] == 1.88
        assert "relacao_tgo_tgp" not in calculated
        assert result.summary.metrics_calculated == 3

        triggered = {p.id for p in result.triggered_protocols}
        assert triggered == {
            "vitamin_d_repletion",
            "iron_stores_repletion",
            "insulin_sensitivity_diet",
            "triglyceride_lowering",
            "thyroid_workup",
        }

    def test_accepts_value_list(self, knowledge):
        result = evaluate([BiomarkerValue("tsh", 1.5)], knowledge)
        assert result.biomarkers[0].status == BiomarkerStatus.OPTIMAL

    def test_one_bad_protocol_does_not_abort_the_rest(self):
        snapshot = KnowledgeSnapshot(
            references=[TSH],
            protocols=[_protocol("tsh(", "broken"), _protocol("tsh > 2.5", "thyroid")],
        )
        result = evaluate({"tsh": 3.0}, snapshot)
        assert [p.id for p in result.triggered_protocols] == ["thyroid"]

    def test_serialised_keys(self, knowledge):
        payload = evaluate({"tsh": 1.5}, knowledge).to_dict()
        assert set(payload) == {"biomarkers", "metrics", "triggeredProtocols", "summary"}
        assert payload["biomarkers"][0]["status"] == "optimal"
        assert payload["summary"]["totalBiomarkers"] == 1

    def test_empty_input(self, knowledge):
        result = evaluate({}, knowledge)
        assert result.biomarkers == []
        assert result.triggered_protocols == []
