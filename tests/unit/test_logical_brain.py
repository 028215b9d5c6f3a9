"""
Unit Tests for the Logical Brain pipeline and prompt rendering
"""
from medbrain.core.logic import (
    BiomarkerValue,
    LogicalBrain,
    StructuredDocument,
    create_biomarker_snapshot,
    deduplicate_biomarkers,
    empty_analysis,
    render_for_prompt,
)


class TestLogicalBrain:
    """Extraction -> deduplication -> evaluation -> critical alerts."""

    def test_run_sample_document(self, knowledge, sample_document):
        analysis = LogicalBrain(knowledge).run([sample_document])

        assert analysis.summary.total_biomarkers == 8
        assert analysis.summary.abnormal == 2
        assert len(analysis.protocols) == 5
        assert analysis.summary.critical_alerts == [
            "Triglicerídeos: 160 mg/dL - Above laboratory limit (150)",
            "TSH: 5 µUI/mL - Above laboratory limit (4)",
        ]

    def test_run_without_biomarkers(self, knowledge):
        analysis = LogicalBrain(knowledge).run([StructuredDocument(id="empty")])
        assert analysis.is_empty
        assert analysis.summary.critical_alerts == []

    def test_most_recent_value_wins(self, knowledge):
        values = [
            BiomarkerValue("tsh", 5.0, date="2023-01-10"),
            BiomarkerValue("tsh", 1.8, date="2024-06-01"),
        ]
        analysis = LogicalBrain(knowledge).analyze_values(deduplicate_biomarkers(values))

        [tsh] = analysis.biomarkers
        assert tsh.value == 1.8
        assert analysis.summary.critical_alerts == []

    def test_analysis_serialises_alerts(self, knowledge, sample_document):
        payload = LogicalBrain(knowledge).run([sample_document]).to_dict()
        assert set(payload) == {"biomarkers", "metrics", "protocols", "summary"}
        assert len(payload["summary"]["criticalAlerts"]) == 2


class TestRenderForPrompt:

    def test_empty_analysis_renders_nothing(self):
        assert render_for_prompt(empty_analysis()) == ""

    def test_render_contains_grounding_sections(self, knowledge, sample_document):
        text = render_for_prompt(LogicalBrain(knowledge).run([sample_document]))

        assert "AUTOMATED LOGICAL ANALYSIS" in text
        assert "**TSH**: 5 µUI/mL" in text
        assert "Automatically Triggered Protocols (5)" in text
        assert "### ⚠️ CRITICAL ALERTS" in text
        assert "Do NOT invent new protocols" in text
        assert "Optimal: 0 (0%)" in text
        assert "Abnormal: 2 (25%)" in text

    def test_uncalculable_metrics_are_listed(self, knowledge):
        text = render_for_prompt(LogicalBrain(knowledge).analyze_values({"ldl": 90}))
        assert "Not calculable" in text
        assert "Required biomarker not provided: hdl" in text
        assert "CRITICAL ALERTS" not in text


class TestBiomarkerSnapshot:

    def test_snapshot_keyed_by_slug(self, knowledge):
        values = [BiomarkerValue("tsh", 1.5, unit="µUI/mL", date="2024-03-10", document_id="doc-1")]
        analysis = LogicalBrain(knowledge).analyze_values(values)

        snapshot = create_biomarker_snapshot(analysis, values)
        assert snapshot == {
            "tsh": {
                "value": 1.5,
                "unit": "µUI/mL",
                "date": "2024-03-10",
                "documentId": "doc-1",
                "status": "optimal",
            }
        }
