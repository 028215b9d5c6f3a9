"""
Unit Tests for the Biomarker Extractor
"""
import pytest

from medbrain.core.logic import (
    BiomarkerValue,
    DocumentModule,
    DocumentParameter,
    StructuredDocument,
    biomarker_variations,
    deduplicate_biomarkers,
    extract_biomarkers,
    extract_with_diagnostics,
    find_biomarker_slug,
    parse_numeric_value,
    supported_biomarkers,
)
from medbrain.core.logic.extractor import normalize_name


class TestNormalization:

    def test_strips_accents_and_symbols(self):
        assert normalize_name("  Triglicerídeos (soro)  ") == "triglicerideos soro"

    def test_collapses_whitespace(self):
        assert normalize_name("Vitamina   D  25-OH") == "vitamina d 25oh"


class TestSlugMatching:

    @pytest.mark.parametrize("name,slug", [
        ("Glicose", "glicemia"),
        ("GLICEMIA DE JEJUM", "glicemia"),
        ("HDL", "hdl"),
        ("Colesterol LDL", "ldl"),
        ("TSH", "tsh"),
        ("Ferritina", "ferritina"),
        ("Vitamina D", "vitamina_d3"),
    ])
    def test_known_names(self, name, slug):
        assert find_biomarker_slug(name) == slug

    def test_unknown_name(self):
        assert find_biomarker_slug("Cor da urina") is None

    def test_empty_name(self):
        assert find_biomarker_slug("  ") is None

    def test_catalog(self):
        slugs = supported_biomarkers()
        assert "glicemia" in slugs
        assert "glicose" in biomarker_variations("glicemia")
        assert biomarker_variations("does_not_exist") == []


class TestValueParsing:

    @pytest.mark.parametrize("raw,expected", [
        (12, 12.0),
        (4.5, 4.5),
        ("< 0,5", 0.5),
        ("≥ 30", 30.0),
        ("12.5 mg/dL", 12.5),
        ("-3", -3.0),
    ])
    def test_parses(self, raw, expected):
        assert parse_numeric_value(raw) == expected

    @pytest.mark.parametrize("raw", [True, None, "negativo", ["1"]])
    def test_rejects(self, raw):
        assert parse_numeric_value(raw) is None


class TestExtraction:

    def test_extracts_every_recognised_parameter(self, sample_document):
        values = extract_biomarkers([sample_document])
        slugs = {v.slug for v in values}

        assert {"glicemia", "insulina", "hdl", "ldl", "triglicerideos", "ferritina", "tsh", "vitamina_d3"} <= slugs
        glucose = next(v for v in values if v.slug == "glicemia")
        assert glucose.value == 95.0
        assert glucose.date == "2024-03-10"
        assert glucose.document_id == "doc-1"
        assert glucose.source == "Bioquímica - Glicose"

    def test_diagnostics_report_skipped_parameters(self, sample_document):
        report = extract_with_diagnostics([sample_document])
        assert "Observação" in report.unmatched + report.unparseable
        assert all(v.source != "Hormônios - Observação" for v in report.values)

    def test_document_ids_override(self, sample_document):
        values = extract_biomarkers([sample_document], ["override"])
        assert {v.document_id for v in values} == {"override"}

    def test_missing_exam_date_is_stamped(self):
        doc = StructuredDocument(
            id="d",
            modules=[DocumentModule("Lab", [DocumentParameter("TSH", 2.0)])],
        )
        [value] = extract_biomarkers([doc])
        assert value.date is not None

    def test_empty_documents(self):
        assert extract_biomarkers([]) == []


class TestDeduplication:

    def test_keeps_most_recent(self):
        values = [
            BiomarkerValue("tsh", 3.0, date="2023-01-01"),
            BiomarkerValue("tsh", 2.0, date="2024-01-01"),
            BiomarkerValue("hdl", 50, date=None),
        ]
        result = deduplicate_biomarkers(values)
        assert [(v.slug, v.value) for v in result] == [("tsh", 2.0), ("hdl", 50)]

    def test_dated_beats_undated(self):
        values = [BiomarkerValue("tsh", 3.0), BiomarkerValue("tsh", 2.0, date="2020-05-01")]
        [result] = deduplicate_biomarkers(values)
        assert result.value == 2.0

    def test_equal_dates_keep_first_and_are_idempotent(self):
        values = [
            BiomarkerValue("tsh", 3.0, date="2024-01-01"),
            BiomarkerValue("tsh", 2.0, date="2024-01-01"),
        ]
        once = deduplicate_biomarkers(values)
        assert [v.value for v in once] == [3.0]
        assert deduplicate_biomarkers(once) == once
