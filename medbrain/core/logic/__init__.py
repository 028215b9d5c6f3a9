"""
Logical Brain Package

Deterministic biomarker extraction, evaluation and grounding-context rendering.
"""
from .types import (
    BiomarkerStatus,
    ProtocolType,
    BiomarkerReference,
    MetricDefinition,
    ProtocolDefinition,
    BiomarkerValue,
    BiomarkerEvaluation,
    MetricCalculation,
    TriggeredProtocol,
    EvaluationResult,
    LogicalAnalysis,
    StructuredDocument,
    DocumentModule,
    DocumentParameter,
)
from .knowledge_base import KnowledgeSnapshot
from .extractor import (
    extract_biomarkers,
    extract_with_diagnostics,
    deduplicate_biomarkers,
    find_biomarker_slug,
    parse_numeric_value,
    supported_biomarkers,
    biomarker_variations,
)
from .evaluator import evaluate
from .engine import (
    LogicalBrain,
    render_for_prompt,
    create_biomarker_snapshot,
    empty_analysis,
)

__all__ = [
    "BiomarkerStatus",
    "ProtocolType",
    "BiomarkerReference",
    "MetricDefinition",
    "ProtocolDefinition",
    "BiomarkerValue",
    "BiomarkerEvaluation",
    "MetricCalculation",
    "TriggeredProtocol",
    "EvaluationResult",
    "LogicalAnalysis",
    "StructuredDocument",
    "DocumentModule",
    "DocumentParameter",
    "KnowledgeSnapshot",
    "extract_biomarkers",
    "extract_with_diagnostics",
    "deduplicate_biomarkers",
    "find_biomarker_slug",
    "parse_numeric_value",
    "supported_biomarkers",
    "biomarker_variations",
    "evaluate",
    "LogicalBrain",
    "render_for_prompt",
    "create_biomarker_snapshot",
    "empty_analysis",
]
