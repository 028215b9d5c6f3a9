"""
Logical Brain: Base Types

Data contracts shared by the extractor, the evaluator and the assembler.
Knowledge entries are frozen (read-only during an evaluation); outputs are
plain dataclasses serialised with camelCase keys for the API layer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class BiomarkerStatus(str, Enum):
    """
    Classification of a single biomarker value.

    OPTIMAL    – inside the functional (optimal) range
    SUBOPTIMAL – inside lab bounds but outside the optimal range
    ABNORMAL   – outside the conventional lab range (always wins)
    UNKNOWN    – no reference entry for the slug
    """
    OPTIMAL    = "optimal"
    SUBOPTIMAL = "suboptimal"
    ABNORMAL   = "abnormal"
    UNKNOWN    = "unknown"


class ProtocolType(str, Enum):
    SUPPLEMENT = "supplement"
    DIET       = "diet"
    EXERCISE   = "exercise"
    MEDICAL    = "medical"


# ── Knowledge base entries ───────────────────────────────────────────────────

@dataclass(frozen=True)
class BiomarkerReference:
    """Canonical knowledge-base entry for one biomarker."""
    slug: str
    name: str
    unit: Optional[str] = None
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None
    lab_min: Optional[float] = None
    lab_max: Optional[float] = None
    clinical_insight: Optional[str] = None
    metaphor: Optional[str] = None
    source_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "unit": self.unit,
            "optimalMin": self.optimal_min,
            "optimalMax": self.optimal_max,
            "labMin": self.lab_min,
            "labMax": self.lab_max,
            "clinicalInsight": self.clinical_insight,
            "metaphor": self.metaphor,
            "sourceRef": self.source_ref,
        }


@dataclass(frozen=True)
class MetricDefinition:
    """Derived metric; `formula` references biomarker slugs as `{slug}`."""
    slug: str
    name: str
    formula: str
    target_min: Optional[float] = None
    target_max: Optional[float] = None
    risk_insight: Optional[str] = None


@dataclass(frozen=True)
class ProtocolDefinition:
    """Action gated by a boolean `trigger_condition` over biomarker slugs."""
    id: str
    type: ProtocolType
    title: str
    description: str
    trigger_condition: str
    dosage: Optional[str] = None
    source_ref: Optional[str] = None


# ── Observations ─────────────────────────────────────────────────────────────

@dataclass
class BiomarkerValue:
    """One numeric observation extracted from a document parameter."""
    slug: str
    value: float
    unit: Optional[str] = None
    date: Optional[str] = None          # ISO date of the exam
    document_id: Optional[str] = None
    source: Optional[str] = None        # "<module> - <parameter>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "value": self.value,
            "unit": self.unit,
            "date": self.date,
            "documentId": self.document_id,
            "source": self.source,
        }


# ── Evaluation output ────────────────────────────────────────────────────────

@dataclass
class ReferenceSnapshot:
    """Copy of the matched reference carried on every evaluation."""
    name: str
    unit: Optional[str] = None
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None
    lab_min: Optional[float] = None
    lab_max: Optional[float] = None
    clinical_insight: Optional[str] = None
    metaphor: Optional[str] = None

    @classmethod
    def from_reference(cls, ref: BiomarkerReference) -> "ReferenceSnapshot":
        return cls(
            name=ref.name,
            unit=ref.unit,
            optimal_min=ref.optimal_min,
            optimal_max=ref.optimal_max,
            lab_min=ref.lab_min,
            lab_max=ref.lab_max,
            clinical_insight=ref.clinical_insight,
            metaphor=ref.metaphor,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "unit": self.unit,
            "optimalMin": self.optimal_min,
            "optimalMax": self.optimal_max,
            "labMin": self.lab_min,
            "labMax": self.lab_max,
            "clinicalInsight": self.clinical_insight,
            "metaphor": self.metaphor,
        }


@dataclass
class BiomarkerEvaluation:
    slug: str
    value: float
    status: BiomarkerStatus
    message: str
    reference: ReferenceSnapshot

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slug": self.slug,
            "value": self.value,
            "status": self.status.value,
            "message": self.message,
            "reference": self.reference.to_dict(),
        }


@dataclass
class MetricCalculation:
    slug: str
    name: str
    formula: str
    value: Optional[float] = None
    status: Optional[BiomarkerStatus] = None
    message: Optional[str] = None
    risk_insight: Optional[str] = None
    target_min: Optional[float] = None
    target_max: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "slug": self.slug,
            "name": self.name,
            "formula": self.formula,
            "value": self.value,
            "status": self.status.value if self.status else None,
            "message": self.message,
            "riskInsight": self.risk_insight,
            "targetMin": self.target_min,
            "targetMax": self.target_max,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class TriggeredProtocol:
    id: str
    type: str
    title: str
    description: str
    trigger_condition: str
    dosage: Optional[str] = None
    source_ref: Optional[str] = None

    @classmethod
    def from_definition(cls, protocol: ProtocolDefinition) -> "TriggeredProtocol":
        return cls(
            id=protocol.id,
            type=protocol.type.value if isinstance(protocol.type, ProtocolType) else str(protocol.type),
            title=protocol.title,
            description=protocol.description,
            trigger_condition=protocol.trigger_condition,
            dosage=protocol.dosage,
            source_ref=protocol.source_ref,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "dosage": self.dosage,
            "sourceRef": self.source_ref,
            "triggerCondition": self.trigger_condition,
        }


@dataclass
class EvaluationSummary:
    total_biomarkers: int = 0
    optimal: int = 0
    suboptimal: int = 0
    abnormal: int = 0
    metrics_calculated: int = 0
    protocols_triggered: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalBiomarkers": self.total_biomarkers,
            "optimal": self.optimal,
            "suboptimal": self.suboptimal,
            "abnormal": self.abnormal,
            "metricsCalculated": self.metrics_calculated,
            "protocolsTriggered": self.protocols_triggered,
        }


@dataclass
class EvaluationResult:
    """Raw evaluator output (no critical alerts)."""
    biomarkers: List[BiomarkerEvaluation] = field(default_factory=list)
    metrics: List[MetricCalculation] = field(default_factory=list)
    triggered_protocols: List[TriggeredProtocol] = field(default_factory=list)
    summary: EvaluationSummary = field(default_factory=EvaluationSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "biomarkers": [b.to_dict() for b in self.biomarkers],
            "metrics": [m.to_dict() for m in self.metrics],
            "triggeredProtocols": [p.to_dict() for p in self.triggered_protocols],
            "summary": self.summary.to_dict(),
        }


@dataclass
class AnalysisSummary(EvaluationSummary):
    critical_alerts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["criticalAlerts"] = list(self.critical_alerts)
        return data


@dataclass
class LogicalAnalysis:
    """Evaluator output plus critical alerts; recomputed on every run."""
    biomarkers: List[BiomarkerEvaluation] = field(default_factory=list)
    metrics: List[MetricCalculation] = field(default_factory=list)
    protocols: List[TriggeredProtocol] = field(default_factory=list)
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)

    @property
    def is_empty(self) -> bool:
        return not self.biomarkers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "biomarkers": [b.to_dict() for b in self.biomarkers],
            "metrics": [m.to_dict() for m in self.metrics],
            "protocols": [p.to_dict() for p in self.protocols],
            "summary": self.summary.to_dict(),
        }


# ── Structured documents (ingestion contract) ────────────────────────────────

ParameterValue = Union[str, int, float, None]


@dataclass
class DocumentParameter:
    name: str
    value: ParameterValue
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentParameter":
        return cls(
            name=data.get("name", ""),
            value=data.get("value"),
            unit=data.get("unit"),
            reference_range=data.get("referenceRange"),
            status=data.get("status"),
        )


@dataclass
class DocumentModule:
    module_name: str
    parameters: List[DocumentParameter] = field(default_factory=list)
    category: Optional[str] = None
    status: Optional[str] = None
    summary: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentModule":
        return cls(
            module_name=data.get("moduleName") or data.get("name", ""),
            parameters=[DocumentParameter.from_dict(p) for p in data.get("parameters") or []],
            category=data.get("category"),
            status=data.get("status"),
            summary=data.get("summary"),
        )


@dataclass
class StructuredDocument:
    """A document after upstream structuring: modules of named parameters."""
    modules: List[DocumentModule] = field(default_factory=list)
    exam_date: Optional[str] = None
    document_type: str = "unknown"
    id: Optional[str] = None
    user_id: Optional[str] = None
    file_name: Optional[str] = None
    extracted_text: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructuredDocument":
        return cls(
            modules=[DocumentModule.from_dict(m) for m in data.get("modules") or []],
            exam_date=data.get("examDate"),
            document_type=data.get("documentType", "unknown"),
            id=data.get("id"),
            user_id=data.get("userId"),
            file_name=data.get("fileName"),
            extracted_text=data.get("extractedText") or "",
        )
