"""
Logical Brain

Deterministic pipeline: structured documents -> extracted values ->
deduplicated values -> evaluation -> LogicalAnalysis with critical alerts.
The analysis can be rendered into a markdown grounding document that is
injected into every generation prompt.

Usage:
    from medbrain.core.logic import LogicalBrain, KnowledgeSnapshot

    brain = LogicalBrain(KnowledgeSnapshot.default())
    analysis = brain.run(documents)
    context = render_for_prompt(analysis)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from medbrain.utils.logging import get_logger
from . import evaluator
from .extractor import deduplicate_biomarkers, extract_biomarkers
from .knowledge_base import KnowledgeSnapshot
from .types import (
    AnalysisSummary,
    BiomarkerEvaluation,
    BiomarkerStatus,
    BiomarkerValue,
    EvaluationResult,
    LogicalAnalysis,
    StructuredDocument,
)

logger = get_logger(__name__)

_STATUS_LABELS = {
    BiomarkerStatus.OPTIMAL:    ("✅", "OPTIMAL"),
    BiomarkerStatus.SUBOPTIMAL: ("⚠️", "SUBOPTIMAL"),
    BiomarkerStatus.ABNORMAL:   ("🔴", "ABNORMAL"),
    BiomarkerStatus.UNKNOWN:    ("⚪", "UNKNOWN"),
}


class LogicalBrain:
    """
    Runs the deterministic analysis against one knowledge snapshot.

    Stateless apart from the snapshot it was built with.
    """

    def __init__(self, knowledge: Optional[KnowledgeSnapshot] = None):
        self.knowledge = knowledge or KnowledgeSnapshot.default()

    def run(
        self,
        documents: Sequence[StructuredDocument],
        document_ids: Optional[Sequence[str]] = None,
    ) -> LogicalAnalysis:
        """Extract, deduplicate and evaluate every biomarker in `documents`."""
        logger.info(f"LogicalBrain: processing {len(documents)} document(s)")
        values = extract_biomarkers(documents, document_ids)
        if not values:
            logger.warning("LogicalBrain: no biomarkers found in documents")
            return empty_analysis()
        return self.analyze_values(deduplicate_biomarkers(values))

    def analyze_values(
        self,
        values: Union[Sequence[BiomarkerValue], Mapping[str, float]],
    ) -> LogicalAnalysis:
        """Same as `run` for values that were already extracted."""
        if not values:
            return empty_analysis()
        result = evaluator.evaluate(values, self.knowledge)
        analysis = assemble(result)
        logger.info(
            f"LogicalBrain: {analysis.summary.total_biomarkers} biomarker(s) "
            f"({analysis.summary.optimal} optimal, {analysis.summary.suboptimal} suboptimal, "
            f"{analysis.summary.abnormal} abnormal), "
            f"{len(analysis.protocols)} protocol(s), "
            f"{len(analysis.summary.critical_alerts)} critical alert(s)"
        )
        return analysis

    def evaluate(self, values: Union[Sequence[BiomarkerValue], Mapping[str, float]]) -> EvaluationResult:
        return evaluator.evaluate(values, self.knowledge)


def assemble(result: EvaluationResult) -> LogicalAnalysis:
    """Wrap an EvaluationResult and add critical alerts."""
    summary = AnalysisSummary(
        total_biomarkers=result.summary.total_biomarkers,
        optimal=result.summary.optimal,
        suboptimal=result.summary.suboptimal,
        abnormal=result.summary.abnormal,
        metrics_calculated=result.summary.metrics_calculated,
        protocols_triggered=result.summary.protocols_triggered,
        critical_alerts=build_critical_alerts(result.biomarkers),
    )
    return LogicalAnalysis(
        biomarkers=list(result.biomarkers),
        metrics=list(result.metrics),
        protocols=list(result.triggered_protocols),
        summary=summary,
    )


def build_critical_alerts(biomarkers: Sequence[BiomarkerEvaluation]) -> List[str]:
    return [
        f"{b.reference.name}: {_num(b.value)} {b.reference.unit or ''} - {b.message}"
        for b in biomarkers
        if b.status == BiomarkerStatus.ABNORMAL
    ]


def empty_analysis() -> LogicalAnalysis:
    return LogicalAnalysis()


def _num(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:g}"


def _pct(part: int, total: int) -> int:
    return round(part / total * 100) if total else 0


# ── Prompt rendering ──────────────────────────────────────────────────────────

def render_for_prompt(analysis: LogicalAnalysis) -> str:
    """
    Serialise an analysis into a grounding document for generation calls.

    Returns "" when there are no biomarkers, which tells the orchestrator
    that no grounding context is available.
    """
    if analysis.is_empty:
        return ""

    lines: List[str] = [
        "## 🧠 AUTOMATED LOGICAL ANALYSIS (VERIFIED DATA)",
        "",
        "**IMPORTANT:** The data below was computed deterministically and validated against the medical knowledge base.",
        "You MUST use it as the basis of your analysis, interpreting and humanising the results.",
        "",
        f"### 📊 Evaluated Biomarkers ({len(analysis.biomarkers)})",
        "",
    ]

    for bio in analysis.biomarkers:
        emoji, label = _STATUS_LABELS[bio.status]
        ref = bio.reference
        unit = ref.unit or ""
        lines.append(f"{emoji} **{ref.name}**: {_num(bio.value)} {unit}".rstrip())
        lines.append(f"   - Status: **{label}**")
        lines.append(f"   - {bio.message}")
        if ref.optimal_min is not None or ref.optimal_max is not None:
            lines.append(
                f"   - Optimal range: {_num(ref.optimal_min)} to {_num(ref.optimal_max)} {unit}".rstrip()
            )
        if ref.clinical_insight:
            lines.append(f"   - **Clinical interpretation**: {ref.clinical_insight}")
        if ref.metaphor:
            lines.append(f"   - **Metaphor**: {ref.metaphor}")
        lines.append("")

    if analysis.metrics:
        lines += [f"### 🧮 Calculated Metrics ({len(analysis.metrics)})", ""]
        for metric in analysis.metrics:
            if metric.value is None:
                lines.append(f"⚪ **{metric.name}**: Not calculable")
                if metric.error:
                    lines.append(f"   - {metric.error}")
                lines.append("")
                continue

            emoji, label = _STATUS_LABELS[metric.status or BiomarkerStatus.OPTIMAL]
            lines.append(f"{emoji} **{metric.name}**: {_num(metric.value)}")
            lines.append(f"   - Formula: `{metric.formula}`")
            lines.append(f"   - Status: **{label}**")
            if metric.message:
                lines.append(f"   - {metric.message}")
            if metric.risk_insight:
                lines.append(f"   - **Risk assessment**: {metric.risk_insight}")
            lines.append("")

    if analysis.protocols:
        lines += [
            f"### 📋 Automatically Triggered Protocols ({len(analysis.protocols)})",
            "",
            "**The protocols below were AUTOMATICALLY selected by validated clinical rules.**",
            "**You MUST include them in your analysis and explain them in plain language.**",
            "",
        ]
        for protocol in analysis.protocols:
            lines += [
                f"#### 📌 {protocol.title} ({protocol.type})",
                "",
                f"**Trigger condition:** `{protocol.trigger_condition}`",
                "",
                "**Protocol:**",
                protocol.description,
                "",
            ]
            if protocol.dosage:
                lines += [f"**Dosage:** {protocol.dosage}", ""]
            if protocol.source_ref:
                lines += [f"**Source:** {protocol.source_ref}", ""]

    alerts = analysis.summary.critical_alerts
    if alerts:
        lines += [
            "### ⚠️ CRITICAL ALERTS",
            "",
            "**The following biomarkers are OUTSIDE the laboratory reference limits:**",
            "",
        ]
        lines += [f"- 🔴 {alert}" for alert in alerts]
        lines += [
            "",
            "**You MUST highlight these alerts and recommend prompt medical evaluation.**",
            "",
        ]

    s = analysis.summary
    lines += [
        "---",
        "",
        "### 📈 Statistical Summary",
        "",
        f"- Total biomarkers: {s.total_biomarkers}",
        f"- Optimal: {s.optimal} ({_pct(s.optimal, s.total_biomarkers)}%)",
        f"- Suboptimal: {s.suboptimal} ({_pct(s.suboptimal, s.total_biomarkers)}%)",
        f"- Abnormal: {s.abnormal} ({_pct(s.abnormal, s.total_biomarkers)}%)",
        f"- Metrics calculated: {s.metrics_calculated}",
        f"- Protocols triggered: {s.protocols_triggered}",
        "",
        "---",
        "",
        "**FINAL INSTRUCTIONS FOR THE AGENT:**",
        "1. Use the data above as the FOUNDATION of your analysis",
        "2. Do NOT invent new protocols - use the ones listed above",
        "3. HUMANISE and CONTEXTUALISE the findings with your expertise",
        "4. Explain WHY each biomarker is altered",
        "5. Connect the biomarkers to each other (systemic view)",
        "6. Be empathetic and educational",
        "",
    ]
    return "\n".join(lines)


# ── Profile snapshot ──────────────────────────────────────────────────────────

def create_biomarker_snapshot(
    analysis: LogicalAnalysis,
    values: Sequence[BiomarkerValue],
) -> Dict[str, Dict[str, Any]]:
    """slug -> {value, unit, date, documentId, status} for profile storage."""
    by_slug = {}
    for value in values:
        by_slug.setdefault(value.slug, value)

    snapshot: Dict[str, Dict[str, Any]] = {}
    for evaluation in analysis.biomarkers:
        source = by_slug.get(evaluation.slug)
        if source is None:
            continue
        snapshot[evaluation.slug] = {
            "value": evaluation.value,
            "unit": source.unit,
            "date": source.date or datetime.now(timezone.utc).isoformat(),
            "documentId": source.document_id or "",
            "status": evaluation.status.value,
        }
    return snapshot
