"""
Biomarker Evaluator

Pure function of (values, knowledge snapshot) -> EvaluationResult.

  - Biomarkers: optimal range first, lab range second; a lab breach
    always overrides with `abnormal`.
  - Metrics: `{slug}` formulas through the sandboxed expression language.
    Any missing input short-circuits to `value=None` with an error.
  - Protocols: boolean trigger conditions over slugs. A condition that
    references any unavailable slug is excluded, never evaluated.

Each metric and protocol is isolated: one malformed item never aborts
the rest.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from medbrain.utils.exceptions import (
    ExpressionError,
    ExpressionSyntaxError,
    UnboundVariableError,
)
from medbrain.utils.logging import get_logger
from . import expressions
from .knowledge_base import KnowledgeSnapshot
from .types import (
    BiomarkerEvaluation,
    BiomarkerReference,
    BiomarkerStatus,
    BiomarkerValue,
    EvaluationResult,
    EvaluationSummary,
    MetricCalculation,
    MetricDefinition,
    ProtocolDefinition,
    ReferenceSnapshot,
    TriggeredProtocol,
)

logger = get_logger(__name__)

MSG_UNKNOWN        = "Biomarker not found in the knowledge base"
MSG_OPTIMAL        = "Within optimal range"
MSG_TARGET_OK      = "Within target range"
MSG_INVALID_FORMULA = "Invalid formula"
MSG_METRIC_FAILED  = "Error calculating metric"

BiomarkerInput = Union[Mapping[str, float], Sequence[BiomarkerValue]]


def _fmt(number: float) -> str:
    """Render 40.0 as "40" and 2.25 as "2.25"."""
    return f"{number:g}"


# ── Biomarkers ────────────────────────────────────────────────────────────────

def classify_biomarker(
    slug: str,
    value: float,
    reference: Optional[BiomarkerReference],
) -> BiomarkerEvaluation:
    if reference is None:
        return BiomarkerEvaluation(
            slug=slug,
            value=value,
            status=BiomarkerStatus.UNKNOWN,
            message=MSG_UNKNOWN,
            reference=ReferenceSnapshot(name=slug),
        )

    status = BiomarkerStatus.OPTIMAL
    message = MSG_OPTIMAL

    if reference.optimal_min is not None and value < reference.optimal_min:
        status = BiomarkerStatus.SUBOPTIMAL
        message = f"Below optimal (optimal: ≥ {_fmt(reference.optimal_min)})"
    elif reference.optimal_max is not None and value > reference.optimal_max:
        status = BiomarkerStatus.SUBOPTIMAL
        message = f"Above optimal (optimal: ≤ {_fmt(reference.optimal_max)})"

    # Lab range takes precedence
    if reference.lab_min is not None and value < reference.lab_min:
        status = BiomarkerStatus.ABNORMAL
        message = f"Below laboratory limit ({_fmt(reference.lab_min)})"
    elif reference.lab_max is not None and value > reference.lab_max:
        status = BiomarkerStatus.ABNORMAL
        message = f"Above laboratory limit ({_fmt(reference.lab_max)})"

    return BiomarkerEvaluation(
        slug=slug,
        value=value,
        status=status,
        message=message,
        reference=ReferenceSnapshot.from_reference(reference),
    )


# ── Metrics ───────────────────────────────────────────────────────────────────

def calculate_metric(metric: MetricDefinition, values: Mapping[str, float]) -> MetricCalculation:
    result = MetricCalculation(
        slug=metric.slug,
        name=metric.name,
        formula=metric.formula,
        risk_insight=metric.risk_insight,
    )

    required = expressions.placeholders(metric.formula)
    if not required:
        result.error = MSG_INVALID_FORMULA
        return result

    for slug in required:
        if slug not in values:
            result.error = f"Required biomarker not provided: {slug}"
            return result

    try:
        raw = expressions.evaluate_formula(metric.formula, values)
    except UnboundVariableError as exc:
        result.error = f"Required biomarker not provided: {exc.name}"
        return result
    except ExpressionSyntaxError as exc:
        logger.warning(f"Evaluator: metric '{metric.slug}' has an invalid formula: {exc.message}")
        result.error = MSG_INVALID_FORMULA
        return result
    except ExpressionError as exc:
        logger.warning(f"Evaluator: metric '{metric.slug}' failed: {exc.message}")
        result.error = f"{MSG_METRIC_FAILED}: {exc.message}"
        return result

    value = round(raw, 2)
    status = BiomarkerStatus.OPTIMAL
    message = MSG_TARGET_OK
    if metric.target_min is not None and value < metric.target_min:
        status = BiomarkerStatus.SUBOPTIMAL
        message = f"Below target (ideal: ≥ {_fmt(metric.target_min)})"
    elif metric.target_max is not None and value > metric.target_max:
        status = BiomarkerStatus.SUBOPTIMAL
        message = f"Above target (ideal: ≤ {_fmt(metric.target_max)})"

    result.value = value
    result.status = status
    result.message = message
    result.target_min = metric.target_min
    result.target_max = metric.target_max
    return result


# ── Protocols ─────────────────────────────────────────────────────────────────

def is_protocol_triggered(protocol: ProtocolDefinition, values: Mapping[str, float]) -> bool:
    condition = (protocol.trigger_condition or "").lower()
    names = expressions.identifiers(condition)
    if not names:
        return False

    missing = [name for name in names if name not in values]
    if missing:
        logger.debug(
            f"Evaluator: protocol '{protocol.id}' skipped, missing {', '.join(missing)}"
        )
        return False

    try:
        return expressions.evaluate_condition(condition, values)
    except ExpressionError as exc:
        logger.warning(f"Evaluator: could not evaluate protocol '{protocol.title}': {exc.message}")
        return False


# ── Entry point ───────────────────────────────────────────────────────────────

def _as_value_map(biomarkers: BiomarkerInput) -> Dict[str, float]:
    if isinstance(biomarkers, Mapping):
        return {slug: float(value) for slug, value in biomarkers.items()}
    value_map: Dict[str, float] = {}
    for item in biomarkers:
        # last one wins, matching a plain dict build
        value_map[item.slug] = float(item.value)
    return value_map


def evaluate(biomarkers: BiomarkerInput, knowledge: KnowledgeSnapshot) -> EvaluationResult:
    """
    Evaluate biomarker values against a knowledge snapshot.

    Args:
        biomarkers: slug -> value map, or a list of BiomarkerValue
                    (already deduplicated).
        knowledge:  Immutable reference/metric/protocol tables.

    Returns:
        EvaluationResult with biomarkers, metrics, triggered protocols
        and summary counts.
    """
    values = _as_value_map(biomarkers)
    references = knowledge.reference_map
    logger.debug(f"Evaluator: evaluating {len(values)} biomarker(s): {sorted(values)}")

    evaluations: List[BiomarkerEvaluation] = [
        classify_biomarker(slug, value, references.get(slug))
        for slug, value in values.items()
    ]

    metrics: List[MetricCalculation] = []
    for metric in knowledge.metrics:
        try:
            metrics.append(calculate_metric(metric, values))
        except Exception as exc:
            logger.error(f"Evaluator: metric '{metric.slug}' raised {exc}", exc_info=True)
            metrics.append(MetricCalculation(
                slug=metric.slug,
                name=metric.name,
                formula=metric.formula,
                risk_insight=metric.risk_insight,
                error=MSG_METRIC_FAILED,
            ))

    triggered: List[TriggeredProtocol] = []
    for protocol in knowledge.protocols:
        try:
            if is_protocol_triggered(protocol, values):
                triggered.append(TriggeredProtocol.from_definition(protocol))
        except Exception as exc:
            logger.error(f"Evaluator: protocol '{protocol.id}' raised {exc}", exc_info=True)

    summary = summarize(evaluations, metrics, triggered)
    logger.info(
        f"Evaluator: {summary.total_biomarkers} biomarker(s), "
        f"{summary.metrics_calculated}/{len(metrics)} metric(s), "
        f"{summary.protocols_triggered} protocol(s) triggered"
    )
    return EvaluationResult(
        biomarkers=evaluations,
        metrics=metrics,
        triggered_protocols=triggered,
        summary=summary,
    )


def summarize(
    evaluations: Iterable[BiomarkerEvaluation],
    metrics: Iterable[MetricCalculation],
    protocols: Iterable[TriggeredProtocol],
) -> EvaluationSummary:
    evaluations = list(evaluations)
    return EvaluationSummary(
        total_biomarkers=len(evaluations),
        optimal=sum(1 for e in evaluations if e.status == BiomarkerStatus.OPTIMAL),
        suboptimal=sum(1 for e in evaluations if e.status == BiomarkerStatus.SUBOPTIMAL),
        abnormal=sum(1 for e in evaluations if e.status == BiomarkerStatus.ABNORMAL),
        metrics_calculated=sum(1 for m in metrics if m.value is not None),
        protocols_triggered=len(list(protocols)),
    )
