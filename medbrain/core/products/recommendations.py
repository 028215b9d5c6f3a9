"""
Integrated Recommendations

Turns every agent analysis into one harmonised set of exam, lifestyle,
goal and alert recommendations, grounded on the knowledge base when
retrieval succeeds.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from medbrain.core.agents.health_agents import AgentAnalysisResult
from medbrain.core.llm.gateway import GenerationGateway, Usage
from medbrain.core.llm.schemas import RecommendationsPlan
from medbrain.models.records import RecommendationsRecord
from medbrain.services.knowledge import KnowledgeRetriever, retrieve_or_empty
from medbrain.services.storage import AnalysisStore
from medbrain.utils import get_logger, GenerationError
from .common import generate_structured

logger = get_logger(__name__)

KNOWLEDGE_CHUNKS = 7
KNOWLEDGE_CHARS_PER_CHUNK = 1500

RECOMMENDATIONS_PROMPT = """You are a medical coordinator specialised in integrative medicine.

MULTI-SPECIALTY CONTEXT:
You have access to analyses from {count} different specialists:
{specialists}

ALL ANALYSES:
{context}

YOUR MISSION:
Generate recommendations that INTEGRATE and HARMONISE the perspectives of every specialist above.

INTEGRATION RULES:
1. SYNTHESISE insights shared between specialists into one recommendation
2. IDENTIFY SYNERGIES between areas (e.g. training + diet acting on the same marker)
3. RESOLVE CONFLICTS using the knowledge base: consensus > evidence > most qualified specialist
4. AVOID DUPLICATION; mention when an item is a consensus between specialists
5. PRIORITISE by consolidated impact

Produce:
1. Recommended exams (consolidated; more specialists asking = more urgent)
2. Lifestyle recommendations (specific and practical)
3. Health goals with measurable targets and action steps
4. Alerts, ordered by severity

Base EVERY recommendation on the analyses provided."""


@dataclass
class RecommendationsOutput:
    id: Optional[str]
    recommendations: RecommendationsPlan
    analysis_ids: List[str]
    usage: Usage = field(default_factory=Usage)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recommendations": self.recommendations.to_dict(),
            "analysisIds": list(self.analysis_ids),
            "usage": self.usage.to_dict(),
        }


def build_recommendations_context(analyses: Sequence[AgentAnalysisResult], synthesis: Optional[Dict[str, Any]] = None) -> str:
    context = "# MULTI-SPECIALTY MEDICAL ANALYSES\n\n"
    context += f"**Specialists consulted:** {', '.join(a.agent_name for a in analyses)}\n\n"
    for analysis in analyses:
        context += f"## {analysis.agent_name}\n\n{analysis.analysis}\n\n---\n\n"
    if synthesis:
        context += "# CONSOLIDATED SYNTHESIS\n\n"
        context += f"{synthesis.get('executiveSummary', '')}\n\n"
        for finding in synthesis.get("keyFindings", []):
            context += f"- {finding}\n"
    return context


async def generate_recommendations(
    gateway: GenerationGateway,
    store: AnalysisStore,
    user_id: str,
    analyses: Sequence[AgentAnalysisResult],
    analysis_ids: Sequence[str],
    synthesis: Optional[Dict[str, Any]] = None,
    retriever: Optional[KnowledgeRetriever] = None,
) -> RecommendationsOutput:
    """
    Generate and persist the recommendations product.

    Raises:
        GenerationError: no analyses, or the generation call failed
    """
    if not analyses:
        raise GenerationError("No analyses found", phase="products", agent="recommendations")

    logger.info(f"Recommendations: generating from {len(analyses)} analyses")
    context = build_recommendations_context(analyses, synthesis)

    knowledge = await retrieve_or_empty(
        retriever,
        " ".join(a.analysis for a in analyses),
        KNOWLEDGE_CHUNKS,
        KNOWLEDGE_CHARS_PER_CHUNK,
    )
    if knowledge:
        context += "\n# MEDICAL KNOWLEDGE BASE (References)\n\n" + knowledge

    prompt = RECOMMENDATIONS_PROMPT.format(
        count=len(analyses),
        specialists="\n".join(f"- {a.agent_name}" for a in analyses),
        context=context,
    )
    plan, usage = await generate_structured(gateway, RecommendationsPlan, prompt, "recommendations")

    payload = plan.to_dict()
    record = RecommendationsRecord(
        user_id=user_id,
        analysis_id=analysis_ids[0] if analysis_ids else None,
        exam_recommendations=payload.get("examRecommendations", []),
        lifestyle_recommendations=payload.get("lifestyleRecommendations", []),
        health_goals=payload.get("healthGoals", []),
        alerts=payload.get("alerts", []),
    )
    record_id = await store.create_recommendations(record)
    logger.info(f"Recommendations: saved {record_id} ({usage.total_units} tokens)")

    return RecommendationsOutput(
        id=record_id,
        recommendations=plan,
        analysis_ids=list(analysis_ids),
        usage=usage,
    )
