"""
Health Analysis Agents

Configured generation roles that analyse a patient's documents.

Roles:
- FOUNDATION: run first, sequentially, producing the baseline analysis
- SPECIALIZED: run in parallel afterwards, building on the foundation output

Every agent call produces a StructuredAnalysis (analysis markdown, insights,
action items). Agents never invent values: the Logical Brain context and the
available-parameter list are the only data they are allowed to cite.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from medbrain.core.llm.gateway import (
    GenerationGateway,
    GenerationRequest,
    ModelParameters,
    Usage,
    coerce_object,
)
from medbrain.core.llm.schemas import StructuredAnalysis
from medbrain.models.records import MedicalProfile
from medbrain.utils import get_logger, GenerationError

logger = get_logger(__name__)


class AgentRole(str, Enum):
    FOUNDATION = "foundation"
    SPECIALIZED = "specialized"


@dataclass
class AgentConfig:
    """One configured analysis agent."""
    id: str
    agent_key: str
    name: str
    title: str
    role: AgentRole
    system_prompt: str
    analysis_prompt: str
    order: int = 0
    instruction: Optional[str] = None
    model_parameters: ModelParameters = field(default_factory=ModelParameters)
    is_active: bool = True

    @property
    def is_foundation(self) -> bool:
        return self.role == AgentRole.FOUNDATION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        params = ModelParameters.from_dict(data.get("modelConfig"))
        params.model_name = data.get("modelName") or params.model_name
        return cls(
            id=data["id"],
            agent_key=data.get("agentKey") or data["id"],
            name=data.get("name", data["id"]),
            title=data.get("title", ""),
            role=AgentRole(data.get("role", AgentRole.SPECIALIZED.value)),
            system_prompt=data.get("systemPrompt", ""),
            analysis_prompt=data.get("analysisPrompt", ""),
            order=int(data.get("order", 0)),
            instruction=data.get("instruction"),
            model_parameters=params,
            is_active=data.get("isActive", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        params = self.model_parameters
        return {
            "id": self.id,
            "agentKey": self.agent_key,
            "name": self.name,
            "title": self.title,
            "role": self.role.value,
            "order": self.order,
            "systemPrompt": self.system_prompt,
            "analysisPrompt": self.analysis_prompt,
            "instruction": self.instruction,
            "modelName": params.model_name,
            "modelConfig": {
                "temperature": params.temperature,
                "maxOutputTokens": params.max_output_tokens,
                "topP": params.top_p,
                "topK": params.top_k,
            },
            "isActive": self.is_active,
        }


@dataclass
class AgentAnalysisResult:
    """Output of one agent run, before and after persistence."""
    agent_id: str
    agent_key: str
    agent_name: str
    analysis: str
    insights: List[str]
    action_items: List[str]
    prompt: str
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    processing_time_ms: float = 0.0
    rag_used: bool = False
    analysis_id: Optional[str] = None   # set once persisted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysisId": self.analysis_id,
            "agentId": self.agent_id,
            "agentKey": self.agent_key,
            "agentName": self.agent_name,
            "analysis": self.analysis,
            "insights": list(self.insights),
            "actionItems": list(self.action_items),
            "usage": self.usage.to_dict(),
            "model": self.model,
            "processingTimeMs": round(self.processing_time_ms, 2),
            "ragUsed": self.rag_used,
        }


# ── Instructions ──────────────────────────────────────────────────────────────

FOUNDATION_INSTRUCTION = """This is the FOUNDATIONAL ANALYSIS that other specialists will build on.
Be comprehensive and detailed across every area of health.

⚠️ CRITICAL RULE: Analyse ONLY the data and parameters that are ACTUALLY AVAILABLE in the documents.
If a system has no data available, say explicitly "Data not available to evaluate [system]".
NEVER mention parameters that were not tested.

ℹ️ IMPORTANT: You receive LOGICAL BRAIN data with every structured, validated parameter.
Use ONLY that structured data in your analysis."""

SPECIALIZED_INSTRUCTION = """Provide COMPLEMENTARY insights from your specialty.

⚠️ AVOID REPETITION: the foundational analysis below already covers the general picture.
Do not restate its findings; go deeper into what only your specialty can add.

⚠️ CRITICAL RULE: Mention ONLY parameters present in the "AVAILABLE PARAMETERS" list.
If a relevant parameter is missing, say it is not available and suggest it for the next exam."""


def build_specialized_instruction(foundation: List[AgentAnalysisResult]) -> str:
    previous = "\n\n".join(
        f"PREVIOUS ANALYSIS ({result.agent_name}):\n{result.analysis}"
        for result in foundation
    )
    return f"{SPECIALIZED_INSTRUCTION}\n\n{previous}" if previous else SPECIALIZED_INSTRUCTION


# ── Context builders ──────────────────────────────────────────────────────────

def build_profile_context(profile: Optional[MedicalProfile]) -> str:
    """Patient profile block; empty when no profile exists."""
    if profile is None:
        return ""

    def informed(value: Any, suffix: str = "") -> str:
        return f"{value}{suffix}" if value not in (None, "") else "Not informed"

    parts = [
        f"**Age:** {informed(profile.age, ' years')}",
        f"**Sex:** {informed(profile.gender)}",
        f"**Weight:** {informed(profile.weight, ' kg')}",
        f"**Height:** {informed(profile.height, ' cm')}",
    ]
    if profile.medical_conditions:
        parts.append(f"**Pre-existing conditions:** {', '.join(profile.medical_conditions)}")
    if profile.medications:
        parts.append(f"**Current medications:** {', '.join(profile.medications)}")
    if profile.allergies:
        parts.append(f"**Allergies:** {', '.join(profile.allergies)}")
    if profile.exercise_intensity:
        parts.append(f"**Exercise intensity:** {profile.exercise_intensity}")
    if profile.exercise_frequency is not None:
        parts.append(f"**Exercise frequency:** {profile.exercise_frequency}x per week")
    if profile.current_diet:
        parts.append(f"**Current diet:** {profile.current_diet}")
    if profile.handgrip_strength is not None:
        parts.append(
            f"**Handgrip strength:** {profile.handgrip_strength} kg "
            f"(neuromuscular integrity biomarker)"
        )
    if profile.sit_to_stand_time is not None:
        risk = " ⚠️ HIGH SARCOPENIA RISK" if profile.sit_to_stand_time > 15 else ""
        parts.append(
            f"**Sit-to-stand (5 repetitions):** {profile.sit_to_stand_time} s "
            f"(lower-limb power){risk}"
        )
    return "\n".join(parts)


def build_agent_prompt(
    agent: AgentConfig,
    instruction: str = "",
    logical_context: str = "",
    parameters_context: str = "",
    knowledge_context: str = "",
    documents_context: str = "",
    profile_context: str = "",
) -> str:
    parts = [agent.analysis_prompt]
    if agent.instruction:
        parts.append(f"\n\n{agent.instruction}")
    if instruction:
        parts.append(f"\n\n{instruction}")
    if logical_context:
        parts.append(f"\n\n{logical_context}")
    if parameters_context:
        parts.append(f"\n\n{parameters_context}")
    if knowledge_context:
        parts.append("\n\n## Medical Knowledge Base (References)")
        parts.append(knowledge_context)
    if documents_context:
        parts.append("\n\n## Patient Medical Documents")
        parts.append(documents_context)
    if profile_context:
        parts.append("\n\n## Patient Medical Profile")
        parts.append(profile_context)
    return "\n".join(parts)


def knowledge_query(agent: AgentConfig, documents_context: str) -> str:
    return f"{agent.analysis_prompt}\n\n{documents_context[:500]}"


# ── Runner ────────────────────────────────────────────────────────────────────

async def analyze_with_agent(
    gateway: GenerationGateway,
    agent: AgentConfig,
    prompt: str,
    rag_used: bool = False,
) -> AgentAnalysisResult:
    """
    Run one agent through the gateway.

    Raises:
        GenerationError: tagged with the agent key; never returns a fabricated result.
    """
    logger.info(f"Agent {agent.agent_key}: starting ({agent.role.value})")
    started = time.time()
    request = GenerationRequest(
        prompt=prompt,
        system_instruction=agent.system_prompt or None,
        output_shape=StructuredAnalysis,
        model_parameters=agent.model_parameters,
        label=agent.agent_key,
    )

    try:
        response = await gateway.generate(request)
    except GenerationError as e:
        e.agent = e.agent or agent.agent_key
        e.details["agent"] = e.agent
        raise
    except Exception as e:
        raise GenerationError(
            f"Agent {agent.name} failed: {e}",
            phase=agent.role.value,
            agent=agent.agent_key,
        ) from e

    shaped = coerce_object(response, StructuredAnalysis, phase=agent.role.value, agent=agent.agent_key)

    elapsed = (time.time() - started) * 1000
    logger.info(
        f"Agent {agent.agent_key}: done in {elapsed:.0f}ms, "
        f"{response.usage.total_units} tokens"
    )
    return AgentAnalysisResult(
        agent_id=agent.id,
        agent_key=agent.agent_key,
        agent_name=agent.name,
        analysis=shaped.analysis,
        insights=list(shaped.insights),
        action_items=list(shaped.action_items),
        prompt=prompt,
        usage=response.usage,
        model=response.model,
        processing_time_ms=elapsed,
        rag_used=rag_used,
    )


# ── Seed configuration ────────────────────────────────────────────────────────

def default_agents() -> List[AgentConfig]:
    """The standard panel: one integrative foundation, nutrition and exercise specialists."""
    return [
        AgentConfig(
            id="integrativa",
            agent_key="integrativa",
            name="Integrative Medicine",
            title="Integrative medicine physician",
            role=AgentRole.FOUNDATION,
            order=0,
            system_prompt=(
                "You are an integrative medicine physician. You interpret laboratory results "
                "against functional (optimal) ranges and connect findings across body systems. "
                "You never diagnose; you explain and prioritise."
            ),
            analysis_prompt=(
                "Perform a COMPLETE and HOLISTIC medical analysis of this patient: metabolic, "
                "cardiovascular, hormonal, hepatic, renal, hematologic and nutritional status."
            ),
        ),
        AgentConfig(
            id="nutricao",
            agent_key="nutricao",
            name="Nutrition",
            title="Clinical nutritionist",
            role=AgentRole.SPECIALIZED,
            order=1,
            system_prompt=(
                "You are a clinical nutritionist specialised in functional nutrition and "
                "evidence-based supplementation."
            ),
            analysis_prompt=(
                "Analyse the patient's nutritional status, micronutrient gaps, glycemic control "
                "and lipid profile, and their dietary implications."
            ),
        ),
        AgentConfig(
            id="exercicio",
            agent_key="exercicio",
            name="Exercise Physiology",
            title="Exercise physiologist",
            role=AgentRole.SPECIALIZED,
            order=2,
            system_prompt=(
                "You are an exercise physiologist who designs training around metabolic "
                "health, body composition and sarcopenia prevention."
            ),
            analysis_prompt=(
                "Analyse the patient's capacity for training, metabolic flexibility and "
                "musculoskeletal risk, and what that means for exercise prescription."
            ),
        ),
    ]
