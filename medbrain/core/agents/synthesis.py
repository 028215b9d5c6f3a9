"""
Synthesis Generator

Consolidates every foundation and specialized analysis into one
executive summary. The result is checked against the parameters that
exist in the structured documents before it is accepted.
"""
import json
from dataclasses import dataclass, field
from typing import Optional, Sequence

from medbrain.config import settings
from medbrain.core.llm.gateway import GenerationGateway, GenerationRequest, Usage, coerce_object
from medbrain.core.llm.schemas import Synthesis
from medbrain.core.logic.types import StructuredDocument
from medbrain.utils import get_logger, GenerationError, SynthesisValidationError
from .health_agents import AgentAnalysisResult
from .parameters import (
    build_parameters_context,
    extract_available_parameters,
    validate_mentioned_parameters,
)

logger = get_logger(__name__)

NO_DOCUMENTS_WARNING = (
    "\n⚠️  **ATTENTION:** Structured data not available. "
    "Be extremely conservative when mentioning specific values.\n"
)

SYNTHESIS_PROMPT = """You are a senior medical coordinator specialised in integrative medicine.

{parameters_context}

ANALYSES FROM MULTIPLE SPECIALISTS:

{context}

YOUR MISSION:
Synthesise the analyses above into one consolidated summary that integrates every specialist's perspective.

CRITICAL RULES:
1. INTEGRATE the insights of every specialist into one narrative
2. IDENTIFY common patterns and convergences between the analyses
3. RESOLVE conflicts using medical hierarchy and evidence
4. PRIORITISE critical alerts and findings that need urgent action
5. AVOID repetition: consolidate what several agents said into one item

DATA VALIDATION RULES:
- NEVER invent values for parameters that are NOT in the "AVAILABLE PARAMETERS" list
- NEVER state that a parameter is high, low or normal if it was not tested
- Do NOT confuse word fragments with markers ("BASTONETES" is not "AST")
- You MAY mention an unavailable parameter to recommend it for the next exam,
  or to say explicitly that it was not tested
- Quote values EXACTLY as they appear in the available parameters

Generate the consolidated synthesis."""


@dataclass
class SynthesisResult:
    synthesis: Synthesis
    usage: Usage = field(default_factory=Usage)
    model: str = ""

    def to_dict(self):
        return self.synthesis.to_dict()


def build_synthesis_context(analyses: Sequence[AgentAnalysisResult]) -> str:
    return "\n\n---\n\n".join(f"## {a.agent_name}\n\n{a.analysis}" for a in analyses)


async def generate_synthesis(
    gateway: GenerationGateway,
    analyses: Sequence[AgentAnalysisResult],
    documents: Sequence[StructuredDocument] = (),
    enable_validation: Optional[bool] = None,
) -> SynthesisResult:
    """
    Generate the consolidated synthesis.

    Raises:
        GenerationError: the gateway call failed
        SynthesisValidationError: the synthesis cites parameters absent from the documents
    """
    if enable_validation is None:
        enable_validation = settings.synthesis_validation

    logger.info(f"Synthesis: consolidating {len(analyses)} analyses from {len(documents)} document(s)")

    available = extract_available_parameters(documents).names if documents else []
    if documents:
        parameters_context = build_parameters_context(documents)
    else:
        logger.warning("Synthesis: no structured documents, validation disabled")
        parameters_context = NO_DOCUMENTS_WARNING

    request = GenerationRequest(
        prompt=SYNTHESIS_PROMPT.format(
            parameters_context=parameters_context,
            context=build_synthesis_context(analyses),
        ),
        output_shape=Synthesis,
        label="synthesis",
    )
    try:
        response = await gateway.generate(request)
    except GenerationError:
        raise
    except Exception as e:
        raise GenerationError(f"Synthesis generation failed: {e}", phase="synthesis") from e

    synthesis = coerce_object(response, Synthesis, phase="synthesis")

    if enable_validation and available:
        text = json.dumps(synthesis.to_dict(), ensure_ascii=False)
        validation = validate_mentioned_parameters(text, available)
        if not validation.valid:
            for warning in validation.warnings:
                logger.error(f"Synthesis: {warning}")
            raise SynthesisValidationError(
                validation.hallucinated, validation.warnings, tokens_used=response.usage.total_units
            )
        logger.info("Synthesis: validation passed")

    return SynthesisResult(synthesis=synthesis, usage=response.usage, model=response.model)
