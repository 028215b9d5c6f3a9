"""
Shared helpers for product generation.
"""
from typing import Sequence, Tuple, Type, TypeVar

from pydantic import BaseModel

from medbrain.core.agents.health_agents import AgentAnalysisResult
from medbrain.core.llm.gateway import GenerationGateway, GenerationRequest, Usage, coerce_object
from medbrain.utils import get_logger, GenerationError

logger = get_logger(__name__)

ShapeT = TypeVar("ShapeT", bound=BaseModel)


async def generate_structured(
    gateway: GenerationGateway,
    shape: Type[ShapeT],
    prompt: str,
    label: str,
) -> Tuple[ShapeT, Usage]:
    """One structured product call; any failure becomes a GenerationError."""
    request = GenerationRequest(prompt=prompt, output_shape=shape, label=label)
    try:
        response = await gateway.generate(request)
    except GenerationError as e:
        e.agent = e.agent or label
        raise
    except Exception as e:
        raise GenerationError(f"{label} generation failed: {e}", phase="products", agent=label) from e

    result = coerce_object(response, shape, phase="products", agent=label)
    logger.debug(f"Products: {label} generated ({response.usage.total_units} tokens)")
    return result, response.usage


def consolidated_analyses(analyses: Sequence[AgentAnalysisResult]) -> str:
    lines = ["# CONSOLIDATED MEDICAL ANALYSES", ""]
    for analysis in analyses:
        lines.append(f"## {analysis.agent_name}\n\n{analysis.analysis}\n\n---\n")
    return "\n".join(lines)
