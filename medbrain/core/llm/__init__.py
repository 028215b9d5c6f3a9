"""
Generation Module

Gateway contract, Gemini-backed implementation and structured output
shapes. Generated text explains and organises deterministic findings; the
Logical Brain remains the source of truth for values and protocols.
"""
from .gateway import (
    GenerationGateway,
    GenerationRequest,
    GenerationResponse,
    ModelParameters,
    Usage,
    coerce_object,
)
from .gemini_client import GeminiClient, GeminiConfig, calculate_max_output_tokens
from .schemas import (
    StructuredAnalysis,
    Synthesis,
    RecommendationsPlan,
    SupplementationStrategy,
    ShoppingList,
    MealPlan,
    WorkoutPlan,
)

__all__ = [
    "GenerationGateway",
    "GenerationRequest",
    "GenerationResponse",
    "ModelParameters",
    "Usage",
    "coerce_object",
    "GeminiClient",
    "GeminiConfig",
    "calculate_max_output_tokens",
    "StructuredAnalysis",
    "Synthesis",
    "RecommendationsPlan",
    "SupplementationStrategy",
    "ShoppingList",
    "MealPlan",
    "WorkoutPlan",
]
