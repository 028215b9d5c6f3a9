"""
Agents Module

Foundation and specialized analysis agents, the synthesis generator and
the available-parameter guard.
"""
from .health_agents import (
    AgentRole,
    AgentConfig,
    AgentAnalysisResult,
    analyze_with_agent,
    build_agent_prompt,
    build_profile_context,
    build_specialized_instruction,
    default_agents,
)
from .parameters import (
    extract_available_parameters,
    build_parameters_context,
    validate_mentioned_parameters,
    is_parameter_available,
)
from .synthesis import SynthesisResult, generate_synthesis

__all__ = [
    "AgentRole",
    "AgentConfig",
    "AgentAnalysisResult",
    "analyze_with_agent",
    "build_agent_prompt",
    "build_profile_context",
    "build_specialized_instruction",
    "default_agents",
    "extract_available_parameters",
    "build_parameters_context",
    "validate_mentioned_parameters",
    "is_parameter_available",
    "SynthesisResult",
    "generate_synthesis",
]
