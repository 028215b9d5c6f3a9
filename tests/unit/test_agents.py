"""
Unit Tests for Health Analysis Agents

Covers prompt assembly, the available-parameter guard, the agent runner
and the synthesis generator.
"""
import pytest

from conftest import FakeGateway
from medbrain.core.agents import (
    AgentAnalysisResult,
    AgentConfig,
    AgentRole,
    analyze_with_agent,
    build_agent_prompt,
    build_parameters_context,
    build_profile_context,
    build_specialized_instruction,
    default_agents,
    extract_available_parameters,
    generate_synthesis,
    is_parameter_available,
    validate_mentioned_parameters,
)
from medbrain.core.agents.synthesis import NO_DOCUMENTS_WARNING
from medbrain.core.llm import StructuredAnalysis, Synthesis
from medbrain.models.records import MedicalProfile
from medbrain.utils import GenerationError, SynthesisValidationError


def _result(name: str, analysis: str) -> AgentAnalysisResult:
    return AgentAnalysisResult(
        agent_id=name.lower(),
        agent_key=name.lower(),
        agent_name=name,
        analysis=analysis,
        insights=[],
        action_items=[],
        prompt="",
    )


# ── Available-parameter guard ─────────────────────────────────────────────────

class TestAvailableParameters:

    def test_names_are_sorted_and_unique(self, sample_document):
        available = extract_available_parameters([sample_document, sample_document])
        assert available.names == sorted(set(available.names))
        assert "TSH" in available.names
        assert available.details["Glicose"].reference_range == "70-99"
        assert available.by_document["lab_report"][0] == "Glicose"

    def test_context_groups_parameters(self, sample_document):
        text = build_parameters_context([sample_document])
        assert "PARAMETERS AVAILABLE IN THE DOCUMENTS" in text
        assert "## BIOCHEMISTRY" in text
        assert "## HORMONES" in text
        assert "- Glicose: 95 mg/dL (Ref: 70-99)" in text
        assert "Total available parameters: 9" in text

    def test_context_without_data(self):
        assert build_parameters_context([]).startswith("**ATTENTION:**")

    def test_abbreviations_resolve(self):
        assert is_parameter_available("AST", ["TGO (AST)"])
        assert is_parameter_available("TGO", ["Aspartato aminotransferase"])
        assert not is_parameter_available("TGP", ["Glicose"])


class TestParameterValidation:

    def test_unavailable_marker_flagged(self):
        result = validate_mentioned_parameters("TGO is elevated at 45 U/L.", ["Glicose"])
        assert not result.valid
        assert result.hallucinated == ["TGO"]
        assert "BASTONETES" in result.warnings[0]

    def test_not_tested_mention_accepted(self):
        result = validate_mentioned_parameters("Liver enzymes: TGO (not tested).", ["Glicose"])
        assert result.valid

    def test_suggestion_for_next_exam_accepted(self):
        text = "We recommend requesting Vitamina B12 at the next exam."
        assert validate_mentioned_parameters(text, ["Glicose"]).valid

    def test_word_fragments_are_not_mentions(self):
        text = "Bastonetes within range; overall health is good."
        assert validate_mentioned_parameters(text, ["Bastonetes"]).valid

    def test_available_marker_passes(self):
        assert validate_mentioned_parameters("TSH is 5.0", ["TSH"]).valid


# ── Prompt assembly ───────────────────────────────────────────────────────────

class TestPromptAssembly:

    def test_section_order(self):
        agent = default_agents()[0]
        prompt = build_agent_prompt(
            agent,
            instruction="@@instruction@@",
            logical_context="@@logical@@",
            parameters_context="@@parameters@@",
            knowledge_context="@@knowledge@@",
            documents_context="@@documents@@",
            profile_context="@@profile@@",
        )
        positions = [prompt.index(s) for s in (
            agent.analysis_prompt, "@@instruction@@", "@@logical@@", "@@parameters@@",
            "## Medical Knowledge Base (References)", "## Patient Medical Documents",
            "## Patient Medical Profile",
        )]
        assert positions == sorted(positions)

    def test_empty_sections_omitted(self):
        prompt = build_agent_prompt(default_agents()[1])
        assert "## Medical Knowledge Base" not in prompt
        assert "## Patient Medical Profile" not in prompt

    def test_specialized_instruction_carries_foundation(self):
        text = build_specialized_instruction([_result("Integrative Medicine", "Baseline findings")])
        assert "AVOID REPETITION" in text
        assert "PREVIOUS ANALYSIS (Integrative Medicine):\nBaseline findings" in text

    def test_profile_context(self, sample_profile):
        text = build_profile_context(sample_profile)
        assert "**Age:** 52 years" in text
        assert "**Current medications:** levothyroxine" in text
        assert "2x per week" in text
        assert "HIGH SARCOPENIA RISK" in text

    def test_profile_defaults(self):
        text = build_profile_context(MedicalProfile(user_id="u"))
        assert "**Weight:** Not informed" in text
        assert "Sit-to-stand" not in text
        assert build_profile_context(None) == ""


class TestAgentConfig:

    def test_default_panel(self):
        agents = default_agents()
        assert [a.agent_key for a in agents] == ["integrativa", "nutricao", "exercicio"]
        assert agents[0].is_foundation
        assert all(a.role == AgentRole.SPECIALIZED for a in agents[1:])

    def test_from_dict(self):
        agent = AgentConfig.from_dict({
            "id": "a1",
            "agentKey": "cardio",
            "name": "Cardiology",
            "role": "specialized",
            "modelName": "gemini-2.5-pro",
            "modelConfig": {"temperature": 0.4},
        })
        assert agent.model_parameters.model_name == "gemini-2.5-pro"
        assert agent.model_parameters.temperature == 0.4
        assert agent.to_dict()["agentKey"] == "cardio"


# ── Runner ────────────────────────────────────────────────────────────────────

class TestAnalyzeWithAgent:

    async def test_structured_result(self):
        gateway = FakeGateway()
        agent = default_agents()[0]

        result = await analyze_with_agent(gateway, agent, "prompt text", rag_used=True)

        assert result.agent_key == "integrativa"
        assert result.insights == ["integrativa insight"]
        assert result.usage.total_units == 1500
        assert result.rag_used is True
        request = gateway.request_for("integrativa")
        assert request.output_shape is StructuredAnalysis
        assert request.system_instruction == agent.system_prompt

    async def test_dict_output_is_validated(self):
        gateway = FakeGateway(overrides={
            "nutricao": {"analysis": "text", "insights": ["i"], "actionItems": ["a"]},
        })
        result = await analyze_with_agent(gateway, default_agents()[1], "p")
        assert result.action_items == ["a"]

    async def test_malformed_dict_is_a_shape_error(self):
        gateway = FakeGateway(overrides={"nutricao": {"analysis": "text", "insights": "one"}})
        with pytest.raises(GenerationError) as exc_info:
            await analyze_with_agent(gateway, default_agents()[1], "p")
        assert exc_info.value.code == "GENERATION_SHAPE_ERROR"
        assert exc_info.value.phase == "specialized"
        assert exc_info.value.tokens_used == 1500

    async def test_gateway_error_tagged_with_agent(self):
        gateway = FakeGateway(failures={"exercicio": GenerationError("boom", phase="specialized")})
        with pytest.raises(GenerationError) as exc_info:
            await analyze_with_agent(gateway, default_agents()[2], "p")
        assert exc_info.value.agent == "exercicio"

    async def test_unexpected_error_wrapped(self):
        gateway = FakeGateway(failures={"integrativa": RuntimeError("socket closed")})
        with pytest.raises(GenerationError) as exc_info:
            await analyze_with_agent(gateway, default_agents()[0], "p")
        assert exc_info.value.phase == "foundation"


# ── Synthesis ─────────────────────────────────────────────────────────────────

class TestSynthesis:

    async def test_synthesis_passes_validation(self, sample_document):
        gateway = FakeGateway()
        analyses = [_result("Integrative Medicine", "A"), _result("Nutrition", "B")]

        result = await generate_synthesis(gateway, analyses, [sample_document], enable_validation=True)

        assert result.synthesis.critical_alerts == ["TSH above laboratory limit"]
        assert result.to_dict()["executiveSummary"].startswith("Glicose")
        prompt = gateway.request_for("synthesis").prompt
        assert "## Integrative Medicine\n\nA\n\n---\n\n## Nutrition\n\nB" in prompt
        assert "PARAMETERS AVAILABLE IN THE DOCUMENTS" in prompt

    async def test_hallucinated_parameter_rejected(self, sample_document):
        bad = Synthesis(
            executive_summary="TGP is elevated, suggesting liver stress.",
            key_findings=[],
            critical_alerts=[],
            main_recommendations=[],
        )
        gateway = FakeGateway(overrides={"synthesis": bad})

        with pytest.raises(SynthesisValidationError) as exc_info:
            await generate_synthesis(gateway, [_result("A", "x")], [sample_document], enable_validation=True)
        assert exc_info.value.hallucinated == ["TGP"]

    async def test_validation_can_be_disabled(self, sample_document):
        bad = Synthesis(executive_summary="TGP is elevated.", key_findings=[], main_recommendations=[])
        gateway = FakeGateway(overrides={"synthesis": bad})

        result = await generate_synthesis(gateway, [_result("A", "x")], [sample_document], enable_validation=False)
        assert result.synthesis.executive_summary == "TGP is elevated."

    async def test_without_documents_uses_warning(self):
        gateway = FakeGateway()
        await generate_synthesis(gateway, [_result("A", "x")], [], enable_validation=True)
        assert NO_DOCUMENTS_WARNING.strip() in gateway.request_for("synthesis").prompt
