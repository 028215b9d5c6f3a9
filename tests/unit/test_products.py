"""
Unit Tests for generated products: recommendations and weekly plan
"""
from datetime import date
from unittest.mock import AsyncMock

import pytest

from conftest import FakeGateway, USER_ID
from medbrain.core.agents import AgentAnalysisResult
from medbrain.core.llm import Usage
from medbrain.core.products import generate_recommendations, generate_weekly_plan
from medbrain.core.products.recommendations import build_recommendations_context
from medbrain.core.products.weekly_plan import next_monday
from medbrain.utils import GenerationError


@pytest.fixture
def analyses():
    return [
        AgentAnalysisResult(
            agent_id="integrativa", agent_key="integrativa", agent_name="Integrative Medicine",
            analysis="Vitamin D deficiency and insulin resistance.", insights=[], action_items=[], prompt="",
        ),
        AgentAnalysisResult(
            agent_id="nutricao", agent_key="nutricao", agent_name="Nutrition",
            analysis="Low glycemic load diet with more protein.", insights=[], action_items=[], prompt="",
        ),
    ]


class TestNextMonday:

    def test_midweek(self):
        assert next_monday(date(2024, 3, 13)) == date(2024, 3, 18)

    def test_sunday(self):
        assert next_monday(date(2024, 3, 17)) == date(2024, 3, 18)

    def test_monday_maps_to_following_week(self):
        assert next_monday(date(2024, 3, 18)) == date(2024, 3, 25)


class TestRecommendations:

    async def test_generated_and_persisted(self, store, retriever, analyses):
        gateway = FakeGateway()
        synthesis = {"executiveSummary": "Summary text", "keyFindings": ["[Metabolism] - HOMA-IR high"]}

        output = await generate_recommendations(
            gateway, store, USER_ID, analyses, ["a-1", "a-2"], synthesis=synthesis, retriever=retriever,
        )

        saved = await store.get_recommendations(output.id)
        assert saved.analysis_id == "a-1"
        assert saved.exam_recommendations[0]["suggestedTimeframe"] == "30 days"
        assert saved.alerts[0]["type"] == "warning"

        payload = output.to_dict()
        assert payload["analysisIds"] == ["a-1", "a-2"]
        assert payload["usage"]["totalTokens"] == 1500

        prompt = gateway.request_for("recommendations").prompt
        assert "**Specialists consulted:** Integrative Medicine, Nutrition" in prompt
        assert "# CONSOLIDATED SYNTHESIS" in prompt
        assert "MEDICAL KNOWLEDGE BASE" in prompt

    async def test_no_analyses(self, store):
        with pytest.raises(GenerationError) as exc_info:
            await generate_recommendations(FakeGateway(), store, USER_ID, [], [])
        assert exc_info.value.message == "No analyses found"

    async def test_retrieval_failure_degrades(self, store, analyses):
        retriever = AsyncMock()
        retriever.retrieve.side_effect = RuntimeError("index offline")
        gateway = FakeGateway()

        output = await generate_recommendations(gateway, store, USER_ID, analyses, ["a-1"], retriever=retriever)

        assert output.id is not None
        assert "MEDICAL KNOWLEDGE BASE" not in gateway.request_for("recommendations").prompt

    def test_context_without_synthesis(self, analyses):
        context = build_recommendations_context(analyses)
        assert "## Nutrition\n\nLow glycemic load" in context
        assert "CONSOLIDATED SYNTHESIS" not in context


class TestWeeklyPlan:

    async def test_four_components_and_usage(self, store, retriever, analyses):
        gateway = FakeGateway()

        plan = await generate_weekly_plan(
            gateway, store, USER_ID, analyses, ["a-1"], retriever=retriever, today=date(2024, 3, 13),
        )

        assert sorted(gateway.labels) == ["meals", "shopping", "supplementation", "workout"]
        assert plan.week_start_date == "2024-03-18"
        usage = plan.usage_dict()
        assert usage["totalTokens"] == 6000
        assert usage["promptTokens"] == 4800
        assert usage["supplementation"] == usage["workout"] == 1500

        saved = await store.get_weekly_plan(plan.id)
        assert saved.week_start_date == "2024-03-18"
        assert saved.meal_plan["overview"] == "Low glycemic load"

    async def test_component_failure_fails_the_plan(self, store, analyses):
        store.create_weekly_plan = AsyncMock(wraps=store.create_weekly_plan)
        gateway = FakeGateway(failures={"workout": RuntimeError("provider down")})

        with pytest.raises(GenerationError) as exc_info:
            await generate_weekly_plan(gateway, store, USER_ID, analyses, ["a-1"])
        assert exc_info.value.agent == "workout"
        # the three components that answered are still billed
        assert exc_info.value.tokens_used == 4500
        store.create_weekly_plan.assert_not_awaited()

    async def test_malformed_component_fails_the_plan(self, store, analyses):
        store.create_weekly_plan = AsyncMock(wraps=store.create_weekly_plan)
        gateway = FakeGateway(overrides={"shopping": {"categories": "none"}})

        with pytest.raises(GenerationError) as exc_info:
            await generate_weekly_plan(gateway, store, USER_ID, analyses, ["a-1"])
        assert exc_info.value.code == "GENERATION_SHAPE_ERROR"
        assert exc_info.value.agent == "shopping"
        assert exc_info.value.tokens_used == 6000
        store.create_weekly_plan.assert_not_awaited()

    async def test_custom_usage_totals(self, store, analyses):
        gateway = FakeGateway(usage=Usage(prompt_units=10, completion_units=5, total_units=15))
        plan = await generate_weekly_plan(gateway, store, USER_ID, analyses, [])
        assert plan.usage.total_units == 60
        assert plan.to_dict()["usage"]["shopping"] == 15
