"""
Weekly Plan

Four structured sub-generations run in parallel over the consolidated
analyses:

- supplementation strategy (knowledge-grounded)
- shopping list
- meal plan (knowledge-grounded)
- workout plan (knowledge-grounded)

Usage is aggregated across the four calls and reported per component.
The plan always starts on the next Monday.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Optional, Sequence

from medbrain.core.agents.health_agents import AgentAnalysisResult
from medbrain.core.llm.gateway import GenerationGateway, Usage
from medbrain.core.llm.schemas import (
    MealPlan,
    ShoppingList,
    SupplementationStrategy,
    WorkoutPlan,
)
from medbrain.models.records import WeeklyPlanRecord
from medbrain.services.knowledge import KnowledgeRetriever, retrieve_or_empty
from medbrain.services.storage import AnalysisStore
from medbrain.utils import get_logger, GenerationError
from .common import consolidated_analyses, generate_structured

logger = get_logger(__name__)

KNOWLEDGE_CHUNKS = 3
KNOWLEDGE_CHARS_PER_CHUNK = 1200

SUPPLEMENTATION_QUERY = "nutritional supplementation hormone replacement vitamins minerals"
MEALS_QUERY = "nutrition meal planning diet glycemic control protein fibre"
WORKOUT_QUERY = "exercise prescription resistance training aerobic sarcopenia"

SUPPLEMENTATION_PROMPT = """You are a specialist in integrative medicine and supplementation.

{context}
{knowledge}
Create a supplementation strategy for ONE WEEK based on the analyses above.
- Only supplements justified by findings in the analyses
- Exact dosage, timing and purpose for each
- Hormonal support only where the analyses point to it, with monitoring
- Suggest exams for the next cycle where data was missing"""

SHOPPING_PROMPT = """You are a nutritionist building a practical shopping list.

{context}

Create the shopping list for ONE WEEK that supports the patient's nutritional needs.
Group items by category, add quantities and flag high-priority items."""

MEALS_PROMPT = """You are a clinical nutritionist.

{context}
{knowledge}
Create a 7-day meal plan (breakfast, lunch, dinner and snacks) adapted to the findings.
Include estimated daily calories, macro distribution and meal-prep tips."""

WORKOUT_PROMPT = """You are an exercise physiologist.

{context}
{knowledge}
Create a weekly workout plan adapted to the patient's metabolic and musculoskeletal status.
Give type, duration, intensity and exercises per day, rest days and progression tips."""


def next_monday(today: Optional[date] = None) -> date:
    """The coming Monday; a Monday maps to the following week."""
    today = today or date.today()
    return today + timedelta(days=7 - today.weekday())


@dataclass
class WeeklyPlanOutput:
    id: Optional[str]
    week_start_date: str
    supplementation_strategy: SupplementationStrategy
    shopping_list: ShoppingList
    meal_plan: MealPlan
    workout_plan: WorkoutPlan
    usage: Usage = field(default_factory=Usage)
    component_usage: Dict[str, int] = field(default_factory=dict)
    created_at: Optional[str] = None

    def usage_dict(self) -> Dict[str, int]:
        return {
            "totalTokens": self.usage.total_units,
            **self.component_usage,
            "promptTokens": self.usage.prompt_units,
            "completionTokens": self.usage.completion_units,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "weekStartDate": self.week_start_date,
            "supplementationStrategy": self.supplementation_strategy.to_dict(),
            "shoppingList": self.shopping_list.to_dict(),
            "mealPlan": self.meal_plan.to_dict(),
            "workoutPlan": self.workout_plan.to_dict(),
            "createdAt": self.created_at,
            "usage": self.usage_dict(),
        }


def _knowledge_block(knowledge: str) -> str:
    return f"\n## Medical Knowledge Base (References)\n{knowledge}\n" if knowledge else ""


async def generate_weekly_plan(
    gateway: GenerationGateway,
    store: AnalysisStore,
    user_id: str,
    analyses: Sequence[AgentAnalysisResult],
    analysis_ids: Sequence[str],
    retriever: Optional[KnowledgeRetriever] = None,
    today: Optional[date] = None,
) -> WeeklyPlanOutput:
    """
    Generate and persist the weekly plan.

    Raises:
        GenerationError: no analyses, or any of the four sub-generations failed
    """
    if not analyses:
        raise GenerationError("No analyses found", phase="products", agent="weekly_plan")

    context = consolidated_analyses(analyses)
    week_start = next_monday(today).isoformat()
    logger.info(f"Weekly plan: generating for week of {week_start} from {len(analyses)} analyses")

    supplement_kb, meals_kb, workout_kb = await asyncio.gather(
        retrieve_or_empty(retriever, SUPPLEMENTATION_QUERY, KNOWLEDGE_CHUNKS, KNOWLEDGE_CHARS_PER_CHUNK),
        retrieve_or_empty(retriever, MEALS_QUERY, KNOWLEDGE_CHUNKS, KNOWLEDGE_CHARS_PER_CHUNK),
        retrieve_or_empty(retriever, WORKOUT_QUERY, KNOWLEDGE_CHUNKS, KNOWLEDGE_CHARS_PER_CHUNK),
    )

    outcomes = await asyncio.gather(
        generate_structured(
            gateway, SupplementationStrategy,
            SUPPLEMENTATION_PROMPT.format(context=context, knowledge=_knowledge_block(supplement_kb)),
            "supplementation",
        ),
        generate_structured(gateway, ShoppingList, SHOPPING_PROMPT.format(context=context), "shopping"),
        generate_structured(
            gateway, MealPlan,
            MEALS_PROMPT.format(context=context, knowledge=_knowledge_block(meals_kb)),
            "meals",
        ),
        generate_structured(
            gateway, WorkoutPlan,
            WORKOUT_PROMPT.format(context=context, knowledge=_knowledge_block(workout_kb)),
            "workout",
        ),
        return_exceptions=True,
    )

    # Every component has finished here; a failure carries the tokens the others spent.
    failures = [o for o in outcomes if isinstance(o, BaseException)]
    if failures:
        spent = sum(o[1].total_units for o in outcomes if not isinstance(o, BaseException))
        failure = failures[0]
        if isinstance(failure, GenerationError):
            failure.tokens_used += spent
        logger.error(f"Weekly plan: {len(failures)} of {len(outcomes)} components failed ({spent} tokens spent)")
        raise failure

    (supplements, s_usage), (shopping, sh_usage), (meals, m_usage), (workout, w_usage) = outcomes
    usage = s_usage + sh_usage + m_usage + w_usage
    record = WeeklyPlanRecord(
        user_id=user_id,
        analysis_id=analysis_ids[0] if analysis_ids else None,
        week_start_date=week_start,
        supplementation_strategy=supplements.to_dict(),
        shopping_list=shopping.to_dict(),
        meal_plan=meals.to_dict(),
        workout_plan=workout.to_dict(),
    )
    plan_id = await store.create_weekly_plan(record)
    logger.info(f"Weekly plan: saved {plan_id} ({usage.total_units} tokens)")

    return WeeklyPlanOutput(
        id=plan_id,
        week_start_date=week_start,
        supplementation_strategy=supplements,
        shopping_list=shopping,
        meal_plan=meals,
        workout_plan=workout,
        usage=usage,
        component_usage={
            "supplementation": s_usage.total_units,
            "shopping": sh_usage.total_units,
            "meals": m_usage.total_units,
            "workout": w_usage.total_units,
        },
        created_at=record.created_at.isoformat(),
    )
