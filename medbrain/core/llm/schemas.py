"""
Structured Output Shapes

Pydantic models handed to the gateway as `output_shape`. Field
descriptions double as generation guidance for the provider.
Aliases keep the camelCase wire format of the stored documents.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Shape(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


Priority = Literal["high", "medium", "low"]


# ── Agent analysis ────────────────────────────────────────────────────────────

class StructuredAnalysis(_Shape):
    analysis: str = Field(
        ...,
        description=(
            "Complete medical analysis in well-structured MARKDOWN: ## headings per section, "
            "**bold** for values and key findings, bullet lists, blank lines between paragraphs."
        ),
    )
    insights: List[str] = Field(
        ...,
        description="3 to 7 key clinical insights SPECIFIC TO YOUR SPECIALTY, not repeating other specialists.",
    )
    action_items: List[str] = Field(
        ...,
        alias="actionItems",
        description="3 to 7 practical, measurable recommendations SPECIFIC TO YOUR AREA OF EXPERTISE.",
    )


# ── Synthesis ─────────────────────────────────────────────────────────────────

class Synthesis(_Shape):
    executive_summary: str = Field(
        ..., alias="executiveSummary",
        description="One narrative paragraph (150-200 words) integrating every analysis.",
    )
    key_findings: List[str] = Field(
        ..., alias="keyFindings",
        description="5-7 consolidated findings, formatted as '[Area] - finding'.",
    )
    critical_alerts: List[str] = Field(
        default_factory=list, alias="criticalAlerts",
        description="At most 3 alerts that need urgent medical action; empty if none.",
    )
    main_recommendations: List[str] = Field(
        ..., alias="mainRecommendations",
        description="Top 5 prioritized, actionable recommendations.",
    )


# ── Recommendations ───────────────────────────────────────────────────────────

class ExamRecommendation(_Shape):
    exam: str
    reason: str
    urgency: Priority
    suggested_timeframe: str = Field(..., alias="suggestedTimeframe")


class LifestyleRecommendation(_Shape):
    category: Literal["exercise", "nutrition", "sleep", "stress", "hydration", "habits"]
    recommendation: str
    priority: Priority
    expected_benefit: str = Field(..., alias="expectedBenefit")


class HealthGoal(_Shape):
    goal: str
    current_status: str = Field(..., alias="currentStatus")
    target_value: str = Field(..., alias="targetValue")
    timeframe: str
    action_steps: List[str] = Field(default_factory=list, alias="actionSteps")


class Alert(_Shape):
    type: Literal["urgent", "warning", "info"]
    message: str
    action: str


class RecommendationsPlan(_Shape):
    exam_recommendations: List[ExamRecommendation] = Field(default_factory=list, alias="examRecommendations")
    lifestyle_recommendations: List[LifestyleRecommendation] = Field(default_factory=list, alias="lifestyleRecommendations")
    health_goals: List[HealthGoal] = Field(default_factory=list, alias="healthGoals")
    alerts: List[Alert] = Field(default_factory=list)


# ── Weekly plan components ────────────────────────────────────────────────────

class Supplement(_Shape):
    name: str
    dosage: str
    timing: str = Field(..., description="When to take it")
    purpose: str
    duration: Optional[str] = None


class HormonalSupport(_Shape):
    hormone: str
    strategy: str
    monitoring: str


class SupplementationStrategy(_Shape):
    overview: str
    supplements: List[Supplement] = Field(default_factory=list)
    hormonal_support: List[HormonalSupport] = Field(default_factory=list, alias="hormonalSupport")
    next_exam_recommendations: Optional[List[str]] = Field(default=None, alias="nextExamRecommendations")


class ShoppingItem(_Shape):
    item: str
    quantity: Optional[str] = None
    notes: Optional[str] = None
    priority: Optional[Priority] = None


class ShoppingCategory(_Shape):
    category: str = Field(..., description="e.g. Proteins, Vegetables, Fruits")
    items: List[ShoppingItem] = Field(default_factory=list)


class ShoppingList(_Shape):
    overview: str
    categories: List[ShoppingCategory] = Field(default_factory=list)
    estimated_cost: Optional[str] = Field(default=None, alias="estimatedCost")
    tips: Optional[List[str]] = None


class Meal(_Shape):
    name: str
    ingredients: List[str] = Field(default_factory=list)
    calories: Optional[str] = None
    prep_time: Optional[str] = Field(default=None, alias="prepTime")


class Snack(_Shape):
    name: str
    timing: str
    calories: Optional[str] = None


class Macros(_Shape):
    protein: Optional[str] = None
    carbs: Optional[str] = None
    fats: Optional[str] = None


class DayMeals(_Shape):
    day: str
    breakfast: Meal
    lunch: Meal
    dinner: Meal
    snacks: List[Snack] = Field(default_factory=list)


class MealPlan(_Shape):
    overview: str
    daily_calories: Optional[str] = Field(default=None, alias="dailyCalories")
    macros: Optional[Macros] = None
    meals: List[DayMeals] = Field(default_factory=list)
    meal_prep_tips: Optional[List[str]] = Field(default=None, alias="mealPrepTips")


class Exercise(_Shape):
    name: str
    sets: Optional[str] = None
    reps: Optional[str] = None
    duration: Optional[str] = None
    notes: Optional[str] = None


class Workout(_Shape):
    day: str
    type: str = Field(..., description="Cardio, Strength, HIIT, ...")
    duration: str
    intensity: Optional[Literal["low", "medium", "high"]] = None
    exercises: List[Exercise] = Field(default_factory=list)
    warmup: Optional[str] = None
    cooldown: Optional[str] = None


class WorkoutPlan(_Shape):
    overview: str
    weekly_goal: Optional[str] = Field(default=None, alias="weeklyGoal")
    workouts: List[Workout] = Field(default_factory=list)
    rest_days: Optional[List[str]] = Field(default=None, alias="restDays")
    progression_tips: Optional[List[str]] = Field(default=None, alias="progressionTips")
