"""
Products Module - recommendations and weekly plan generated after synthesis
"""
from .recommendations import RecommendationsOutput, generate_recommendations
from .weekly_plan import WeeklyPlanOutput, generate_weekly_plan, next_monday

__all__ = [
    "RecommendationsOutput",
    "generate_recommendations",
    "WeeklyPlanOutput",
    "generate_weekly_plan",
    "next_monday",
]
