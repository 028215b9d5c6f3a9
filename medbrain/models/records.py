"""
Persisted Records

Entities written by the workflow: medical profiles, per-agent analysis rows
and generated products. Serialised with camelCase keys like the rest of
the API surface.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MedicalProfile:
    """Patient profile rendered into every agent prompt."""
    user_id: str
    age: Optional[int] = None
    gender: Optional[str] = None
    weight: Optional[float] = None          # kg
    height: Optional[float] = None          # cm
    medical_conditions: List[str] = field(default_factory=list)
    medications: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    exercise_intensity: Optional[str] = None
    exercise_frequency: Optional[int] = None  # sessions per week
    current_diet: Optional[str] = None
    handgrip_strength: Optional[float] = None  # kg
    sit_to_stand_time: Optional[float] = None  # seconds, 5 repetitions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "age": self.age,
            "gender": self.gender,
            "weight": self.weight,
            "height": self.height,
            "medicalConditions": list(self.medical_conditions),
            "medications": list(self.medications),
            "allergies": list(self.allergies),
            "exerciseIntensity": self.exercise_intensity,
            "exerciseFrequency": self.exercise_frequency,
            "currentDiet": self.current_diet,
            "handgripStrength": self.handgrip_strength,
            "sitToStandTime": self.sit_to_stand_time,
        }


@dataclass
class AnalysisRow:
    """One persisted agent analysis."""
    user_id: str
    agent_id: str
    document_ids: List[str]
    prompt: str
    analysis: str
    insights: List[str] = field(default_factory=list)
    action_items: List[str] = field(default_factory=list)
    model_used: str = ""
    tokens_used: Optional[int] = None
    processing_time_ms: Optional[float] = None
    rag_used: bool = False
    logical_analysis: Optional[Dict[str, Any]] = None
    medical_profile_snapshot: Optional[Dict[str, Any]] = None
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "agentId": self.agent_id,
            "documentIds": list(self.document_ids),
            "prompt": self.prompt,
            "analysis": self.analysis,
            "insights": list(self.insights),
            "actionItems": list(self.action_items),
            "modelUsed": self.model_used,
            "tokensUsed": self.tokens_used,
            "processingTimeMs": self.processing_time_ms,
            "ragUsed": self.rag_used,
            "logicalAnalysis": self.logical_analysis,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class RecommendationsRecord:
    user_id: str
    analysis_id: Optional[str]
    exam_recommendations: List[Dict[str, Any]] = field(default_factory=list)
    lifestyle_recommendations: List[Dict[str, Any]] = field(default_factory=list)
    health_goals: List[Dict[str, Any]] = field(default_factory=list)
    alerts: List[Dict[str, Any]] = field(default_factory=list)
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "analysisId": self.analysis_id,
            "examRecommendations": self.exam_recommendations,
            "lifestyleRecommendations": self.lifestyle_recommendations,
            "healthGoals": self.health_goals,
            "alerts": self.alerts,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class WeeklyPlanRecord:
    user_id: str
    analysis_id: Optional[str]
    week_start_date: str
    supplementation_strategy: Dict[str, Any] = field(default_factory=dict)
    shopping_list: Dict[str, Any] = field(default_factory=dict)
    meal_plan: Dict[str, Any] = field(default_factory=dict)
    workout_plan: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "analysisId": self.analysis_id,
            "weekStartDate": self.week_start_date,
            "supplementationStrategy": self.supplementation_strategy,
            "shoppingList": self.shopping_list,
            "mealPlan": self.meal_plan,
            "workoutPlan": self.workout_plan,
            "createdAt": self.created_at.isoformat(),
        }
