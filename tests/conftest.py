"""
Pytest Configuration and Fixtures

Shared fixtures for the Logical Brain and complete-analysis workflow tests.
"""
import asyncio
from typing import Dict, List, Optional

import pytest

from medbrain.core.agents import default_agents
from medbrain.core.llm.gateway import GenerationRequest, GenerationResponse, Usage
from medbrain.core.llm.schemas import (
    MealPlan,
    RecommendationsPlan,
    ShoppingList,
    StructuredAnalysis,
    SupplementationStrategy,
    Synthesis,
    WorkoutPlan,
)
from medbrain.core.logic import (
    DocumentModule,
    DocumentParameter,
    KnowledgeSnapshot,
    StructuredDocument,
)
from medbrain.core.orchestrator import CompleteAnalysisOrchestrator
from medbrain.models.records import MedicalProfile
from medbrain.services import (
    InMemoryAnalysisStore,
    InMemoryCreditLedger,
    default_retriever,
)

USER_ID = "user-1"


def _default_object(request: GenerationRequest):
    shape = request.output_shape
    if shape is StructuredAnalysis:
        return StructuredAnalysis(
            analysis=f"## {request.label}\n\nGlicose and Insulina suggest early insulin resistance.",
            insights=[f"{request.label} insight"],
            action_items=[f"{request.label} action"],
        )
    if shape is Synthesis:
        return Synthesis(
            executive_summary="Glicose and Insulina indicate early insulin resistance; TSH is elevated.",
            key_findings=["[Metabolism] - Glicose 95 mg/dL above optimal"],
            critical_alerts=["TSH above laboratory limit"],
            main_recommendations=["Repeat TSH in 3 months"],
        )
    if shape is RecommendationsPlan:
        return RecommendationsPlan.model_validate({
            "examRecommendations": [
                {"exam": "TSH", "reason": "Above limit", "urgency": "high", "suggestedTimeframe": "30 days"}
            ],
            "alerts": [{"type": "warning", "message": "TSH elevated", "action": "See an endocrinologist"}],
        })
    if shape is SupplementationStrategy:
        return SupplementationStrategy(overview="Vitamin D and iron repletion")
    if shape is ShoppingList:
        return ShoppingList(overview="Whole foods")
    if shape is MealPlan:
        return MealPlan(overview="Low glycemic load")
    if shape is WorkoutPlan:
        return WorkoutPlan(overview="Strength three times a week")
    raise AssertionError(f"Unexpected output shape {shape}")


class FakeGateway:
    """
    Scripted GenerationGateway.

    Records every request. `failures` maps a request label to the
    exception to raise; `overrides` maps a label to the object to return;
    `delays` maps a label to seconds to wait before answering. The peak
    number of calls in flight is kept in `max_in_flight`.
    """

    def __init__(
        self,
        failures: Optional[Dict[str, Exception]] = None,
        overrides: Optional[Dict[str, object]] = None,
        usage: Optional[Usage] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.failures = failures or {}
        self.overrides = overrides or {}
        self.delays = delays or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.usage = usage or Usage(prompt_units=1200, completion_units=300, total_units=1500)
        self.requests: List[GenerationRequest] = []

    @property
    def labels(self) -> List[str]:
        return [r.label for r in self.requests]

    def request_for(self, label: str) -> GenerationRequest:
        return next(r for r in self.requests if r.label == label)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(request.label, 0))
        finally:
            self.in_flight -= 1
        if request.label in self.failures:
            raise self.failures[request.label]
        obj = self.overrides.get(request.label) or _default_object(request)
        return GenerationResponse(object=obj, usage=self.usage, model="fake-model", latency_ms=1.0)


@pytest.fixture
def knowledge() -> KnowledgeSnapshot:
    return KnowledgeSnapshot.default()


@pytest.fixture
def sample_document() -> StructuredDocument:
    """Blood panel with a mix of optimal, suboptimal and abnormal values."""
    return StructuredDocument(
        id="doc-1",
        user_id=USER_ID,
        file_name="exames.pdf",
        document_type="lab_report",
        exam_date="2024-03-10",
        extracted_text="Hemograma e bioquímica",
        modules=[
            DocumentModule(
                module_name="Bioquímica",
                parameters=[
                    DocumentParameter(name="Glicose", value=95, unit="mg/dL", reference_range="70-99"),
                    DocumentParameter(name="Insulina", value="8,0", unit="µUI/mL"),
                    DocumentParameter(name="HDL", value=45, unit="mg/dL"),
                    DocumentParameter(name="LDL", value=120, unit="mg/dL"),
                    DocumentParameter(name="Triglicerídeos", value=160, unit="mg/dL"),
                    DocumentParameter(name="Ferritina", value=30, unit="ng/mL"),
                ],
            ),
            DocumentModule(
                module_name="Hormônios",
                parameters=[
                    DocumentParameter(name="TSH", value="5.0", unit="µUI/mL"),
                    DocumentParameter(name="Vitamina D", value="25", unit="ng/mL"),
                    DocumentParameter(name="Observação", value="amostra lipêmica"),
                ],
            ),
        ],
    )


@pytest.fixture
def sample_profile() -> MedicalProfile:
    return MedicalProfile(
        user_id=USER_ID,
        age=52,
        gender="female",
        weight=71.5,
        height=164,
        medications=["levothyroxine"],
        exercise_frequency=2,
        sit_to_stand_time=17.2,
    )


@pytest.fixture
def store(sample_document, sample_profile) -> InMemoryAnalysisStore:
    store = InMemoryAnalysisStore()
    store.add_document(sample_document)
    store.add_profile(sample_profile)
    for agent in default_agents():
        store.add_agent(agent)
    return store


@pytest.fixture
def ledger() -> InMemoryCreditLedger:
    ledger = InMemoryCreditLedger()
    ledger.grant(USER_ID, 100)
    return ledger


@pytest.fixture
def retriever():
    return default_retriever()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def orchestrator(store, gateway, retriever, ledger) -> CompleteAnalysisOrchestrator:
    return CompleteAnalysisOrchestrator(store, gateway, retriever, ledger)
