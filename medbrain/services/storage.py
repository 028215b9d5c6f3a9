"""
Analysis Store

Persistence boundary for the workflow: documents, profiles, agent
configurations, the knowledge snapshot, analysis rows, complete-analysis
records and generated products.

`InMemoryAnalysisStore` keeps everything in dicts (replace with a database
in production). Objects are deep-copied on the way in and out so callers
never share mutable state with the store.
"""
from __future__ import annotations

import copy
import uuid
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Protocol

from medbrain.core.logic.knowledge_base import KnowledgeSnapshot
from medbrain.core.logic.types import StructuredDocument
from medbrain.models.records import (
    AnalysisRow,
    MedicalProfile,
    RecommendationsRecord,
    WeeklyPlanRecord,
)
from medbrain.utils import get_logger, PersistenceError

if TYPE_CHECKING:
    from medbrain.core.agents.health_agents import AgentConfig
    from medbrain.core.orchestrator.states import CompleteAnalysisRecord

logger = get_logger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


class AnalysisStore(Protocol):
    """Storage contract consumed by the orchestrator and the products."""

    async def get_documents(self, document_ids: Iterable[str]) -> List[StructuredDocument]: ...
    async def get_profile(self, user_id: str) -> Optional[MedicalProfile]: ...
    async def list_agents(self) -> List["AgentConfig"]: ...
    async def load_knowledge(self) -> KnowledgeSnapshot: ...
    async def create_analysis(self, row: AnalysisRow) -> str: ...
    async def get_analyses(self, analysis_ids: Iterable[str]) -> List[AnalysisRow]: ...
    async def create_record(self, record: "CompleteAnalysisRecord") -> str: ...
    async def save_record(self, record: "CompleteAnalysisRecord") -> None: ...
    async def get_record(self, record_id: str) -> Optional["CompleteAnalysisRecord"]: ...
    async def create_recommendations(self, record: RecommendationsRecord) -> str: ...
    async def create_weekly_plan(self, record: WeeklyPlanRecord) -> str: ...


class InMemoryAnalysisStore:
    """Dict-backed AnalysisStore."""

    def __init__(self, knowledge: Optional[KnowledgeSnapshot] = None):
        self._documents: Dict[str, StructuredDocument] = {}
        self._profiles: Dict[str, MedicalProfile] = {}
        self._agents: Dict[str, "AgentConfig"] = {}
        self._analyses: Dict[str, AnalysisRow] = {}
        self._records: Dict[str, "CompleteAnalysisRecord"] = {}
        self._recommendations: Dict[str, RecommendationsRecord] = {}
        self._weekly_plans: Dict[str, WeeklyPlanRecord] = {}
        self._knowledge = knowledge or KnowledgeSnapshot.default()

    # ── Seeding ───────────────────────────────────────────────────────────────

    def add_document(self, document: StructuredDocument) -> str:
        if not document.id:
            document.id = new_id()
        self._documents[document.id] = copy.deepcopy(document)
        return document.id

    def add_profile(self, profile: MedicalProfile) -> None:
        self._profiles[profile.user_id] = copy.deepcopy(profile)

    def add_agent(self, agent: "AgentConfig") -> None:
        self._agents[agent.id] = copy.deepcopy(agent)

    def set_knowledge(self, knowledge: KnowledgeSnapshot) -> None:
        self._knowledge = knowledge

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get_documents(self, document_ids: Iterable[str]) -> List[StructuredDocument]:
        """Documents that exist, in request order; unknown ids are skipped."""
        found = []
        for doc_id in document_ids:
            doc = self._documents.get(doc_id)
            if doc is not None:
                found.append(copy.deepcopy(doc))
        return found

    async def get_profile(self, user_id: str) -> Optional[MedicalProfile]:
        return copy.deepcopy(self._profiles.get(user_id))

    async def list_agents(self) -> List["AgentConfig"]:
        return [copy.deepcopy(a) for a in self._agents.values()]

    async def load_knowledge(self) -> KnowledgeSnapshot:
        # Snapshot is frozen; sharing it is safe
        return self._knowledge

    async def get_analyses(self, analysis_ids: Iterable[str]) -> List[AnalysisRow]:
        return [
            copy.deepcopy(self._analyses[a_id])
            for a_id in analysis_ids
            if a_id in self._analyses
        ]

    async def get_record(self, record_id: str) -> Optional["CompleteAnalysisRecord"]:
        return copy.deepcopy(self._records.get(record_id))

    async def get_recommendations(self, rec_id: str) -> Optional[RecommendationsRecord]:
        return copy.deepcopy(self._recommendations.get(rec_id))

    async def get_weekly_plan(self, plan_id: str) -> Optional[WeeklyPlanRecord]:
        return copy.deepcopy(self._weekly_plans.get(plan_id))

    # ── Writes ────────────────────────────────────────────────────────────────

    async def create_analysis(self, row: AnalysisRow) -> str:
        row.id = row.id or new_id()
        self._analyses[row.id] = copy.deepcopy(row)
        logger.debug(f"Store: analysis {row.id} saved for agent {row.agent_id}")
        return row.id

    async def create_record(self, record: "CompleteAnalysisRecord") -> str:
        record.id = record.id or new_id()
        self._records[record.id] = copy.deepcopy(record)
        return record.id

    async def save_record(self, record: "CompleteAnalysisRecord") -> None:
        if not record.id or record.id not in self._records:
            raise PersistenceError(
                f"Complete analysis {record.id} does not exist",
                entity="complete_analysis",
            )
        self._records[record.id] = copy.deepcopy(record)

    async def create_recommendations(self, record: RecommendationsRecord) -> str:
        record.id = record.id or new_id()
        self._recommendations[record.id] = copy.deepcopy(record)
        return record.id

    async def create_weekly_plan(self, record: WeeklyPlanRecord) -> str:
        record.id = record.id or new_id()
        self._weekly_plans[record.id] = copy.deepcopy(record)
        return record.id
