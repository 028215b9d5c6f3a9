"""
Complete Analysis Orchestrator

Drives one CompleteAnalysisRecord through its phases:

    pending                 validate input, run the Logical Brain
    analyzing_foundation    foundation agents, sequentially in `order`
    analyzing_specialized   specialized agents, in parallel
    generating_synthesis    one consolidating call
    generating_products     recommendations + weekly plan, in parallel
    completed

Each handler returns the next status; the record is saved at every phase
boundary and a failed save is itself a workflow failure. Any unrecoverable
error moves the record to `failed` with an error message and is re-raised
to the caller of `run()`.

Parallel phases always join every branch before deciding the outcome, so
nothing is persisted or billed after the record is marked `failed`.

Degradations that never fail a workflow:
- knowledge retrieval errors (empty context + warning)
- persistence errors for a generated analysis (warning, result kept)
- billing errors (logged)
- a single specialized agent failure when isolation is enabled (warning)
"""
import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, TypeVar, Union

from medbrain.config import Settings, settings as default_settings
from medbrain.core.agents.health_agents import (
    FOUNDATION_INSTRUCTION,
    AgentAnalysisResult,
    AgentConfig,
    AgentRole,
    analyze_with_agent,
    build_agent_prompt,
    build_profile_context,
    build_specialized_instruction,
    knowledge_query,
)
from medbrain.core.agents.parameters import build_parameters_context
from medbrain.core.agents.synthesis import generate_synthesis
from medbrain.core.llm.gateway import GenerationGateway
from medbrain.core.logic.engine import LogicalBrain, render_for_prompt
from medbrain.core.logic.types import (
    BiomarkerValue,
    EvaluationResult,
    LogicalAnalysis,
    StructuredDocument,
)
from medbrain.core.products.recommendations import RecommendationsOutput, generate_recommendations
from medbrain.core.products.weekly_plan import WeeklyPlanOutput, generate_weekly_plan
from medbrain.models.records import AnalysisRow, MedicalProfile, utcnow
from medbrain.services.billing import CreditLedger
from medbrain.services.knowledge import KnowledgeRetriever
from medbrain.services.storage import AnalysisStore
from medbrain.utils import (
    get_logger,
    GenerationError,
    MedBrainError,
    WorkflowInputError,
    WorkflowStateError,
)
from .states import CompleteAnalysisRecord, WorkflowStatus

logger = get_logger(__name__)


@dataclass
class _RunContext:
    """Everything a single run accumulates; owned by one `run()` call."""
    record: CompleteAnalysisRecord
    documents: List[StructuredDocument] = field(default_factory=list)
    profile: Optional[MedicalProfile] = None
    foundation_agents: List[AgentConfig] = field(default_factory=list)
    specialized_agents: List[AgentConfig] = field(default_factory=list)
    logical_analysis: LogicalAnalysis = field(default_factory=LogicalAnalysis)
    logical_context: str = ""
    parameters_context: str = ""
    documents_context: str = ""
    profile_context: str = ""
    foundation: List[AgentAnalysisResult] = field(default_factory=list)
    specialized: List[AgentAnalysisResult] = field(default_factory=list)
    recommendations: Optional[RecommendationsOutput] = None
    weekly_plan: Optional[WeeklyPlanOutput] = None

    @property
    def user_id(self) -> str:
        return self.record.user_id

    @property
    def analyses(self) -> List[AgentAnalysisResult]:
        return self.foundation + self.specialized


Handler = Callable[[_RunContext], Awaitable[WorkflowStatus]]
T = TypeVar("T")


class CompleteAnalysisOrchestrator:
    """
    Complete-analysis workflow over injected collaborators.

    Usage:
        orchestrator = CompleteAnalysisOrchestrator(store, GeminiClient(), retriever, ledger)
        record_id = await orchestrator.start_workflow(user_id, document_ids)
        status = await orchestrator.get_workflow_status(record_id)
    """

    def __init__(
        self,
        store: AnalysisStore,
        gateway: GenerationGateway,
        retriever: Optional[KnowledgeRetriever] = None,
        ledger: Optional[CreditLedger] = None,
        config: Optional[Settings] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.retriever = retriever
        self.ledger = ledger
        self.config = config or default_settings
        self._tasks: Set[asyncio.Task] = set()
        self._handlers: Dict[WorkflowStatus, Handler] = {
            WorkflowStatus.PENDING: self._handle_pending,
            WorkflowStatus.ANALYZING_FOUNDATION: self._handle_foundation,
            WorkflowStatus.ANALYZING_SPECIALIZED: self._handle_specialized,
            WorkflowStatus.GENERATING_SYNTHESIS: self._handle_synthesis,
            WorkflowStatus.GENERATING_PRODUCTS: self._handle_products,
        }

    # ── Public operations ─────────────────────────────────────────────────────

    async def start_workflow(self, user_id: str, document_ids: Sequence[Any]) -> str:
        """Create a pending record and run the workflow in the background."""
        record = CompleteAnalysisRecord(user_id=user_id, document_ids=list(document_ids))
        record_id = await self.store.create_record(record)
        logger.info(f"Workflow {record_id}: created for user {user_id} with {len(record.document_ids)} document(s)")

        task = asyncio.create_task(self._run_background(record))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return record_id

    async def get_workflow_status(self, record_id: str) -> Optional[Dict[str, Any]]:
        record = await self.store.get_record(record_id)
        if record is None:
            return None
        return record.status_payload()

    async def get_agent_analyses(self, record_id: str) -> Optional[List[Dict[str, Any]]]:
        """Persisted agent analyses of a record, in execution order."""
        record = await self.store.get_record(record_id)
        if record is None:
            return None
        rows = await self.store.get_analyses(record.analysis_ids)
        return [row.to_dict() for row in rows]

    async def evaluate(
        self,
        values: Union[Sequence[BiomarkerValue], Mapping[str, float]],
    ) -> EvaluationResult:
        """Standalone deterministic evaluation against the stored knowledge."""
        knowledge = await self.store.load_knowledge()
        return LogicalBrain(knowledge).evaluate(values)

    async def run(self, record: CompleteAnalysisRecord) -> CompleteAnalysisRecord:
        """
        Drive `record` to a terminal state.

        Raises:
            MedBrainError (or any unexpected error) after the record was saved as failed.
        """
        ctx = _RunContext(record=record)
        try:
            while not record.status.is_terminal:
                handler = self._handlers[record.status]
                next_status = await handler(ctx)
                await self._commit(record, next_status)
                logger.info(
                    f"Workflow {record.id}: -> {next_status.value}",
                    extra={"workflow_id": record.id, "phase": next_status.value},
                )
        except Exception as e:
            await self._fail(record, e)
            raise
        return record

    async def wait_for_all(self) -> None:
        """Wait for every background workflow started by this orchestrator."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Phase handlers ────────────────────────────────────────────────────────

    async def _handle_pending(self, ctx: _RunContext) -> WorkflowStatus:
        record = ctx.record
        ids = [d for d in record.document_ids if isinstance(d, str) and d.strip()]
        if not ids:
            raise WorkflowInputError("No valid document IDs provided")

        documents = await self.store.get_documents(ids)
        if not documents:
            raise WorkflowInputError("No valid documents found", {"documentIds": ids})

        foreign = [d.id for d in documents if d.user_id != record.user_id]
        if foreign:
            raise WorkflowInputError(
                "Unauthorized: some documents do not belong to this user",
                {"documentIds": foreign},
            )
        missing = set(ids) - {d.id for d in documents}
        if missing:
            logger.warning(f"Workflow {record.id}: {len(missing)} document(s) not found, continuing")

        agents = sorted((a for a in await self.store.list_agents() if a.is_active), key=lambda a: a.order)
        ctx.foundation_agents = [a for a in agents if a.role == AgentRole.FOUNDATION]
        ctx.specialized_agents = [a for a in agents if a.role == AgentRole.SPECIALIZED]
        if not ctx.foundation_agents or not ctx.specialized_agents:
            raise WorkflowInputError(
                "Required agents not found: at least one foundation and one specialized agent must be active",
                {
                    "foundation": len(ctx.foundation_agents),
                    "specialized": len(ctx.specialized_agents),
                },
            )

        ctx.documents = documents
        ctx.profile = await self.store.get_profile(record.user_id)
        ctx.profile_context = build_profile_context(ctx.profile)
        ctx.documents_context = "\n\n---\n\n".join(
            f"\n## Document: {d.file_name or d.id} ({d.document_type})\n\n{d.extracted_text}"
            for d in documents
        )

        knowledge = await self.store.load_knowledge()
        structured = [d for d in documents if d.modules]
        ctx.logical_analysis = LogicalBrain(knowledge).run(structured, [d.id for d in structured])
        ctx.logical_context = render_for_prompt(ctx.logical_analysis)
        ctx.parameters_context = build_parameters_context(structured)
        if not ctx.logical_context:
            logger.warning(f"Workflow {record.id}: no biomarkers extracted, agents use document text")

        logger.info(
            f"Workflow {record.id}: {len(documents)} document(s), "
            f"{len(ctx.foundation_agents)} foundation / {len(ctx.specialized_agents)} specialized agent(s)"
        )
        return WorkflowStatus.ANALYZING_FOUNDATION

    async def _handle_foundation(self, ctx: _RunContext) -> WorkflowStatus:
        for agent in ctx.foundation_agents:
            knowledge, warning = await self._retrieve(agent, ctx.documents_context)
            if warning:
                ctx.record.warnings.append(warning)

            prompt = build_agent_prompt(
                agent,
                instruction=FOUNDATION_INSTRUCTION,
                logical_context=ctx.logical_context,
                knowledge_context=knowledge,
                documents_context="" if ctx.logical_context else ctx.documents_context,
                profile_context=ctx.profile_context,
            )
            operation = f"complete_analysis_{agent.agent_key}"
            result = await self._billed(
                ctx, operation, analyze_with_agent(self.gateway, agent, prompt, rag_used=bool(knowledge)),
            )
            warning = await self._persist_analysis(ctx, result)
            if warning:
                ctx.record.warnings.append(warning)
            await self._debit(ctx, result.usage.total_units, operation)
            ctx.foundation.append(result)

        ctx.record.analysis_ids = [r.analysis_id for r in ctx.analyses if r.analysis_id]
        return WorkflowStatus.ANALYZING_SPECIALIZED

    async def _handle_specialized(self, ctx: _RunContext) -> WorkflowStatus:
        agents = ctx.specialized_agents
        retrievals = await asyncio.gather(*(self._retrieve(a, ctx.documents_context) for a in agents))
        instruction = build_specialized_instruction(ctx.foundation)
        for _, warning in retrievals:
            if warning:
                ctx.record.warnings.append(warning)

        # Joined in full: every branch has persisted and billed before we decide.
        outcomes = await asyncio.gather(
            *(
                self._run_specialized(ctx, agent, knowledge, instruction)
                for agent, (knowledge, _) in zip(agents, retrievals)
            ),
            return_exceptions=True,
        )

        isolate = self.config.isolate_specialized_failures
        failures: List[GenerationError] = []
        fatal: List[BaseException] = []
        for agent, outcome in zip(agents, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, GenerationError):
                    fatal.append(outcome)
                    continue
                logger.error(
                    f"Workflow {ctx.record.id}: specialized agent failed: {outcome}",
                    extra={"workflow_id": ctx.record.id, "agent": agent.agent_key},
                )
                ctx.record.warnings.append(f"Specialized agent {agent.name} failed: {outcome.message}")
                failures.append(outcome)
                continue
            result, warning = outcome
            if warning:
                ctx.record.warnings.append(warning)
            ctx.specialized.append(result)

        if fatal:
            raise fatal[0]
        if failures and not isolate:
            raise failures[0]
        if not ctx.specialized:
            raise GenerationError(
                f"All specialized agents failed: {failures[0].message}" if failures else "No specialized analyses",
                phase=AgentRole.SPECIALIZED.value,
            )

        ctx.record.analysis_ids = [r.analysis_id for r in ctx.analyses if r.analysis_id]
        return WorkflowStatus.GENERATING_SYNTHESIS

    async def _run_specialized(
        self,
        ctx: _RunContext,
        agent: AgentConfig,
        knowledge: str,
        instruction: str,
    ) -> Tuple[AgentAnalysisResult, Optional[str]]:
        prompt = build_agent_prompt(
            agent,
            instruction=instruction,
            logical_context=ctx.logical_context,
            parameters_context=ctx.parameters_context,
            knowledge_context=knowledge,
            documents_context="" if ctx.logical_context else ctx.documents_context,
            profile_context=ctx.profile_context,
        )
        operation = f"complete_analysis_{agent.agent_key}"
        result = await self._billed(
            ctx, operation, analyze_with_agent(self.gateway, agent, prompt, rag_used=bool(knowledge)),
        )
        warning = await self._persist_analysis(ctx, result)
        await self._debit(ctx, result.usage.total_units, operation)
        return result, warning

    async def _handle_synthesis(self, ctx: _RunContext) -> WorkflowStatus:
        result = await self._billed(
            ctx,
            "complete_analysis_synthesis",
            generate_synthesis(
                self.gateway,
                ctx.analyses,
                [d for d in ctx.documents if d.modules],
                enable_validation=self.config.synthesis_validation,
            ),
        )
        await self._debit(ctx, result.usage.total_units, "complete_analysis_synthesis")
        ctx.record.synthesis = result.to_dict()
        return WorkflowStatus.GENERATING_PRODUCTS

    async def _handle_products(self, ctx: _RunContext) -> WorkflowStatus:
        record = ctx.record
        ids = list(record.analysis_ids)
        operations = ("complete_analysis_recommendations", "complete_analysis_weekly_plan")
        outcomes = await asyncio.gather(
            generate_recommendations(
                self.gateway, self.store, record.user_id, ctx.analyses, ids,
                synthesis=record.synthesis, retriever=self.retriever,
            ),
            generate_weekly_plan(
                self.gateway, self.store, record.user_id, ctx.analyses, ids,
                retriever=self.retriever,
            ),
            return_exceptions=True,
        )

        # Both products are settled; bill whatever was spent, then decide.
        for operation, outcome in zip(operations, outcomes):
            if isinstance(outcome, GenerationError):
                await self._debit(ctx, outcome.tokens_used, operation)
            elif not isinstance(outcome, BaseException):
                await self._debit(ctx, outcome.usage.total_units, operation)

        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            raise failures[0]

        ctx.recommendations, ctx.weekly_plan = outcomes
        record.recommendations_id = ctx.recommendations.id
        record.weekly_plan_id = ctx.weekly_plan.id
        return WorkflowStatus.COMPLETED

    # ── Collaborator wrappers ─────────────────────────────────────────────────

    async def _retrieve(self, agent: AgentConfig, documents_context: str) -> Tuple[str, Optional[str]]:
        """Knowledge for one agent; failures degrade to empty context plus a warning."""
        if self.retriever is None:
            return "", None
        try:
            text = await self.retriever.retrieve(
                knowledge_query(agent, documents_context),
                self.config.knowledge_max_chunks,
                self.config.knowledge_max_chars_per_chunk,
                agent.id,
            )
            return text or "", None
        except Exception as e:
            logger.warning(f"Knowledge search failed for {agent.agent_key}: {e}")
            return "", f"Knowledge retrieval failed for {agent.name}"

    async def _persist_analysis(self, ctx: _RunContext, result: AgentAnalysisResult) -> Optional[str]:
        row = AnalysisRow(
            user_id=ctx.user_id,
            agent_id=result.agent_id,
            document_ids=[d.id for d in ctx.documents],
            prompt=result.prompt,
            analysis=result.analysis,
            insights=result.insights,
            action_items=result.action_items,
            model_used=result.model,
            tokens_used=result.usage.total_units,
            processing_time_ms=result.processing_time_ms,
            rag_used=result.rag_used,
            logical_analysis=ctx.logical_analysis.to_dict(),
            medical_profile_snapshot=ctx.profile.to_dict() if ctx.profile else None,
        )
        try:
            result.analysis_id = await self.store.create_analysis(row)
        except Exception as e:
            logger.error(f"Failed to save analysis for {result.agent_key}: {e}", exc_info=True)
            return f"Analysis from {result.agent_name} could not be saved"
        return None

    async def _debit(self, ctx: _RunContext, tokens: int, operation: str) -> None:
        if self.ledger is None or tokens <= 0:
            return
        try:
            await self.ledger.debit(
                ctx.user_id,
                tokens,
                {"operation": operation, "completeAnalysisId": ctx.record.id},
            )
        except Exception as e:
            logger.error(f"Failed to debit credits for {operation}: {e}")

    async def _billed(self, ctx: _RunContext, operation: str, call: Awaitable[T]) -> T:
        """Await a generation; tokens a failed call already spent are still debited."""
        try:
            return await call
        except GenerationError as e:
            await self._debit(ctx, e.tokens_used, operation)
            raise

    async def _commit(self, record: CompleteAnalysisRecord, status: WorkflowStatus) -> None:
        """
        Persist `record` at `status`, then move the in-memory record.

        A failed save propagates, so the poll endpoint never lags behind the run.
        """
        if not record.status.can_transition_to(status):
            raise WorkflowStateError(record.status.value, status.value)
        staged = replace(
            record,
            status=status,
            completed_at=utcnow() if status == WorkflowStatus.COMPLETED else record.completed_at,
        )
        await self.store.save_record(staged)
        record.transition(status)
        record.completed_at = staged.completed_at

    async def _save_failure(self, record: CompleteAnalysisRecord) -> None:
        # Last chance: the original error is already being raised.
        try:
            await self.store.save_record(record)
        except Exception as e:
            logger.error(f"Workflow {record.id}: failed to save record: {e}", exc_info=True)

    async def _fail(self, record: CompleteAnalysisRecord, error: Exception) -> None:
        message = error.message if isinstance(error, MedBrainError) else str(error) or type(error).__name__
        logger.error(
            f"Workflow {record.id}: failed in {record.status.value}: {message}",
            extra={"workflow_id": record.id, "phase": record.status.value},
        )
        if not record.status.is_terminal:
            record.transition(WorkflowStatus.FAILED)
        record.error_message = message
        await self._save_failure(record)

    async def _run_background(self, record: CompleteAnalysisRecord) -> None:
        try:
            await self.run(record)
        except Exception:
            # already recorded as failed
            logger.debug(f"Workflow {record.id}: background run ended with failure")
