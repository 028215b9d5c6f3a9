"""
MedBrain - FastAPI Application

API endpoints for:
- Complete multi-agent analysis workflow (start, poll and per-agent analyses)
- Standalone deterministic biomarker evaluation
- Biomarker reference catalog
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from medbrain import __version__
from medbrain.config import settings
from medbrain.core.agents import default_agents
from medbrain.core.llm import GeminiClient
from medbrain.core.logic import BiomarkerValue, biomarker_variations
from medbrain.core.orchestrator import CompleteAnalysisOrchestrator
from medbrain.models.api import (
    BiomarkerCatalogResponse,
    CompleteAnalysisRequest,
    CompleteAnalysisStarted,
    EvaluateRequest,
    EvaluateResponse,
    HealthResponse,
)
from medbrain.services import InMemoryAnalysisStore, InMemoryCreditLedger, default_retriever
from medbrain.utils import get_logger, setup_logging, MedBrainError

# Load environment variables
load_dotenv()

logger = get_logger(__name__)

START_TIME = datetime.now()


# ---- Service Singletons ----

def _build_orchestrator() -> CompleteAnalysisOrchestrator:
    store = InMemoryAnalysisStore()
    for agent in default_agents():
        store.add_agent(agent)
    return CompleteAnalysisOrchestrator(
        store=store,
        gateway=GeminiClient(),
        retriever=default_retriever(),
        ledger=InMemoryCreditLedger(),
    )


_orchestrator = _build_orchestrator()


def get_orchestrator() -> CompleteAnalysisOrchestrator:
    return _orchestrator


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(level=settings.log_level, log_file=settings.log_file, json_lines=settings.log_json)
    logger.info(f"MedBrain API v{__version__} starting (model: {settings.gemini_model})")
    yield
    await _orchestrator.wait_for_all()
    logger.info("MedBrain API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title="MedBrain API",
    description="Deterministic biomarker evaluation and multi-agent medical analysis workflow",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _health(orchestrator: CompleteAnalysisOrchestrator) -> HealthResponse:
    gateway = orchestrator.gateway
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - START_TIME).total_seconds(),
        generation_available=bool(getattr(gateway, "is_available", True)),
    )


# ---- API Endpoints ----

@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root(orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator)):
    """API root - health check."""
    return _health(orchestrator)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    return _health(orchestrator)


@app.post(
    "/api/v1/analyses/complete",
    response_model=CompleteAnalysisStarted,
    response_model_by_alias=True,
    status_code=202,
    tags=["Analysis"],
)
async def start_complete_analysis(
    request: CompleteAnalysisRequest,
    orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator),
):
    """
    Start a complete analysis. Runs in the background; poll the status
    endpoint with the returned record id.
    """
    try:
        record_id = await orchestrator.start_workflow(request.user_id, request.document_ids)
    except MedBrainError as e:
        logger.error(f"Failed to start complete analysis: {e.message}")
        raise HTTPException(status_code=500, detail=e.to_dict())
    return CompleteAnalysisStarted(record_id=record_id)


@app.get("/api/v1/analyses/complete/{record_id}", tags=["Analysis"])
async def get_complete_analysis(
    record_id: str,
    orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    status = await orchestrator.get_workflow_status(record_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Complete analysis not found")
    return status


@app.get("/api/v1/analyses/complete/{record_id}/agents", tags=["Analysis"])
async def get_agent_analyses(
    record_id: str,
    orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Per-agent analyses persisted so far for a complete analysis."""
    analyses = await orchestrator.get_agent_analyses(record_id)
    if analyses is None:
        raise HTTPException(status_code=404, detail="Complete analysis not found")
    return {"recordId": record_id, "total": len(analyses), "analyses": analyses}


@app.post("/api/v1/medical-knowledge/evaluate", response_model=EvaluateResponse, tags=["Medical Knowledge"])
async def evaluate_biomarkers(
    request: EvaluateRequest,
    orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator),
):
    """Evaluate biomarker values against the reference knowledge base."""
    values = [
        BiomarkerValue(slug=b.slug, value=b.value, unit=b.unit, date=b.date, source="api")
        for b in request.biomarkers
    ]
    result = await orchestrator.evaluate(values)
    payload = result.to_dict()
    summary = payload.pop("summary")
    return EvaluateResponse(success=True, evaluation=payload, summary=summary)


@app.get("/api/v1/medical-knowledge/biomarkers", response_model=BiomarkerCatalogResponse, tags=["Medical Knowledge"])
async def list_biomarkers(orchestrator: CompleteAnalysisOrchestrator = Depends(get_orchestrator)):
    """Biomarkers with reference data, plus the name variants the extractor recognises."""
    knowledge = await orchestrator.store.load_knowledge()
    biomarkers = []
    for ref in knowledge.references:
        data = ref.to_dict()
        data["variations"] = biomarker_variations(ref.slug)
        biomarkers.append(data)
    return BiomarkerCatalogResponse(total=len(biomarkers), biomarkers=biomarkers)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
