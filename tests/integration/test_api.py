"""
Integration Tests for the FastAPI application

Tests for the health, complete-analysis and medical-knowledge endpoints.
Uses async httpx for ASGI app testing; the orchestrator dependency is
overridden with one backed by a scripted gateway.
"""
import pytest
import httpx

from conftest import USER_ID
from medbrain.main import app, get_orchestrator


@pytest.fixture
async def async_client(orchestrator):
    """Create async test client wired to the test orchestrator."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.mark.asyncio
class TestHealthEndpoints:
    """Tests for health check endpoints."""

    async def test_root_endpoint(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    async def test_health_endpoint(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        assert response.json()["generation_available"] is True


@pytest.mark.asyncio
class TestCompleteAnalysisEndpoints:
    """Start a workflow, then poll it."""

    async def test_start_and_poll(self, async_client, orchestrator):
        response = await async_client.post(
            "/api/v1/analyses/complete",
            json={"userId": USER_ID, "documentIds": ["doc-1"]},
        )
        assert response.status_code == 202

        data = response.json()
        assert data["status"] == "pending"
        record_id = data["recordId"]

        await orchestrator.wait_for_all()

        response = await async_client.get(f"/api/v1/analyses/complete/{record_id}")
        assert response.status_code == 200
        status = response.json()
        assert status["status"] == "completed"
        assert "executiveSummary" in status["synthesis"]
        assert status["recommendationsId"]
        assert status["weeklyPlanId"]

    async def test_agent_analyses(self, async_client, orchestrator):
        response = await async_client.post(
            "/api/v1/analyses/complete",
            json={"userId": USER_ID, "documentIds": ["doc-1"]},
        )
        record_id = response.json()["recordId"]
        await orchestrator.wait_for_all()

        response = await async_client.get(f"/api/v1/analyses/complete/{record_id}/agents")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["analyses"][0]["agentId"] == "integrativa"
        assert {a["agentId"] for a in data["analyses"][1:]} == {"nutricao", "exercicio"}

        response = await async_client.get("/api/v1/analyses/complete/does-not-exist/agents")
        assert response.status_code == 404

    async def test_failed_workflow_reports_error(self, async_client, orchestrator):
        response = await async_client.post(
            "/api/v1/analyses/complete",
            json={"userId": "intruder", "documentIds": ["doc-1"]},
        )
        record_id = response.json()["recordId"]
        await orchestrator.wait_for_all()

        status = (await async_client.get(f"/api/v1/analyses/complete/{record_id}")).json()
        assert status["status"] == "failed"
        assert status["errorMessage"].startswith("Unauthorized")

    async def test_unknown_record(self, async_client):
        response = await async_client.get("/api/v1/analyses/complete/does-not-exist")
        assert response.status_code == 404
        assert response.json()["detail"] == "Complete analysis not found"

    async def test_empty_document_list_rejected(self, async_client):
        response = await async_client.post(
            "/api/v1/analyses/complete",
            json={"userId": USER_ID, "documentIds": []},
        )
        assert response.status_code == 422


@pytest.mark.asyncio
class TestMedicalKnowledgeEndpoints:
    """Deterministic evaluation and the biomarker catalog."""

    async def test_evaluate(self, async_client):
        response = await async_client.post(
            "/api/v1/medical-knowledge/evaluate",
            json={"biomarkers": [
                {"slug": "tsh", "value": 5.0},
                {"slug": "vitamina_d3", "value": 25, "unit": "ng/mL"},
            ]},
        )
        assert response.status_code == 200

        data = response.json()
        assert data["success"] is True
        assert set(data["evaluation"]) == {"biomarkers", "metrics", "triggeredProtocols"}
        statuses = {b["slug"]: b["status"] for b in data["evaluation"]["biomarkers"]}
        assert statuses == {"tsh": "abnormal", "vitamina_d3": "suboptimal"}
        protocols = {p["id"] for p in data["evaluation"]["triggeredProtocols"]}
        assert protocols == {"vitamin_d_repletion", "thyroid_workup"}
        assert data["summary"]["abnormal"] == 1

    async def test_evaluate_requires_biomarkers(self, async_client):
        response = await async_client.post("/api/v1/medical-knowledge/evaluate", json={"biomarkers": []})
        assert response.status_code == 422

    async def test_biomarker_catalog(self, async_client):
        response = await async_client.get("/api/v1/medical-knowledge/biomarkers")
        assert response.status_code == 200

        data = response.json()
        assert data["total"] == len(data["biomarkers"])
        glicemia = next(b for b in data["biomarkers"] if b["slug"] == "glicemia")
        assert glicemia["optimalMax"] == 90
        assert "glicose" in glicemia["variations"]
