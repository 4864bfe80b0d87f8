"""Tests for the HTTP surface: chatbot, topic shortcuts and health."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from conftest import RecordingChatModel
from pharmacy_rag.llm_chain import ResponseCompiler
from pharmacy_rag.main import app
from pharmacy_rag.rag.intent import IntentDetector
from pharmacy_rag.rag.orchestrator import RAGOrchestrator
from pharmacy_rag.rag.types import (
    ClinicalData,
    ClinicalSections,
    InventoryMatch,
    NormalizationResult,
    SideEffectsInfo,
    StageResult,
)


def stage(value):
    mock = MagicMock()
    mock.retrieve = AsyncMock(return_value=StageResult(value=value))
    return mock


@pytest.fixture
def orchestrator():
    inventory = stage([
        InventoryMatch(id="3", name="Advil Ibuprofen 200mg Capsule", category="Analgesics", in_stock=True)
    ])
    inventory.top_matches = AsyncMock(return_value=[])
    normalization = stage([
        NormalizationResult(canonical_code="5640", canonical_name="ibuprofen", term_type="IN")
    ])
    normalization.can_normalize = AsyncMock(return_value=True)
    clinical = stage([
        ClinicalData(
            canonical_code="5640",
            drug_name="ibuprofen",
            sections=ClinicalSections(side_effects=SideEffectsInfo(common=["nausea"])),
            source="FDA Drug Labels",
        )
    ])
    return RAGOrchestrator(
        intent_detector=IntentDetector(),
        inventory=inventory,
        normalization=normalization,
        clinical=clinical,
        compiler=ResponseCompiler(RecordingChatModel(reply="OK")),
    )


@pytest.fixture
def client(orchestrator):
    app.state.orchestrator = orchestrator
    yield TestClient(app)
    del app.state.orchestrator


class TestChatbot:
    def test_answers_question(self, client):
        resp = client.post("/api/chatbot", json={"message": "side effects of ibuprofen", "user_id": "staff-7"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["intent"] == "side-effects"
        assert body["drug_name"] == "ibuprofen"
        assert body["response"].startswith("OK")
        assert body["sources"] == [
            "Pharmacy Inventory",
            "RxNorm (National Library of Medicine)",
            "FDA Drug Labels",
        ]
        assert body["errors"] == []
        assert body["confidence"] == pytest.approx(1.0)

    def test_blank_message_rejected(self, client):
        resp = client.post("/api/chatbot", json={"message": "   "})
        assert resp.status_code == 422

    def test_missing_message_rejected(self, client):
        resp = client.post("/api/chatbot", json={"user_id": "staff-7"})
        assert resp.status_code == 422

    def test_oversized_message_rejected(self, client):
        resp = client.post("/api/chatbot", json={"message": "a" * 1001})
        assert resp.status_code == 422


class TestDrugTopics:
    @pytest.mark.parametrize("topic", ["dosage", "usage", "side-effects"])
    def test_topic_shortcut(self, client, topic):
        resp = client.get(f"/api/drugs/ibuprofen/{topic}")
        assert resp.status_code == 200
        body = resp.json()
        assert body["drug_name"] == "ibuprofen"
        assert body["topic"] == topic
        assert "Notice:" in body["response"]

    def test_unknown_topic_rejected(self, client):
        resp = client.get("/api/drugs/ibuprofen/price")
        assert resp.status_code == 422


class TestHealth:
    def test_healthy(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["components"]["inventory_connected"] is True

    def test_degraded(self, client, orchestrator):
        orchestrator._normalization.can_normalize = AsyncMock(return_value=False)
        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["components"]["rxnorm_available"] is False


class TestNotInitialized:
    def test_returns_503(self):
        client = TestClient(app)
        assert client.post("/api/chatbot", json={"message": "dosage for paracetamol"}).status_code == 503
        assert client.get("/health").status_code == 503
