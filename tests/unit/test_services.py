"""
Unit Tests for services: store, knowledge retrieval and credit ledger
"""
import pytest

from medbrain.core.orchestrator import CompleteAnalysisRecord
from medbrain.services import (
    InMemoryAnalysisStore,
    InMemoryCreditLedger,
    InMemoryKnowledgeRetriever,
    KnowledgeArticle,
    credits_from_tokens,
    retrieve_or_empty,
)
from medbrain.utils import BillingError, KnowledgeRetrievalError, PersistenceError


# ── Credit ledger ─────────────────────────────────────────────────────────────

class TestCredits:

    @pytest.mark.parametrize("tokens,credits", [(0, 0), (-5, 0), (1, 1), (1000, 1), (1001, 2), (6000, 6)])
    def test_ceil(self, tokens, credits):
        assert credits_from_tokens(tokens, 1000) == credits


class TestCreditLedger:

    async def test_debit(self):
        ledger = InMemoryCreditLedger(tokens_per_credit=1000)
        ledger.grant("u", 10)

        tx = await ledger.debit("u", 1500, {"operation": "complete_analysis_synthesis"})

        assert tx.amount == -2
        assert tx.balance_after == 8
        assert tx.description == "complete_analysis_synthesis - 1500 tokens"
        assert ledger.balance("u") == 8
        assert tx.to_dict()["balanceAfter"] == 8

    async def test_insufficient_credits(self):
        ledger = InMemoryCreditLedger(tokens_per_credit=1000)
        ledger.grant("u", 1)

        with pytest.raises(BillingError) as exc_info:
            await ledger.debit("u", 5000, {})
        assert exc_info.value.message == "Insufficient credits"
        assert ledger.balance("u") == 1
        assert ledger.transactions == []

    async def test_missing_account(self):
        with pytest.raises(BillingError) as exc_info:
            await InMemoryCreditLedger().debit("nobody", 10, {})
        assert exc_info.value.message == "User credits account not initialized"


# ── Knowledge retrieval ───────────────────────────────────────────────────────

@pytest.fixture
def articles():
    return [
        KnowledgeArticle(
            id="magnesium",
            title="Magnesium and sleep",
            category="minerals",
            content="Magnesium glycinate improves sleep quality.\n\nMagnesium deficiency causes cramps.",
        ),
        KnowledgeArticle(
            id="training",
            title="Resistance training",
            category="exercise",
            source="ACSM",
            content="Resistance training improves insulin sensitivity and muscle mass.",
            agent_ids=frozenset({"exercicio"}),
        ),
    ]


class TestKnowledgeRetriever:

    def test_articles_split_into_paragraph_chunks(self, articles):
        assert InMemoryKnowledgeRetriever(articles).chunk_count == 3

    async def test_format(self, articles):
        text = await InMemoryKnowledgeRetriever(articles).retrieve("magnesium sleep", max_chunks=1)

        assert text.startswith("\n### Magnesium and sleep (minerals)\n")
        assert "**Source:** Knowledge base" in text
        assert "**Relevance:**" in text
        assert "glycinate" in text

    async def test_truncation(self, articles):
        text = await InMemoryKnowledgeRetriever(articles).retrieve("magnesium sleep", 1, max_chars_per_chunk=10)
        assert "Magnesium ..." in text

    async def test_agent_scope(self, articles):
        retriever = InMemoryKnowledgeRetriever(articles)
        assert await retriever.retrieve("resistance training", agent_scope="nutricao") == ""
        assert "ACSM" in await retriever.retrieve("resistance training", agent_scope="exercicio")
        assert "ACSM" in await retriever.retrieve("resistance training")

    async def test_no_match(self, articles):
        assert await InMemoryKnowledgeRetriever(articles).retrieve("thyroid") == ""

    async def test_retrieve_or_empty_swallows_failures(self):
        class Broken:
            async def retrieve(self, *args, **kwargs):
                raise ConnectionError("vector index down")

        assert await retrieve_or_empty(Broken(), "q", 3, 100) == ""
        assert await retrieve_or_empty(None, "q", 3, 100) == ""


# ── Store ─────────────────────────────────────────────────────────────────────

class TestAnalysisStore:

    async def test_documents_skip_unknown_ids(self, store):
        docs = await store.get_documents(["missing", "doc-1"])
        assert [d.id for d in docs] == ["doc-1"]

    async def test_reads_are_copies(self, store):
        [doc] = await store.get_documents(["doc-1"])
        doc.user_id = "tampered"
        [again] = await store.get_documents(["doc-1"])
        assert again.user_id == "user-1"

    async def test_save_unknown_record(self):
        with pytest.raises(PersistenceError):
            await InMemoryAnalysisStore().save_record(CompleteAnalysisRecord(user_id="u", document_ids=[]))

    async def test_record_round_trip(self):
        store = InMemoryAnalysisStore()
        record = CompleteAnalysisRecord(user_id="u", document_ids=["d"])
        record_id = await store.create_record(record)

        record.warnings.append("w")
        await store.save_record(record)

        saved = await store.get_record(record_id)
        assert saved.warnings == ["w"]
        assert saved.status.value == "pending"


class TestRetrievalLimits:

    async def test_invalid_limits_rejected(self, articles):
        with pytest.raises(KnowledgeRetrievalError) as exc_info:
            await InMemoryKnowledgeRetriever(articles).retrieve("magnesium", max_chunks=0)
        assert exc_info.value.details == {"maxChunks": 0, "maxCharsPerChunk": 1000}

    async def test_invalid_limits_degrade_to_no_context(self, articles):
        assert await retrieve_or_empty(InMemoryKnowledgeRetriever(articles), "magnesium", 3, 0) == ""
