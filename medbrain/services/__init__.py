"""
Services Package - storage, knowledge retrieval and billing collaborators
"""
from .storage import AnalysisStore, InMemoryAnalysisStore, new_id
from .knowledge import (
    KnowledgeRetriever,
    KnowledgeArticle,
    InMemoryKnowledgeRetriever,
    default_retriever,
    retrieve_or_empty,
)
from .billing import (
    CreditLedger,
    CreditTransaction,
    InMemoryCreditLedger,
    credits_from_tokens,
)

__all__ = [
    "AnalysisStore",
    "InMemoryAnalysisStore",
    "new_id",
    "KnowledgeRetriever",
    "KnowledgeArticle",
    "InMemoryKnowledgeRetriever",
    "default_retriever",
    "retrieve_or_empty",
    "CreditLedger",
    "CreditTransaction",
    "InMemoryCreditLedger",
    "credits_from_tokens",
]
